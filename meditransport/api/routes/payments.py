"""
Payment endpoints
=================

POST /api/v1/payments/create-intent              -- start paying for a ride
POST /api/v1/payments/confirm/{paymentIntentId}  -- re-check an intent with the provider
GET  /api/v1/payments/history                    -- caller's payments, newest first
POST /api/v1/payments/webhook                    -- signed provider callback (no bearer)
"""

import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from meditransport.api.dependencies import (
    get_broadcaster,
    get_current_identity,
    get_db,
    get_payment_provider,
)
from meditransport.api.middleware import RATE_LIMIT, limiter
from meditransport.api.schemas import (
    PaymentConfirmResponse,
    PaymentHistoryEnvelope,
    PaymentHistoryItem,
    PaymentIntentRequest,
    PaymentIntentResponse,
    WebhookAck,
)
from meditransport.config import settings
from meditransport.domain.entities import Identity
from meditransport.infrastructure.broadcast import Broadcaster
from meditransport.infrastructure.payments import (
    PaymentProvider,
    WebhookSignatureError,
    verify_webhook,
)
from meditransport.services.payments import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])

SIGNATURE_HEADER = "Stripe-Signature"


@router.post("/create-intent", response_model=PaymentIntentResponse)
@limiter.limit(RATE_LIMIT)
async def create_intent(
    request: Request,
    body: PaymentIntentRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    intent = await PaymentService(db, provider, broadcaster).create_intent(
        identity, body.ride_id, body.amount, body.method
    )
    return {"client_secret": intent.client_secret, "payment_intent_id": intent.id}


@router.post("/confirm/{payment_intent_id}", response_model=PaymentConfirmResponse)
@limiter.limit(RATE_LIMIT)
async def confirm_payment(
    request: Request,
    payment_intent_id: str,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    payment, intent = await PaymentService(db, provider, broadcaster).confirm(
        identity, payment_intent_id
    )
    return {
        "message": "Payment status updated",
        "payment": payment,
        "provider_status": intent.status,
    }


@router.get("/history", response_model=PaymentHistoryEnvelope)
@limiter.limit(RATE_LIMIT)
async def payment_history(
    request: Request,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    rows, total = await PaymentService(db, provider, broadcaster).history(
        identity, limit, offset
    )
    payments = []
    for payment, start_location, end_location, ride_date in rows:
        item = PaymentHistoryItem.model_validate(
            {
                "id": payment.id,
                "ride_id": payment.ride_id,
                "user_id": payment.user_id,
                "amount": payment.amount,
                "method": payment.method,
                "status": payment.status,
                "external_reference": payment.external_reference,
                "payment_date": payment.payment_date,
                "created_at": payment.created_at,
                "start_location": start_location,
                "end_location": end_location,
                "ride_date": ride_date,
            }
        )
        payments.append(item)
    return {
        "payments": payments,
        "pagination": {"limit": limit, "offset": offset, "total": total},
    }


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    payload = await request.body()
    try:
        event = verify_webhook(
            payload,
            request.headers.get(SIGNATURE_HEADER),
            settings.payment_webhook_secret,
        )
    except WebhookSignatureError as exc:
        client = request.client.host if request.client else "unknown"
        logger.warning("Rejected webhook from %s: %s", client, exc.message)
        raise
    applied = await PaymentService(db, provider, broadcaster).handle_event(event)
    return {"received": True, "duplicate": not applied}
