"""
Payment capture
===============

Intents are created with the provider and mirrored locally as *pending*
payments.  They leave *pending* only through provider confirmation: either
the payer's direct ``confirm`` call (which re-reads the intent from the
provider) or a signed webhook.  Client-supplied statuses are never trusted.

Idempotence
-----------
``apply_outcome`` is apply-if-not-already-applied at every step:

1. the payment row moves only out of the expected statuses;
2. the ride is forced to ``completed`` only if it is not already completed
   or canceled;
3. a status broadcast is sent only when step 2 actually changed the row.

Replaying a webhook therefore converges on the same state and emits
nothing the second time.  Webhook event ids are also recorded so a known
delivery is acknowledged without re-processing.

Canceled rides are never re-opened by a late payment: the payment is
recorded, the ride keeps its status and a warning is logged.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from meditransport.config import settings
from meditransport.domain.entities import Identity, completion_target
from meditransport.domain.enums import Capability, PaymentMethod, PaymentStatus, RideStatus
from meditransport.domain.errors import Conflict, Forbidden, NotFound
from meditransport.domain.visibility import RideScope, ScopeKind
from meditransport.infrastructure.broadcast import Broadcaster, publish_safely
from meditransport.infrastructure.models import PaymentModel
from meditransport.infrastructure.payments import PaymentIntent, PaymentProvider
from meditransport.infrastructure.repositories import (
    PaymentEventRepository,
    PaymentRepository,
    RideRepository,
)
from meditransport.services.rides import status_event

logger = logging.getLogger(__name__)

SUCCEEDED_EVENT = "payment_intent.succeeded"
FAILED_EVENT = "payment_intent.payment_failed"

# Provider intent statuses after which the intent can no longer succeed
# without a new confirmation from the payer.
_FAILED_INTENT_STATUSES = {"requires_payment_method", "canceled"}


class PaymentService:
    def __init__(
        self,
        session: AsyncSession,
        provider: PaymentProvider,
        broadcaster: Broadcaster,
    ):
        self.session = session
        self.provider = provider
        self.broadcaster = broadcaster
        self.payments = PaymentRepository(session)
        self.events = PaymentEventRepository(session)
        self.rides = RideRepository(session)

    async def create_intent(
        self,
        identity: Identity,
        ride_id: int,
        amount: float,
        method: PaymentMethod = PaymentMethod.CREDIT_CARD,
    ) -> PaymentIntent:
        if not identity.can(Capability.PAY_FOR_RIDE):
            raise Forbidden("Only the patient who booked the ride can pay for it")
        own_rides = RideScope(ScopeKind.REQUESTER, requester_id=identity.id)
        ride = await self.rides.get_visible(ride_id, own_rides)
        if ride is None:
            raise NotFound("Ride not found")
        if RideStatus(ride.status) is RideStatus.CANCELED:
            raise Conflict("Cannot pay for a canceled ride")

        intent = await self.provider.create_intent(
            amount=amount,
            currency=settings.payment_currency,
            metadata={"rideId": str(ride.id), "userId": identity.id},
        )
        await self.payments.create(
            PaymentModel(
                ride_id=ride.id,
                user_id=identity.id,
                amount=amount,
                method=method,
                status=PaymentStatus.PENDING,
                external_reference=intent.id,
            )
        )
        await self.session.commit()
        logger.info("Payment intent %s created for ride %s", intent.id, ride.id)
        return intent

    async def confirm(
        self, identity: Identity, intent_id: str
    ) -> tuple[PaymentModel, PaymentIntent]:
        intent = await self.provider.retrieve_intent(intent_id)
        if intent.metadata.get("userId") != identity.id:
            raise Forbidden("Unauthorized access to payment")

        payment = await self.payments.get_by_reference(intent_id)
        if payment is None or payment.user_id != identity.id:
            raise NotFound("Payment record not found")

        if intent.succeeded:
            await self.apply_outcome(intent_id, succeeded=True)
        elif intent.status in _FAILED_INTENT_STATUSES:
            await self.apply_outcome(intent_id, succeeded=False)

        payment = await self.payments.get_by_reference(intent_id)
        return payment, intent

    async def handle_event(self, event: dict[str, Any]) -> bool:
        """Apply a verified webhook event.  Returns False for a replay."""
        event_id = str(event["id"])
        event_type = str(event["type"])
        if await self.events.seen(event_id):
            logger.info("Webhook event %s already processed", event_id)
            return False
        try:
            await self.events.record(event_id, event_type)
        except IntegrityError:
            # A concurrent delivery of the same event recorded it first.
            await self.session.rollback()
            logger.info("Webhook event %s already processed", event_id)
            return False

        intent_id = (event.get("data") or {}).get("object", {}).get("id")
        if event_type == SUCCEEDED_EVENT and intent_id:
            await self.apply_outcome(intent_id, succeeded=True)
        elif event_type == FAILED_EVENT and intent_id:
            await self.apply_outcome(intent_id, succeeded=False)
        else:
            logger.info("Unhandled webhook event type %s", event_type)
        await self.session.commit()
        return True

    async def apply_outcome(self, intent_id: str, *, succeeded: bool) -> Optional[PaymentModel]:
        payment = await self.payments.get_by_reference(intent_id)
        if payment is None:
            logger.warning("No payment recorded for intent %s", intent_id)
            return None

        ride_completed = False
        if succeeded:
            settled = await self.payments.settle(
                intent_id,
                PaymentStatus.COMPLETED,
                from_statuses=(PaymentStatus.PENDING, PaymentStatus.FAILED),
            )
            # Re-checked even for an already completed payment so that a
            # concurrent ride update cannot leave the ride short of completed.
            ride = await self.rides.reload(payment.ride_id)
            if ride is not None and completion_target(RideStatus(ride.status)):
                ride_completed = await self.rides.complete_unless_final(ride.id)
            elif ride is not None and RideStatus(ride.status) is RideStatus.CANCELED:
                logger.warning(
                    "Payment %s completed for canceled ride %s; ride left canceled",
                    payment.id,
                    ride.id,
                )
        else:
            settled = await self.payments.settle(intent_id, PaymentStatus.FAILED)

        await self.session.commit()
        if settled:
            logger.info(
                "Payment %s -> %s", payment.id, "completed" if succeeded else "failed"
            )
        if ride_completed:
            ride = await self.rides.reload(payment.ride_id)
            logger.info("Ride %s completed by payment %s", ride.id, payment.id)
            await publish_safely(self.broadcaster, ride.id, status_event(ride))
        return await self.payments.get_by_reference(intent_id)

    async def history(
        self, identity: Identity, limit: int, offset: int
    ) -> tuple[list[Any], int]:
        return await self.payments.history(identity.id, limit, offset)
