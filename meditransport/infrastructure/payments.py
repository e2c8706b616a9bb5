"""
Payment provider client.

Talks to a Stripe-compatible REST API over ``httpx`` with a bounded timeout.
Transport failures and provider 5xx responses surface as ``ServiceError``
(retryable); a provider rejection of the request surfaces as
``ValidationFailed``.

Webhook signatures
------------------
Header format: ``t=<unix ts>,v1=<hex>[,v1=<hex>...]`` where each ``v1`` is
``HMAC-SHA256(secret, f"{t}.{raw_body}")``.  Deliveries older than the
configured tolerance are rejected to limit replay of captured payloads.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from meditransport.config import settings
from meditransport.domain.errors import ServiceError, ValidationFailed

logger = logging.getLogger(__name__)


class WebhookSignatureError(ValidationFailed):
    default_message = "Webhook signature verification failed"


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    status: str
    amount_cents: int
    client_secret: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "PaymentIntent":
        return cls(
            id=data["id"],
            status=data.get("status", ""),
            amount_cents=int(data.get("amount") or 0),
            client_secret=data.get("client_secret"),
            metadata=dict(data.get("metadata") or {}),
        )


class PaymentProvider:
    """Async client for payment intents."""

    def __init__(
        self,
        api_base: str = settings.payment_api_base,
        secret_key: str = settings.payment_secret_key,
        timeout: float = settings.payment_timeout_seconds,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=api_base,
            auth=(secret_key, ""),
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("Payment provider timeout on %s %s", method, path)
            raise ServiceError("Payment provider timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("Payment provider unreachable: %s", exc)
            raise ServiceError("Payment provider unavailable") from exc

        if response.status_code >= 500:
            raise ServiceError("Payment provider error")
        if response.status_code >= 400:
            message = (
                response.json().get("error", {}).get("message")
                if response.headers.get("content-type", "").startswith(
                    "application/json"
                )
                else None
            )
            raise ValidationFailed(message or "Payment request rejected")
        return response.json()

    async def create_intent(
        self, *, amount: float, currency: str, metadata: dict[str, str]
    ) -> PaymentIntent:
        form = {
            "amount": str(int(round(amount * 100))),
            "currency": currency,
        }
        for key, value in metadata.items():
            form[f"metadata[{key}]"] = value
        data = await self._request("POST", "/v1/payment_intents", data=form)
        return PaymentIntent.from_payload(data)

    async def retrieve_intent(self, intent_id: str) -> PaymentIntent:
        data = await self._request("GET", f"/v1/payment_intents/{intent_id}")
        return PaymentIntent.from_payload(data)


def sign_payload(payload: bytes, secret: str, timestamp: int) -> str:
    signed = f"{timestamp}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def verify_webhook(
    payload: bytes,
    header: Optional[str],
    secret: str,
    tolerance: int = settings.payment_webhook_tolerance_seconds,
    now: Optional[float] = None,
) -> dict[str, Any]:
    """Return the decoded event, or raise ``WebhookSignatureError``."""
    if not secret:
        raise WebhookSignatureError("Webhook secret is not configured")
    if not header:
        raise WebhookSignatureError("Missing signature header")

    timestamp: Optional[int] = None
    signatures: list[str] = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise WebhookSignatureError("Malformed signature timestamp")
        elif key == "v1":
            signatures.append(value)
    if timestamp is None or not signatures:
        raise WebhookSignatureError("Malformed signature header")

    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance:
        raise WebhookSignatureError("Signature timestamp outside tolerance")

    expected = sign_payload(payload, secret, timestamp).split("v1=", 1)[1]
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        raise WebhookSignatureError()

    try:
        event = json.loads(payload)
    except ValueError:
        raise WebhookSignatureError("Webhook payload is not valid JSON")
    if not isinstance(event, dict) or "id" not in event or "type" not in event:
        raise WebhookSignatureError("Webhook payload is not an event")
    return event
