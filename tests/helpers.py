"""Small helpers shared by the API tests."""

import json
import time
from datetime import datetime, timedelta, timezone

from meditransport.infrastructure.payments import sign_payload

WEBHOOK_SECRET = "whsec_test"
PASSWORD = "password123"


def future_date(days: int = 1) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def signed_event(event_id: str, event_type: str, intent_id: str) -> tuple[bytes, dict]:
    """Webhook body plus a valid signature header for it."""
    body = json.dumps(
        {"id": event_id, "type": event_type, "data": {"object": {"id": intent_id}}}
    ).encode()
    header = sign_payload(body, WEBHOOK_SECRET, int(time.time()))
    return body, {"Stripe-Signature": header, "Content-Type": "application/json"}
