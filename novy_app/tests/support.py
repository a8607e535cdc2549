"""Request and Stripe payload builders shared by the test modules."""
import hashlib
import hmac
import json
import time

import jwt

from core.settings import settings


def auth_headers(user) -> dict:
    token = jwt.encode({"sub": str(user.id)}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


def stripe_signature(payload: bytes, secret: str | None = None, timestamp: int | None = None) -> str:
    secret = secret or settings.STRIPE_WEBHOOK_SECRET
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def signed_body(event: dict) -> tuple[bytes, dict]:
    body = json.dumps(event).encode()
    return body, {
        "stripe-signature": stripe_signature(body),
        "content-type": "application/json",
    }


def payment_intent_event(
    application,
    event_id: str = "evt_test_1",
    intent_id: str = "pi_test_1",
    amount: int = 39900,
    **metadata,
) -> dict:
    meta = {
        "applicationId": str(application.id),
        "userId": str(application.applicant_id),
        "listingId": str(application.listing_id),
        "listingType": "residential",
    }
    meta.update(metadata)
    return {
        "id": event_id,
        "object": "event",
        "type": "payment_intent.succeeded",
        "data": {
            "object": {
                "id": intent_id,
                "object": "payment_intent",
                "amount": amount,
                "amount_received": amount,
                "currency": "usd",
                "metadata": meta,
            }
        },
    }
