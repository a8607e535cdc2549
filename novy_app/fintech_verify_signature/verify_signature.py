import json
import logging

import stripe

from core.credentials import StripeCredentialProvider

logger = logging.getLogger(__name__)


class WebhookSignatureError(Exception):
    pass


class StripeVerifySignature:
    def __init__(self, credentials: StripeCredentialProvider | None = None):
        self.credentials = credentials or StripeCredentialProvider()

    def verify(self, payload: bytes, signature: str | None) -> dict:
        """Return the event as a dict once its signature checks out."""
        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")

        secret = self.credentials.webhook_secret()
        if not secret:
            logger.error("STRIPE_WEBHOOK_SECRET is not configured; rejecting webhook")
            raise WebhookSignatureError("Webhook secret not configured")

        try:
            stripe.Webhook.construct_event(payload, signature, secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            raise WebhookSignatureError(str(e))

        return json.loads(payload)
