import logging

from fastapi import HTTPException, Request

from core.exceptions import IntegrityViolationError
from fintech_verify_signature.verify_signature import (
    StripeVerifySignature,
    WebhookSignatureError,
)
from services.payment_reconciliation_service import PaymentReconciliationService

logger = logging.getLogger(__name__)


class PaymentWebhooks:
    def __init__(self, db, request: Request):
        self.request = request
        self.verify_signature: StripeVerifySignature = StripeVerifySignature()
        self.reconciliation: PaymentReconciliationService = PaymentReconciliationService(db)

    async def stripe_webhook(self):
        raw_body = await self.request.body()
        signature = self.request.headers.get("stripe-signature")

        try:
            event = self.verify_signature.verify(raw_body, signature)
        except WebhookSignatureError as e:
            logger.warning(f"Rejected Stripe webhook: {e}")
            raise HTTPException(status_code=400, detail="Invalid signature")

        event_id = event.get("id")
        event_type = event.get("type")
        logger.info(f"Stripe webhook {event_id} ({event_type}) received")

        try:
            status = await self.reconciliation.handle_event(event)
        except IntegrityViolationError as e:
            # acknowledged so Stripe stops redelivering; needs a human
            logger.critical(
                f"[IntegrityViolation] Stripe event {event_id} ({event_type}): {e.message} {e.details}"
            )
            return {"received": True, "status": "integrity_violation"}

        return {"received": True, "status": status}
