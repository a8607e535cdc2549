import logging

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError

from core.date_helper import utcnow
from core.exceptions import IntegrityViolationError
from core.settings import settings
from models.enums import (
    ApplicationPaymentStatus,
    ApplicationStatus,
    AuditAction,
    PaymentStatus,
    ResourceType,
)
from repos.application_repo import ApplicationRepo
from repos.payment_repo import PaymentRepo
from schemas.schema import PaymentFailedEvent, PaymentSucceededEvent

from .audit_service import AuditService

logger = logging.getLogger(__name__)

SUCCEEDED_EVENTS = {"payment_intent.succeeded", "checkout.session.completed"}
FAILED_EVENTS = {"payment_intent.payment_failed", "checkout.session.async_payment_failed"}


def _object_id(value) -> str | None:
    if isinstance(value, dict):
        return value.get("id")
    return value


class PaymentReconciliationService:
    """Applies verified Stripe events to applications and payments.

    Every "already handled" path is a quiet no-op so redelivered events
    never double-apply. Metadata that points at the wrong listing or user
    raises ``IntegrityViolationError``.
    """

    def __init__(self, db):
        self.repo: PaymentRepo = PaymentRepo(db)
        self.application_repo: ApplicationRepo = ApplicationRepo(db)
        self.audit: AuditService = AuditService(db)

    @staticmethod
    def parse_succeeded(event: dict) -> PaymentSucceededEvent | None:
        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}

        if event_type == "payment_intent.succeeded":
            payment_intent_id = obj.get("id")
            session_id = None
            amount = obj.get("amount_received") or obj.get("amount")
        elif event_type == "checkout.session.completed":
            if obj.get("payment_status") != "paid":
                logger.info(f"Checkout session {obj.get('id')} completed without payment; waiting")
                return None
            payment_intent_id = _object_id(obj.get("payment_intent"))
            session_id = obj.get("id")
            amount = obj.get("amount_total")
        else:
            return None

        try:
            return PaymentSucceededEvent(
                event_id=event.get("id") or "",
                event_type=event_type,
                payment_intent_id=payment_intent_id,
                checkout_session_id=session_id,
                amount=amount,
                currency=obj.get("currency"),
                metadata=obj.get("metadata") or {},
            )
        except PydanticValidationError as e:
            logger.warning(f"Rejected {event_type} {event.get('id')}: malformed metadata ({e.error_count()} errors)")
            return None

    @staticmethod
    def parse_failed(event: dict) -> PaymentFailedEvent | None:
        event_type = event.get("type")
        if event_type not in FAILED_EVENTS:
            return None
        obj = (event.get("data") or {}).get("object") or {}
        failure = obj.get("last_payment_error") or {}

        try:
            return PaymentFailedEvent(
                event_id=event.get("id") or "",
                event_type=event_type,
                object_id=obj.get("id"),
                failure_message=failure.get("message"),
                metadata=obj.get("metadata") or {},
            )
        except PydanticValidationError as e:
            logger.warning(f"Rejected {event_type} {event.get('id')}: malformed metadata ({e.error_count()} errors)")
            return None

    async def reconcile(self, event: PaymentSucceededEvent) -> bool:
        """Return True only when this call moved the application to paid."""
        meta = event.metadata

        application = await self.application_repo.get_with_listing(meta.application_id)
        if not application:
            logger.warning(f"{event.event_id}: application {meta.application_id} not found")
            return False

        if meta.listing_id is not None and meta.listing_id != application.listing_id:
            raise IntegrityViolationError(
                "Payment metadata references a different listing",
                details={
                    "event_id": event.event_id,
                    "application_id": str(application.id),
                    "metadata_listing_id": str(meta.listing_id),
                    "listing_id": str(application.listing_id),
                },
            )
        if meta.user_id != application.applicant_id:
            raise IntegrityViolationError(
                "Payment metadata references a different applicant",
                details={
                    "event_id": event.event_id,
                    "application_id": str(application.id),
                    "metadata_user_id": str(meta.user_id),
                },
            )

        if application.status != ApplicationStatus.APPROVED:
            logger.warning(
                f"{event.event_id}: application {application.id} is {application.status.value}; not honouring payment"
            )
            return False

        payment = await self.repo.get_for_application(application.id)
        if payment and payment.status == PaymentStatus.COMPLETED:
            logger.info(f"{event.event_id}: payment {payment.id} already completed")
            return False

        if application.payment_status == ApplicationPaymentStatus.PAID:
            logger.info(f"{event.event_id}: application {application.id} already paid")
            return False

        if payment and payment.stripe_charge_id == event.payment_intent_id:
            logger.info(f"{event.event_id}: duplicate delivery for {event.payment_intent_id}")
            return False

        application_id = application.id
        completed_at = utcnow()
        try:
            claimed = await self.application_repo.mark_paid(application.id, event.payment_intent_id)
            if claimed != 1:
                await self.repo.db_rollback()
                logger.info(f"{event.event_id}: application {application_id} claimed by a concurrent delivery")
                return False

            if payment:
                updated = await self.repo.mark_completed(
                    payment.id,
                    charge_id=event.payment_intent_id,
                    payment_intent_id=event.payment_intent_id,
                    completed_at=completed_at,
                )
                if updated != 1:
                    await self.repo.db_rollback()
                    return False
                if event.checkout_session_id and not payment.stripe_checkout_session_id:
                    await self.repo.set_checkout_session(payment, event.checkout_session_id)
            else:
                payment = await self.repo.create(
                    {
                        "application_id": application.id,
                        "user_id": meta.user_id,
                        "amount": event.amount or settings.PLATFORM_FEES[application.listing.type.value],
                        "currency": (event.currency or settings.PLATFORM_FEE_CURRENCY).lower(),
                        "status": PaymentStatus.COMPLETED,
                        "stripe_checkout_session_id": event.checkout_session_id,
                        "stripe_payment_intent_id": event.payment_intent_id,
                        "stripe_charge_id": event.payment_intent_id,
                        "completed_at": completed_at,
                    }
                )

            await self.audit.record(
                AuditAction.PAYMENT_COMPLETED,
                ResourceType.PAYMENT,
                payment.id,
                user_id=meta.user_id,
                metadata={
                    "application_id": application.id,
                    "listing_id": application.listing_id,
                    "stripe_event_id": event.event_id,
                    "stripe_payment_intent_id": event.payment_intent_id,
                    "stripe_session_id": event.checkout_session_id,
                    "amount": event.amount if event.amount is not None else payment.amount,
                    "completed_at": completed_at,
                },
            )
            await self.repo.db_commit()
        except IntegrityError:
            await self.repo.db_rollback()
            logger.info(f"{event.event_id}: completed payment already recorded for {application_id}")
            return False
        except Exception:
            await self.repo.db_rollback()
            raise

        logger.info(f"Application {application_id} marked paid via {event.event_type} {event.event_id}")
        return True

    async def record_failure(self, event: PaymentFailedEvent) -> None:
        meta = event.metadata
        payment = await self.repo.get_for_application(meta.application_id)

        try:
            await self.audit.record(
                AuditAction.PAYMENT_FAILED,
                ResourceType.PAYMENT,
                payment.id if payment else event.object_id,
                user_id=meta.user_id,
                metadata={
                    "application_id": meta.application_id,
                    "listing_id": meta.listing_id,
                    "stripe_event_id": event.event_id,
                    "stripe_object_id": event.object_id,
                    "failure_message": event.failure_message,
                    "failed_at": utcnow(),
                },
            )
            await self.repo.db_commit()
        except Exception:
            await self.repo.db_rollback()
            raise

    async def handle_event(self, event: dict) -> str:
        event_type = event.get("type")

        if event_type in SUCCEEDED_EVENTS:
            parsed = self.parse_succeeded(event)
            if parsed is None:
                return "ignored"
            applied = await self.reconcile(parsed)
            return "processed" if applied else "already_handled"

        if event_type in FAILED_EVENTS:
            parsed = self.parse_failed(event)
            if parsed is None:
                return "ignored"
            await self.record_failure(parsed)
            return "recorded"

        logger.debug(f"Ignoring Stripe event type {event_type}")
        return "ignored"
