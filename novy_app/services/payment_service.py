import hashlib
import json
import logging
import uuid

from core.exceptions import ConflictError, ForbiddenError, NotFoundError
from core.request_context import ActorContext
from core.settings import settings
from fintechs.stripe_client import StripeClient
from models.enums import (
    ApplicationPaymentStatus,
    ApplicationStatus,
    AuditAction,
    ListingStatus,
    PaymentStatus,
    ResourceType,
)
from models.models import User
from repos.application_repo import ApplicationRepo
from repos.payment_repo import PaymentRepo
from schemas.schema import CheckoutOut

from .audit_service import AuditService

logger = logging.getLogger(__name__)


class PaymentService:
    def __init__(self, db, stripe_client: StripeClient | None = None):
        self.repo: PaymentRepo = PaymentRepo(db)
        self.application_repo: ApplicationRepo = ApplicationRepo(db)
        self.audit: AuditService = AuditService(db)
        self.stripe: StripeClient = stripe_client or StripeClient()

    @staticmethod
    def idempotency_key(payment_id: uuid.UUID, checkout: dict) -> str:
        """Same payment and same parameters give the same key."""
        digest = hashlib.sha256(json.dumps(checkout, sort_keys=True).encode()).hexdigest()
        return f"checkout-{payment_id}-{digest[:16]}"

    async def create_checkout(
        self,
        application_id: uuid.UUID,
        current_user: User,
        actor: ActorContext | None = None,
    ) -> CheckoutOut:
        application = await self.application_repo.get_with_listing(application_id)
        if not application:
            raise NotFoundError("Application not found")

        if application.applicant_id != current_user.id:
            raise ForbiddenError("Only the applicant can pay for this application")

        if application.payment_status == ApplicationPaymentStatus.PAID:
            raise ConflictError("This application has already been paid")

        if application.status != ApplicationStatus.APPROVED:
            raise ForbiddenError(
                "Payment can only be made after owner approval",
                details={"status": application.status.value},
            )

        listing = application.listing
        if listing.status != ListingStatus.ACTIVE:
            raise ForbiddenError(
                "This listing is no longer active",
                details={"listing_status": listing.status.value},
            )

        amount = settings.PLATFORM_FEES[listing.type.value]
        currency = settings.PLATFORM_FEE_CURRENCY

        try:
            payment = await self.repo.get_pending_for_application(application.id)
            if payment is None:
                payment = await self.repo.create(
                    {
                        "application_id": application.id,
                        "user_id": current_user.id,
                        "amount": amount,
                        "currency": currency,
                        "status": PaymentStatus.PENDING,
                    }
                )

            checkout = {
                "amount": amount,
                "currency": currency,
                "product_name": f"Lease transfer fee: {listing.title}",
                "metadata": {
                    "applicationId": str(application.id),
                    "userId": str(current_user.id),
                    "listingId": str(listing.id),
                    "listingType": listing.type.value,
                },
                "success_url": (
                    f"{settings.FRONTEND_URL}/applications?payment=success"
                    "&session_id={CHECKOUT_SESSION_ID}"
                ),
                "cancel_url": f"{settings.FRONTEND_URL}/applications?payment=cancelled",
                "client_reference_id": str(application.id),
                "customer_email": current_user.email,
            }
            session = await self.stripe.create_checkout_session(
                **checkout,
                idempotency_key=self.idempotency_key(payment.id, checkout),
            )

            await self.repo.set_checkout_session(payment, session.id)
            await self.audit.record(
                AuditAction.PAYMENT_INITIATED,
                ResourceType.PAYMENT,
                payment.id,
                user_id=current_user.id,
                metadata={
                    "application_id": application.id,
                    "listing_id": listing.id,
                    "amount": amount,
                    "currency": currency,
                    "stripe_session_id": session.id,
                },
                actor=actor,
            )
            await self.repo.db_commit()
        except Exception:
            await self.repo.db_rollback()
            raise

        logger.info(f"Checkout {session.id} opened for application {application.id}")
        return CheckoutOut(checkout_url=session.url, session_id=session.id)
