import logging
import uuid
from typing import List

from sqlalchemy.exc import IntegrityError

from core.date_helper import is_past, utcnow
from core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from core.mapper import ORMMapper
from core.request_context import ActorContext
from models.enums import (
    REVIEW_TRANSITIONS,
    WITHDRAWABLE_STATUSES,
    ApplicationPaymentStatus,
    ApplicationStatus,
    AuditAction,
    ListingStatus,
    ResourceType,
)
from models.models import Application, User
from repos.application_repo import ApplicationRepo
from repos.listing_repo import ListingRepo
from schemas.schema import (
    ApplicationCreate,
    ApplicationOut,
    ApplicationWithListingOut,
)

from .audit_service import AuditService

logger = logging.getLogger(__name__)


class ApplicationService:
    def __init__(self, db):
        self.repo: ApplicationRepo = ApplicationRepo(db)
        self.listing_repo: ListingRepo = ListingRepo(db)
        self.audit: AuditService = AuditService(db)
        self.mapper: ORMMapper = ORMMapper()

    async def apply(
        self,
        data: ApplicationCreate,
        current_user: User,
        actor: ActorContext | None = None,
    ) -> ApplicationOut:
        missing = [
            name
            for name, accepted in (
                ("tos_accepted", data.tos_accepted),
                ("disclaimer_accepted", data.disclaimer_accepted),
            )
            if not accepted
        ]
        if missing:
            raise ValidationError(
                "You must accept the Terms of Service and the non-broker disclaimer",
                details={"fields": missing},
            )

        listing = await self.listing_repo.get_by_id(data.listing_id)
        if not listing:
            raise NotFoundError("Listing not found")

        if listing.status != ListingStatus.ACTIVE or is_past(listing.lease_expiration):
            raise InvalidStateError(
                "This listing is not accepting applications",
                details={"status": listing.status.value},
            )

        if listing.user_id == current_user.id:
            raise ForbiddenError("You cannot apply to your own listing")

        if await self.repo.get_live(listing.id, current_user.id):
            raise ConflictError("You have already applied to this listing")

        accepted_at = utcnow()
        try:
            application = await self.repo.create(
                {
                    "listing_id": listing.id,
                    "applicant_id": current_user.id,
                    "status": ApplicationStatus.PENDING,
                    "payment_status": ApplicationPaymentStatus.PENDING,
                    "cover_letter": data.cover_letter,
                    "move_in_date": data.move_in_date,
                    "tos_accepted_at": accepted_at,
                    "disclaimer_accepted_at": accepted_at,
                }
            )
            for action in (
                AuditAction.TOS_ACCEPTED,
                AuditAction.DISCLAIMER_ACCEPTED,
                AuditAction.APPLICATION_SUBMITTED,
            ):
                await self.audit.record(
                    action,
                    ResourceType.APPLICATION,
                    application.id,
                    user_id=current_user.id,
                    metadata={"listing_id": listing.id, "accepted_at": accepted_at},
                    actor=actor,
                )
            await self.repo.db_commit_and_refresh(application)
        except IntegrityError:
            await self.repo.db_rollback()
            raise ConflictError("You have already applied to this listing")
        except Exception:
            await self.repo.db_rollback()
            raise

        logger.info(f"Application {application.id} submitted by {current_user.id} for listing {listing.id}")
        return self.mapper.one(application, ApplicationOut)

    async def _load_for_owner(self, application_id: uuid.UUID, current_user: User) -> Application:
        application = await self.repo.get_with_listing(application_id)
        if not application:
            raise NotFoundError("Application not found")
        if application.listing.user_id != current_user.id:
            raise ForbiddenError("Only the listing owner can review applications")
        return application

    async def review(
        self,
        application_id: uuid.UUID,
        decision: ApplicationStatus,
        current_user: User,
        actor: ActorContext | None = None,
    ) -> ApplicationOut:
        decision = ApplicationStatus(decision)
        application = await self._load_for_owner(application_id, current_user)
        previous = application.status

        allowed = REVIEW_TRANSITIONS.get(previous, set())
        if decision not in allowed:
            raise InvalidStateError(
                f"Cannot move an application from {previous.value} to {decision.value}",
                details={"status": previous.value},
            )

        try:
            moved = await self.repo.transition(application.id, {previous}, decision)
            if moved != 1:
                raise InvalidStateError("Application was updated by another request")
            await self.audit.record(
                AuditAction.APPLICATION_REVIEWED,
                ResourceType.APPLICATION,
                application.id,
                user_id=current_user.id,
                metadata={
                    "listing_id": application.listing_id,
                    "from": previous,
                    "to": decision,
                },
                actor=actor,
            )
            await self.repo.db_commit_and_refresh(application)
        except Exception:
            await self.repo.db_rollback()
            raise

        return self.mapper.one(application, ApplicationOut)

    async def withdraw(
        self,
        application_id: uuid.UUID,
        current_user: User,
        actor: ActorContext | None = None,
    ) -> ApplicationOut:
        application = await self.repo.get_by_id(application_id)
        if not application:
            raise NotFoundError("Application not found")
        if application.applicant_id != current_user.id:
            raise ForbiddenError("Only the applicant can withdraw this application")
        if application.status not in WITHDRAWABLE_STATUSES:
            raise InvalidStateError(
                "This application can no longer be withdrawn",
                details={"status": application.status.value},
            )

        previous = application.status
        try:
            moved = await self.repo.transition(
                application.id, WITHDRAWABLE_STATUSES, ApplicationStatus.WITHDRAWN
            )
            if moved != 1:
                raise InvalidStateError("Application was updated by another request")
            await self.audit.record(
                AuditAction.APPLICATION_WITHDRAWN,
                ResourceType.APPLICATION,
                application.id,
                user_id=current_user.id,
                metadata={"listing_id": application.listing_id, "from": previous},
                actor=actor,
            )
            await self.repo.db_commit_and_refresh(application)
        except Exception:
            await self.repo.db_rollback()
            raise

        return self.mapper.one(application, ApplicationOut)

    async def get_my_applications(self, current_user: User) -> List[ApplicationWithListingOut]:
        applications = await self.repo.get_by_applicant(current_user.id)
        return self.mapper.many(applications, ApplicationWithListingOut)

    async def get_application(
        self, application_id: uuid.UUID, current_user: User
    ) -> ApplicationWithListingOut:
        application = await self.repo.get_with_listing(application_id)
        if not application:
            raise NotFoundError("Application not found")
        if current_user.id not in {application.applicant_id, application.listing.user_id}:
            raise ForbiddenError("You are not a party to this application")
        return self.mapper.one(application, ApplicationWithListingOut)

    async def get_listing_applications(
        self, listing_id: uuid.UUID, current_user: User
    ) -> List[ApplicationOut]:
        listing = await self.listing_repo.get_by_id(listing_id)
        if not listing:
            raise NotFoundError("Listing not found")
        if listing.user_id != current_user.id:
            raise ForbiddenError("Only the listing owner can view its applications")
        applications = await self.repo.get_by_listing(listing_id)
        return self.mapper.many(applications, ApplicationOut)
