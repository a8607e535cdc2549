import logging
import uuid
from typing import List

from fastapi import BackgroundTasks

from core.exceptions import ForbiddenError, InvalidStateError, NotFoundError
from core.mapper import ORMMapper
from core.request_context import ActorContext
from email_notify.email_service import EmailService
from models.enums import AuditAction, ListingStatus, ResourceType
from models.models import Listing, User
from repos.application_repo import ApplicationRepo
from repos.listing_repo import ListingRepo
from repos.message_repo import MessageRepo
from schemas.schema import (
    DashboardStats,
    ListingCreate,
    ListingOut,
    ListingUpdate,
    OwnListingOut,
)

from .audit_service import AuditService
from .owner_authorization_service import OwnerAuthorizationService

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = {
    ListingStatus.DRAFT,
    ListingStatus.PENDING_AUTHORIZATION,
    ListingStatus.ACTIVE,
}
# changing who authorizes is only allowed before a request goes out
OWNER_CONTACT_FIELDS = {"owner_email", "owner_name"}


class ListingService:
    def __init__(self, db, email_service: EmailService | None = None):
        self.repo: ListingRepo = ListingRepo(db)
        self.application_repo: ApplicationRepo = ApplicationRepo(db)
        self.message_repo: MessageRepo = MessageRepo(db)
        self.authorizations: OwnerAuthorizationService = OwnerAuthorizationService(db)
        self.audit: AuditService = AuditService(db)
        self.email_service: EmailService = email_service or EmailService()
        self.mapper: ORMMapper = ORMMapper()

    async def _get_owned(self, listing_id: uuid.UUID, current_user: User) -> Listing:
        listing = await self.repo.get_by_id(listing_id)
        if not listing:
            raise NotFoundError("Listing not found")
        if listing.user_id != current_user.id:
            raise ForbiddenError("You are not allowed to manage this listing")
        return listing

    def _send_authorization_request(
        self,
        background_tasks: BackgroundTasks,
        listing: Listing,
        current_user: User,
        raw_token: str,
    ):
        background_tasks.add_task(
            self.email_service.send_owner_authorization_email,
            listing.owner_email,
            listing.owner_name,
            current_user.full_name,
            f"{listing.address}, {listing.city}, {listing.state} {listing.zip_code}",
            raw_token,
        )

    async def create_listing(
        self,
        data: ListingCreate,
        current_user: User,
        background_tasks: BackgroundTasks,
        actor: ActorContext | None = None,
    ) -> OwnListingOut:
        data_dict = data.model_dump(exclude={"as_draft"})
        data_dict["user_id"] = current_user.id
        data_dict["status"] = (
            ListingStatus.DRAFT if data.as_draft else ListingStatus.PENDING_AUTHORIZATION
        )

        raw_token = None
        try:
            listing = await self.repo.create(data_dict)
            await self.audit.record(
                AuditAction.LISTING_CREATED,
                ResourceType.LISTING,
                listing.id,
                user_id=current_user.id,
                metadata={"status": listing.status, "type": listing.type},
                actor=actor,
            )
            if listing.status == ListingStatus.PENDING_AUTHORIZATION:
                raw_token = await self.authorizations.issue(listing.id, listing.owner_email)
            await self.repo.db_commit_and_refresh(listing)
        except Exception:
            await self.repo.db_rollback()
            raise

        if raw_token:
            self._send_authorization_request(background_tasks, listing, current_user, raw_token)

        logger.info(f"Listing {listing.id} created by {current_user.id} as {listing.status.value}")
        return self.mapper.one(listing, OwnListingOut)

    async def submit_listing(
        self,
        listing_id: uuid.UUID,
        current_user: User,
        background_tasks: BackgroundTasks,
        actor: ActorContext | None = None,
    ) -> OwnListingOut:
        """Send a draft for owner authorization, or re-send an expired request."""
        listing = await self._get_owned(listing_id, current_user)

        if listing.status not in {ListingStatus.DRAFT, ListingStatus.PENDING_AUTHORIZATION}:
            raise InvalidStateError(
                "Only draft listings or listings awaiting authorization can be submitted",
                details={"status": listing.status.value},
            )

        try:
            if listing.status == ListingStatus.DRAFT:
                moved = await self.repo.set_status(
                    listing.id,
                    ListingStatus.PENDING_AUTHORIZATION,
                    expected={ListingStatus.DRAFT},
                )
                if moved != 1:
                    raise InvalidStateError("Listing was modified concurrently")
                await self.audit.record(
                    AuditAction.LISTING_STATUS_CHANGED,
                    ResourceType.LISTING,
                    listing.id,
                    user_id=current_user.id,
                    metadata={
                        "from": ListingStatus.DRAFT,
                        "to": ListingStatus.PENDING_AUTHORIZATION,
                    },
                    actor=actor,
                )
            raw_token = await self.authorizations.issue(listing.id, listing.owner_email)
            await self.repo.db_commit_and_refresh(listing)
        except Exception:
            await self.repo.db_rollback()
            raise

        self._send_authorization_request(background_tasks, listing, current_user, raw_token)
        return self.mapper.one(listing, OwnListingOut)

    async def get_active_listings(self) -> List[ListingOut]:
        listings = await self.repo.get_active()
        return self.mapper.many(listings, ListingOut)

    async def get_my_listings(self, current_user: User) -> List[OwnListingOut]:
        listings = await self.repo.get_by_user(current_user.id)
        return self.mapper.many(listings, OwnListingOut)

    async def get_listing(self, listing_id: uuid.UUID, current_user: User | None = None) -> ListingOut:
        listing = await self.repo.get_by_id(listing_id)
        if not listing:
            raise NotFoundError("Listing not found")

        is_owner = current_user is not None and listing.user_id == current_user.id
        if is_owner:
            return self.mapper.one(listing, OwnListingOut)
        if listing.status != ListingStatus.ACTIVE:
            raise NotFoundError("Listing not found")
        return self.mapper.one(listing, ListingOut)

    async def update_listing(
        self, listing_id: uuid.UUID, data: ListingUpdate, current_user: User
    ) -> OwnListingOut:
        listing = await self._get_owned(listing_id, current_user)

        if listing.status not in EDITABLE_STATUSES:
            raise InvalidStateError(
                "This listing can no longer be edited",
                details={"status": listing.status.value},
            )

        fields = data.model_dump(exclude_unset=True)
        if OWNER_CONTACT_FIELDS & fields.keys() and listing.status != ListingStatus.DRAFT:
            raise InvalidStateError(
                "Owner contact details can only be changed while the listing is a draft"
            )
        if "owner_email" in fields and fields["owner_email"]:
            fields["owner_email"] = fields["owner_email"].strip().lower()

        try:
            await self.repo.update_fields(listing, fields)
            await self.repo.db_commit_and_refresh(listing)
        except Exception:
            await self.repo.db_rollback()
            raise

        return self.mapper.one(listing, OwnListingOut)

    async def delete_listing(self, listing_id: uuid.UUID, current_user: User) -> dict:
        listing = await self._get_owned(listing_id, current_user)

        if await self.application_repo.count_for_listing(listing.id):
            raise InvalidStateError("Listings with applications cannot be deleted")

        try:
            await self.repo.delete(listing.id)
            await self.repo.db_commit()
        except Exception:
            await self.repo.db_rollback()
            raise

        logger.info(f"Listing {listing_id} deleted by {current_user.id}")
        return {"success": True}

    async def dashboard_stats(self, current_user: User) -> DashboardStats:
        return DashboardStats(
            active_listings=await self.repo.count(
                status=ListingStatus.ACTIVE, user_id=current_user.id
            ),
            pending_applications=await self.application_repo.count_pending_for_owner(
                current_user.id
            ),
            unread_messages=await self.message_repo.count_unread(current_user.id),
        )
