import logging
import uuid
from typing import List

from core.check_permission import CheckRolePermission
from core.exceptions import InvalidStateError, NotFoundError
from core.mapper import ORMMapper
from core.request_context import ActorContext
from models.enums import (
    ADMIN_SETTABLE_LISTING_STATUSES,
    AuditAction,
    ListingStatus,
    PaymentStatus,
    ResourceType,
)
from models.models import User
from repos.application_repo import ApplicationRepo
from repos.listing_repo import ListingRepo
from repos.payment_repo import PaymentRepo
from repos.user_repo import UserRepo
from schemas.schema import (
    AdminStats,
    ApplicationOut,
    AuditLogOut,
    OwnListingOut,
    PaymentOut,
    UserOut,
)

from .audit_service import AuditService

logger = logging.getLogger(__name__)


class AdminService:
    def __init__(self, db):
        self.user_repo: UserRepo = UserRepo(db)
        self.listing_repo: ListingRepo = ListingRepo(db)
        self.application_repo: ApplicationRepo = ApplicationRepo(db)
        self.payment_repo: PaymentRepo = PaymentRepo(db)
        self.audit: AuditService = AuditService(db)
        self.permission: CheckRolePermission = CheckRolePermission(db)
        self.mapper: ORMMapper = ORMMapper()

    async def get_users(self, current_user: User) -> List[UserOut]:
        await self.permission.check_admin(current_user)
        return self.mapper.many(await self.user_repo.get_all(), UserOut)

    async def get_listings(self, current_user: User) -> List[OwnListingOut]:
        await self.permission.check_admin(current_user)
        return self.mapper.many(await self.listing_repo.get_all(), OwnListingOut)

    async def get_applications(self, current_user: User) -> List[ApplicationOut]:
        await self.permission.check_admin(current_user)
        return self.mapper.many(await self.application_repo.get_all(), ApplicationOut)

    async def get_payments(self, current_user: User) -> List[PaymentOut]:
        await self.permission.check_admin(current_user)
        return self.mapper.many(await self.payment_repo.get_all(), PaymentOut)

    async def get_audit_logs(self, current_user: User, limit: int = 100) -> List[AuditLogOut]:
        await self.permission.check_admin(current_user)
        return self.mapper.many(await self.audit.recent(limit=limit), AuditLogOut)

    async def get_stats(self, current_user: User) -> AdminStats:
        await self.permission.check_admin(current_user)
        return AdminStats(
            users=await self.user_repo.count(),
            listings=await self.listing_repo.count(),
            active_listings=await self.listing_repo.count(status=ListingStatus.ACTIVE),
            applications=await self.application_repo.count(),
            completed_payments=await self.payment_repo.count(status=PaymentStatus.COMPLETED),
            revenue=await self.payment_repo.total_completed_amount(),
        )

    async def set_listing_status(
        self,
        listing_id: uuid.UUID,
        status: ListingStatus,
        current_user: User,
        actor: ActorContext | None = None,
    ) -> OwnListingOut:
        await self.permission.check_admin(current_user)
        status = ListingStatus(status)

        # active is only reachable through owner authorization
        if status not in ADMIN_SETTABLE_LISTING_STATUSES:
            raise InvalidStateError(
                "Admins may only mark listings transferred, expired or cancelled"
            )

        listing = await self.listing_repo.get_by_id(listing_id)
        if not listing:
            raise NotFoundError("Listing not found")

        previous = listing.status
        if previous == status:
            return self.mapper.one(listing, OwnListingOut)

        try:
            moved = await self.listing_repo.set_status(listing.id, status, expected={previous})
            if moved != 1:
                raise InvalidStateError("Listing was updated by another request")
            await self.audit.record(
                AuditAction.LISTING_STATUS_CHANGED,
                ResourceType.LISTING,
                listing.id,
                user_id=current_user.id,
                metadata={"from": previous, "to": status, "by": "admin"},
                actor=actor,
            )
            await self.listing_repo.db_commit_and_refresh(listing)
        except Exception:
            await self.listing_repo.db_rollback()
            raise

        logger.info(f"Admin {current_user.id} moved listing {listing_id} from {previous.value} to {status.value}")
        return self.mapper.one(listing, OwnListingOut)
