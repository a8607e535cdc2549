import logging
import secrets
import uuid

from sqlalchemy.exc import IntegrityError

from core.date_helper import expires_in, is_past, utcnow
from core.exceptions import (
    AlreadyUsedError,
    ConflictError,
    ExpiredError,
    InvalidStateError,
    NotFoundError,
)
from core.request_context import ActorContext
from core.sensitive_hash import SensitiveHash
from core.settings import settings
from models.enums import (
    AuditAction,
    AuthorizationDecision,
    AuthorizationStatus,
    ListingStatus,
    ResourceType,
)
from models.models import Listing, OwnerAuthorization
from repos.listing_repo import ListingRepo
from repos.owner_authorization_repo import OwnerAuthorizationRepo

from .audit_service import AuditService

logger = logging.getLogger(__name__)


class OwnerAuthorizationService:
    """One-time owner authorization tokens.

    Only an HMAC of the token is stored. ``issue`` hands the raw token back
    exactly once; ``validate`` is read only; ``redeem`` flips the
    authorization and its listing in a single transaction, guarded by a
    conditional update so a token can be spent at most once.
    """

    def __init__(self, db):
        self.repo: OwnerAuthorizationRepo = OwnerAuthorizationRepo(db)
        self.listing_repo: ListingRepo = ListingRepo(db)
        self.audit: AuditService = AuditService(db)

    @staticmethod
    def generate_token() -> str:
        return secrets.token_urlsafe(32)

    async def issue(
        self,
        listing_id: uuid.UUID,
        owner_email: str,
        ttl_days: int | None = None,
    ) -> str:
        """Flushes the new row; the caller commits."""
        existing = await self.repo.get_pending_for_listing(listing_id)
        if existing:
            if existing.used_at is None and is_past(existing.expires_at):
                await self.repo.retire_expired(existing.id)
                logger.info(f"Retired expired authorization {existing.id} for listing {listing_id}")
            else:
                raise ConflictError(
                    "An authorization request is already pending for this listing",
                    details={"listing_id": str(listing_id)},
                )

        raw_token = self.generate_token()
        ttl = ttl_days if ttl_days is not None else settings.OWNER_AUTHORIZATION_TTL_DAYS

        try:
            await self.repo.create(
                {
                    "listing_id": listing_id,
                    "token_hash": SensitiveHash.hash_token(raw_token),
                    "owner_email": owner_email,
                    "status": AuthorizationStatus.PENDING,
                    "expires_at": expires_in(ttl),
                }
            )
        except IntegrityError:
            raise ConflictError(
                "An authorization request is already pending for this listing",
                details={"listing_id": str(listing_id)},
            )

        return raw_token

    async def validate(self, raw_token: str) -> tuple[OwnerAuthorization, Listing]:
        authorization = await self.repo.get_by_token_hash(SensitiveHash.hash_token(raw_token))
        if not authorization:
            raise NotFoundError("Authorization not found")

        if authorization.used_at is not None or authorization.status in (
            AuthorizationStatus.APPROVED,
            AuthorizationStatus.REJECTED,
        ):
            raise AlreadyUsedError("This authorization link has already been used")

        if authorization.status == AuthorizationStatus.EXPIRED or is_past(authorization.expires_at):
            raise ExpiredError("This authorization link has expired")

        listing = await self.listing_repo.get_by_id(authorization.listing_id)
        if not listing:
            raise NotFoundError("Listing not found")

        return authorization, listing

    async def redeem(
        self,
        raw_token: str,
        decision: AuthorizationDecision,
        actor: ActorContext,
    ) -> tuple[OwnerAuthorization, Listing]:
        authorization, listing = await self.validate(raw_token)

        approve = decision == AuthorizationDecision.APPROVE
        status = AuthorizationStatus.APPROVED if approve else AuthorizationStatus.REJECTED
        listing_status = ListingStatus.ACTIVE if approve else ListingStatus.CANCELLED
        decided_at = utcnow()

        try:
            claimed = await self.repo.mark_used(
                authorization.id,
                status=status,
                decided_at=decided_at,
                ip_hash=actor.ip_hash,
                user_agent=actor.user_agent,
            )
            if claimed != 1:
                raise AlreadyUsedError("This authorization link has already been used")

            moved = await self.listing_repo.set_status(
                listing.id,
                listing_status,
                expected={ListingStatus.PENDING_AUTHORIZATION},
            )
            if moved != 1:
                raise InvalidStateError(
                    "Listing is no longer awaiting owner authorization",
                    details={"listing_status": listing.status.value},
                )

            await self.audit.record(
                AuditAction.OWNER_APPROVAL if approve else AuditAction.OWNER_REJECTION,
                ResourceType.OWNER_AUTHORIZATION,
                authorization.id,
                metadata={
                    "listing_id": listing.id,
                    "owner_email": authorization.owner_email,
                    "decision": decision,
                    "listing_status": listing_status,
                },
                actor=actor,
            )
            await self.repo.db_commit()
        except Exception:
            await self.repo.db_rollback()
            raise

        await self.repo.db.refresh(authorization)
        await self.repo.db.refresh(listing)
        logger.info(
            f"Owner {status.value} listing {listing.id} via authorization {authorization.id}"
        )
        return authorization, listing
