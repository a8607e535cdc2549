import uuid
from datetime import datetime

from sqlalchemy import select, update

from models.enums import AuthorizationStatus
from models.models import OwnerAuthorization

from .base_repo import BaseRepo


class OwnerAuthorizationRepo(BaseRepo):
    async def create(self, data: dict) -> OwnerAuthorization:
        return await self._add(OwnerAuthorization(**data))

    async def get_by_token_hash(self, token_hash: str) -> OwnerAuthorization | None:
        result = await self.db.execute(
            select(OwnerAuthorization).where(OwnerAuthorization.token_hash == token_hash)
        )
        return result.scalar_one_or_none()

    async def get_pending_for_listing(self, listing_id: uuid.UUID) -> OwnerAuthorization | None:
        result = await self.db.execute(
            select(OwnerAuthorization).where(
                OwnerAuthorization.listing_id == listing_id,
                OwnerAuthorization.status == AuthorizationStatus.PENDING,
            )
        )
        return result.scalar_one_or_none()

    async def retire_expired(self, authorization_id: uuid.UUID) -> int:
        result = await self.db.execute(
            update(OwnerAuthorization)
            .where(
                OwnerAuthorization.id == authorization_id,
                OwnerAuthorization.status == AuthorizationStatus.PENDING,
                OwnerAuthorization.used_at.is_(None),
            )
            .values(status=AuthorizationStatus.EXPIRED)
        )
        return result.rowcount

    async def mark_used(
        self,
        authorization_id: uuid.UUID,
        status: AuthorizationStatus,
        decided_at: datetime,
        ip_hash: str | None,
        user_agent: str | None,
    ) -> int:
        values = {
            "status": status,
            "used_at": decided_at,
            "ip_hash": ip_hash,
            "user_agent": user_agent,
        }
        if status == AuthorizationStatus.APPROVED:
            values["approved_at"] = decided_at
        else:
            values["rejected_at"] = decided_at

        result = await self.db.execute(
            update(OwnerAuthorization)
            .where(
                OwnerAuthorization.id == authorization_id,
                OwnerAuthorization.status == AuthorizationStatus.PENDING,
                OwnerAuthorization.used_at.is_(None),
            )
            .values(**values)
        )
        return result.rowcount
