import uuid
from typing import Iterable, List

from sqlalchemy import delete, func, select, update

from models.enums import ListingStatus
from models.models import Listing, OwnerAuthorization

from .base_repo import BaseRepo


class ListingRepo(BaseRepo):
    async def create(self, data: dict) -> Listing:
        return await self._add(Listing(**data))

    async def get_by_id(self, listing_id: uuid.UUID) -> Listing | None:
        result = await self.db.execute(select(Listing).where(Listing.id == listing_id))
        return result.scalar_one_or_none()

    async def get_active(self) -> List[Listing]:
        result = await self.db.execute(
            select(Listing)
            .where(Listing.status == ListingStatus.ACTIVE)
            .order_by(Listing.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_by_user(self, user_id: uuid.UUID) -> List[Listing]:
        result = await self.db.execute(
            select(Listing)
            .where(Listing.user_id == user_id)
            .order_by(Listing.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_all(self) -> List[Listing]:
        result = await self.db.execute(select(Listing).order_by(Listing.created_at.desc()))
        return list(result.scalars().all())

    async def update_fields(self, listing: Listing, fields: dict) -> Listing:
        for key, value in fields.items():
            setattr(listing, key, value)
        await self.db.flush()
        return listing

    async def set_status(
        self,
        listing_id: uuid.UUID,
        status: ListingStatus,
        expected: Iterable[ListingStatus] | None = None,
    ) -> int:
        stmt = update(Listing).where(Listing.id == listing_id).values(status=status)
        if expected is not None:
            stmt = stmt.where(Listing.status.in_(list(expected)))
        result = await self.db.execute(stmt)
        return result.rowcount

    async def delete(self, listing_id: uuid.UUID) -> None:
        await self.db.execute(
            delete(OwnerAuthorization).where(OwnerAuthorization.listing_id == listing_id)
        )
        await self.db.execute(delete(Listing).where(Listing.id == listing_id))

    async def count(self, status: ListingStatus | None = None, user_id: uuid.UUID | None = None) -> int:
        stmt = select(func.count(Listing.id))
        if status is not None:
            stmt = stmt.where(Listing.status == status)
        if user_id is not None:
            stmt = stmt.where(Listing.user_id == user_id)
        result = await self.db.execute(stmt)
        return result.scalar_one()
