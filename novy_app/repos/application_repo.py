import uuid
from typing import Iterable, List

from sqlalchemy import func, select, update
from sqlalchemy.orm import selectinload

from models.enums import (
    LIVE_APPLICATION_STATUSES,
    ApplicationPaymentStatus,
    ApplicationStatus,
)
from models.models import Application, Listing

from .base_repo import BaseRepo


class ApplicationRepo(BaseRepo):
    async def create(self, data: dict) -> Application:
        return await self._add(Application(**data))

    async def get_by_id(self, application_id: uuid.UUID) -> Application | None:
        result = await self.db.execute(
            select(Application).where(Application.id == application_id)
        )
        return result.scalar_one_or_none()

    async def get_with_listing(self, application_id: uuid.UUID) -> Application | None:
        result = await self.db.execute(
            select(Application)
            .options(selectinload(Application.listing))
            .where(Application.id == application_id)
        )
        return result.scalar_one_or_none()

    async def get_live(self, listing_id: uuid.UUID, applicant_id: uuid.UUID) -> Application | None:
        result = await self.db.execute(
            select(Application)
            .where(
                Application.listing_id == listing_id,
                Application.applicant_id == applicant_id,
                Application.status.in_(list(LIVE_APPLICATION_STATUSES)),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_by_applicant(self, applicant_id: uuid.UUID) -> List[Application]:
        result = await self.db.execute(
            select(Application)
            .options(selectinload(Application.listing))
            .where(Application.applicant_id == applicant_id)
            .order_by(Application.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_by_listing(self, listing_id: uuid.UUID) -> List[Application]:
        result = await self.db.execute(
            select(Application)
            .where(Application.listing_id == listing_id)
            .order_by(Application.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_all(self) -> List[Application]:
        result = await self.db.execute(
            select(Application).order_by(Application.created_at.desc())
        )
        return list(result.scalars().all())

    async def transition(
        self,
        application_id: uuid.UUID,
        from_statuses: Iterable[ApplicationStatus],
        to_status: ApplicationStatus,
    ) -> int:
        result = await self.db.execute(
            update(Application)
            .where(
                Application.id == application_id,
                Application.status.in_(list(from_statuses)),
            )
            .values(status=to_status)
        )
        return result.rowcount

    async def mark_paid(self, application_id: uuid.UUID, payment_intent_id: str | None) -> int:
        result = await self.db.execute(
            update(Application)
            .where(
                Application.id == application_id,
                Application.status == ApplicationStatus.APPROVED,
                Application.payment_status == ApplicationPaymentStatus.PENDING,
            )
            .values(
                payment_status=ApplicationPaymentStatus.PAID,
                stripe_payment_intent_id=payment_intent_id,
            )
        )
        return result.rowcount

    async def count(self, status: ApplicationStatus | None = None) -> int:
        stmt = select(func.count(Application.id))
        if status is not None:
            stmt = stmt.where(Application.status == status)
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def count_for_listing(self, listing_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(Application.id)).where(Application.listing_id == listing_id)
        )
        return result.scalar_one()

    async def count_pending_for_owner(self, owner_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(Application.id))
            .join(Listing, Listing.id == Application.listing_id)
            .where(
                Listing.user_id == owner_id,
                Application.status.in_(
                    [ApplicationStatus.PENDING, ApplicationStatus.UNDER_REVIEW]
                ),
            )
        )
        return result.scalar_one()
