import uuid
from datetime import datetime
from typing import List

from sqlalchemy import case, func, select, update

from models.enums import PaymentStatus
from models.models import Payment

from .base_repo import BaseRepo


class PaymentRepo(BaseRepo):
    async def create(self, data: dict) -> Payment:
        return await self._add(Payment(**data))

    async def get_by_id(self, payment_id: uuid.UUID) -> Payment | None:
        result = await self.db.execute(select(Payment).where(Payment.id == payment_id))
        return result.scalar_one_or_none()

    async def get_for_application(self, application_id: uuid.UUID) -> Payment | None:
        """Completed row if one exists, otherwise the most recent attempt."""
        completed_first = case((Payment.status == PaymentStatus.COMPLETED, 0), else_=1)
        result = await self.db.execute(
            select(Payment)
            .where(Payment.application_id == application_id)
            .order_by(completed_first, Payment.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_pending_for_application(self, application_id: uuid.UUID) -> Payment | None:
        result = await self.db.execute(
            select(Payment)
            .where(
                Payment.application_id == application_id,
                Payment.status == PaymentStatus.PENDING,
            )
            .order_by(Payment.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def set_checkout_session(self, payment: Payment, session_id: str) -> Payment:
        payment.stripe_checkout_session_id = session_id
        await self.db.flush()
        return payment

    async def mark_completed(
        self,
        payment_id: uuid.UUID,
        charge_id: str,
        payment_intent_id: str | None,
        completed_at: datetime,
    ) -> int:
        result = await self.db.execute(
            update(Payment)
            .where(
                Payment.id == payment_id,
                Payment.status != PaymentStatus.COMPLETED,
            )
            .values(
                status=PaymentStatus.COMPLETED,
                stripe_charge_id=charge_id,
                stripe_payment_intent_id=payment_intent_id,
                completed_at=completed_at,
            )
        )
        return result.rowcount

    async def get_all(self) -> List[Payment]:
        result = await self.db.execute(select(Payment).order_by(Payment.created_at.desc()))
        return list(result.scalars().all())

    async def count(self, status: PaymentStatus | None = None) -> int:
        stmt = select(func.count(Payment.id))
        if status is not None:
            stmt = stmt.where(Payment.status == status)
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def total_completed_amount(self) -> int:
        result = await self.db.execute(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(
                Payment.status == PaymentStatus.COMPLETED
            )
        )
        return int(result.scalar_one())
