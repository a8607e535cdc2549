import uuid
from typing import List

from sqlalchemy import and_, func, or_, select, update

from models.models import Message

from .base_repo import BaseRepo


class MessageRepo(BaseRepo):
    async def create(self, data: dict) -> Message:
        return await self._add(Message(**data))

    async def get_for_user(self, user_id: uuid.UUID) -> List[Message]:
        result = await self.db.execute(
            select(Message)
            .where(or_(Message.sender_id == user_id, Message.recipient_id == user_id))
            .order_by(Message.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_thread(
        self, listing_id: uuid.UUID, user_id: uuid.UUID, participant_id: uuid.UUID
    ) -> List[Message]:
        result = await self.db.execute(
            select(Message)
            .where(
                Message.listing_id == listing_id,
                or_(
                    and_(Message.sender_id == user_id, Message.recipient_id == participant_id),
                    and_(Message.sender_id == participant_id, Message.recipient_id == user_id),
                ),
            )
            .order_by(Message.created_at.asc())
        )
        return list(result.scalars().all())

    async def mark_read(
        self, listing_id: uuid.UUID, sender_id: uuid.UUID, recipient_id: uuid.UUID
    ) -> int:
        result = await self.db.execute(
            update(Message)
            .where(
                Message.listing_id == listing_id,
                Message.sender_id == sender_id,
                Message.recipient_id == recipient_id,
                Message.is_read.is_(False),
            )
            .values(is_read=True)
        )
        return result.rowcount

    async def count_unread(self, recipient_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(Message.id)).where(
                Message.recipient_id == recipient_id,
                Message.is_read.is_(False),
            )
        )
        return result.scalar_one()
