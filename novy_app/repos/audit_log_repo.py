import uuid
from typing import List

from sqlalchemy import func, select

from models.enums import AuditAction
from models.models import AuditLog

from .base_repo import BaseRepo


class AuditLogRepo(BaseRepo):
    async def append(
        self,
        action: AuditAction,
        resource_type: str,
        resource_id: str,
        user_id: uuid.UUID | None = None,
        metadata: dict | None = None,
        ip_hash: str | None = None,
        user_agent: str | None = None,
    ) -> AuditLog:
        entry = AuditLog(
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            user_id=user_id,
            event_metadata=metadata or {},
            ip_hash=ip_hash,
            user_agent=user_agent,
        )
        return await self._add(entry)

    async def get_for_resource(self, resource_type: str, resource_id: str) -> List[AuditLog]:
        result = await self.db.execute(
            select(AuditLog)
            .where(
                AuditLog.resource_type == resource_type,
                AuditLog.resource_id == resource_id,
            )
            .order_by(AuditLog.created_at.asc())
        )
        return list(result.scalars().all())

    async def get_recent(self, limit: int = 100, action: AuditAction | None = None) -> List[AuditLog]:
        stmt = select(AuditLog).order_by(AuditLog.created_at.desc()).limit(limit)
        if action is not None:
            stmt = stmt.where(AuditLog.action == action)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count(self, action: AuditAction | None = None) -> int:
        stmt = select(func.count(AuditLog.id))
        if action is not None:
            stmt = stmt.where(AuditLog.action == action)
        result = await self.db.execute(stmt)
        return result.scalar_one()
