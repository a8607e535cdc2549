import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any, List

from core.request_context import ActorContext
from models.enums import AuditAction, ResourceType
from models.models import AuditLog
from repos.audit_log_repo import AuditLogRepo


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


class AuditService:
    """Appends audit rows inside the caller's transaction."""

    def __init__(self, db):
        self.repo: AuditLogRepo = AuditLogRepo(db)

    async def record(
        self,
        action: AuditAction,
        resource_type: ResourceType,
        resource_id: uuid.UUID | str,
        user_id: uuid.UUID | None = None,
        metadata: dict | None = None,
        actor: ActorContext | None = None,
    ) -> AuditLog:
        actor = actor or ActorContext()
        return await self.repo.append(
            action=action,
            resource_type=resource_type.value,
            resource_id=str(resource_id),
            user_id=user_id,
            metadata=_jsonable(metadata or {}),
            ip_hash=actor.ip_hash,
            user_agent=actor.user_agent,
        )

    async def trail(self, resource_type: ResourceType, resource_id: uuid.UUID | str) -> List[AuditLog]:
        return await self.repo.get_for_resource(resource_type.value, str(resource_id))

    async def recent(self, limit: int = 100, action: AuditAction | None = None) -> List[AuditLog]:
        return await self.repo.get_recent(limit=limit, action=action)
