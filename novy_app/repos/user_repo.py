import uuid
from typing import List, Set

from sqlalchemy import func, select

from models.enums import RoleName
from models.models import User, UserRole

from .base_repo import BaseRepo


class UserRepo(BaseRepo):
    async def get_by_id(self, user_id: uuid.UUID) -> User | None:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        result = await self.db.execute(
            select(User).where(User.email == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def get_roles(self, user_id: uuid.UUID) -> Set[RoleName]:
        result = await self.db.execute(
            select(UserRole.role).where(UserRole.user_id == user_id)
        )
        return set(result.scalars().all())

    async def create(self, data: dict) -> User:
        data["email"] = data["email"].strip().lower()
        return await self._add(User(**data))

    async def grant_role(self, user_id: uuid.UUID, role: RoleName) -> UserRole:
        return await self._add(UserRole(user_id=user_id, role=role))

    async def get_all(self) -> List[User]:
        result = await self.db.execute(select(User).order_by(User.created_at.desc()))
        return list(result.scalars().all())

    async def count(self) -> int:
        result = await self.db.execute(select(func.count(User.id)))
        return result.scalar_one()
