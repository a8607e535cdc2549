import uuid

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from models.models import User
from repos.user_repo import UserRepo

from .exceptions import AuthenticationError
from .get_db import get_db_async
from .validators import jwt_protect


async def get_current_user(
    user_id: uuid.UUID = Depends(jwt_protect),
    db: AsyncSession = Depends(get_db_async),
) -> User:
    user = await UserRepo(db).get_by_id(user_id)
    if not user:
        raise AuthenticationError("Not authenticated")
    return user


async def get_current_user_optional(
    request: Request,
    db: AsyncSession = Depends(get_db_async),
) -> User | None:
    try:
        user_id = await jwt_protect(request)
    except AuthenticationError:
        return None

    return await UserRepo(db).get_by_id(user_id)
