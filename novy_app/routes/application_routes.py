import uuid
from typing import List

from fastapi import APIRouter, Depends, Request
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_user
from core.get_db import get_db_async
from core.request_context import ActorContext, get_actor_context
from core.safe_handler import safe_handler
from models.models import User
from schemas.schema import (
    ApplicationCreate,
    ApplicationOut,
    ApplicationReview,
    ApplicationWithListingOut,
)
from services.application_service import ApplicationService

router = APIRouter(tags=["Applications"])


@cbv(router)
class ApplicationRoutes:
    @router.post("/applications", status_code=201, response_model=ApplicationOut)
    @safe_handler
    async def apply(
        self,
        request: Request,
        data: ApplicationCreate,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
        actor: ActorContext = Depends(get_actor_context),
    ):
        return await ApplicationService(db).apply(
            data=data, current_user=current_user, actor=actor
        )

    @router.get("/applications/my", response_model=List[ApplicationWithListingOut])
    @safe_handler
    async def get_mine(
        self,
        request: Request,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await ApplicationService(db).get_my_applications(current_user=current_user)

    @router.get("/applications/{application_id}", response_model=ApplicationWithListingOut)
    @safe_handler
    async def get(
        self,
        request: Request,
        application_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await ApplicationService(db).get_application(
            application_id=application_id, current_user=current_user
        )

    @router.get("/listings/{listing_id}/applications", response_model=List[ApplicationOut])
    @safe_handler
    async def get_for_listing(
        self,
        request: Request,
        listing_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await ApplicationService(db).get_listing_applications(
            listing_id=listing_id, current_user=current_user
        )

    @router.patch("/applications/{application_id}/review", response_model=ApplicationOut)
    @safe_handler
    async def review(
        self,
        request: Request,
        application_id: uuid.UUID,
        data: ApplicationReview,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
        actor: ActorContext = Depends(get_actor_context),
    ):
        return await ApplicationService(db).review(
            application_id=application_id,
            decision=data.decision,
            current_user=current_user,
            actor=actor,
        )

    @router.post("/applications/{application_id}/withdraw", response_model=ApplicationOut)
    @safe_handler
    async def withdraw(
        self,
        request: Request,
        application_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
        actor: ActorContext = Depends(get_actor_context),
    ):
        return await ApplicationService(db).withdraw(
            application_id=application_id, current_user=current_user, actor=actor
        )
