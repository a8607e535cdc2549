import uuid
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_user, get_current_user_optional
from core.get_db import get_db_async
from core.request_context import ActorContext, get_actor_context
from core.safe_handler import safe_handler
from models.models import User
from schemas.schema import (
    DashboardStats,
    ListingCreate,
    ListingOut,
    ListingUpdate,
    OwnListingOut,
)
from services.listing_service import ListingService

router = APIRouter(tags=["Listings"])


@cbv(router)
class ListingRoutes:
    @router.post("/listings", status_code=201, response_model=OwnListingOut)
    @safe_handler
    async def create(
        self,
        request: Request,
        data: ListingCreate,
        background_tasks: BackgroundTasks,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
        actor: ActorContext = Depends(get_actor_context),
    ):
        return await ListingService(db).create_listing(
            data=data,
            current_user=current_user,
            background_tasks=background_tasks,
            actor=actor,
        )

    @router.get("/listings", response_model=List[ListingOut])
    @safe_handler
    async def get_active(
        self,
        request: Request,
        db: AsyncSession = Depends(get_db_async),
    ):
        return await ListingService(db).get_active_listings()

    @router.get("/listings/my", response_model=List[OwnListingOut])
    @safe_handler
    async def get_mine(
        self,
        request: Request,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await ListingService(db).get_my_listings(current_user=current_user)

    @router.get("/listings/{listing_id}", response_model=ListingOut)
    @safe_handler
    async def get(
        self,
        request: Request,
        listing_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User | None = Depends(get_current_user_optional),
    ):
        return await ListingService(db).get_listing(
            listing_id=listing_id, current_user=current_user
        )

    @router.patch("/listings/{listing_id}", response_model=OwnListingOut)
    @safe_handler
    async def update(
        self,
        request: Request,
        listing_id: uuid.UUID,
        data: ListingUpdate,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await ListingService(db).update_listing(
            listing_id=listing_id, data=data, current_user=current_user
        )

    @router.delete("/listings/{listing_id}")
    @safe_handler
    async def delete(
        self,
        request: Request,
        listing_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await ListingService(db).delete_listing(
            listing_id=listing_id, current_user=current_user
        )

    @router.post("/listings/{listing_id}/submit", response_model=OwnListingOut)
    @safe_handler
    async def submit(
        self,
        request: Request,
        listing_id: uuid.UUID,
        background_tasks: BackgroundTasks,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
        actor: ActorContext = Depends(get_actor_context),
    ):
        return await ListingService(db).submit_listing(
            listing_id=listing_id,
            current_user=current_user,
            background_tasks=background_tasks,
            actor=actor,
        )

    @router.get("/dashboard/stats", response_model=DashboardStats)
    @safe_handler
    async def dashboard_stats(
        self,
        request: Request,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await ListingService(db).dashboard_stats(current_user=current_user)
