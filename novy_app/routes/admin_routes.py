import uuid
from typing import List

from fastapi import APIRouter, Depends, Query, Request
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_user
from core.get_db import get_db_async
from core.request_context import ActorContext, get_actor_context
from core.safe_handler import safe_handler
from models.models import User
from schemas.schema import (
    AdminListingStatusUpdate,
    AdminStats,
    ApplicationOut,
    AuditLogOut,
    OwnListingOut,
    PaymentOut,
    UserOut,
)
from services.admin_service import AdminService

router = APIRouter(tags=["Admin"])


@cbv(router)
class AdminRoutes:
    @router.get("/users", response_model=List[UserOut])
    @safe_handler
    async def users(
        self,
        request: Request,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await AdminService(db).get_users(current_user=current_user)

    @router.get("/listings", response_model=List[OwnListingOut])
    @safe_handler
    async def listings(
        self,
        request: Request,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await AdminService(db).get_listings(current_user=current_user)

    @router.get("/applications", response_model=List[ApplicationOut])
    @safe_handler
    async def applications(
        self,
        request: Request,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await AdminService(db).get_applications(current_user=current_user)

    @router.get("/payments", response_model=List[PaymentOut])
    @safe_handler
    async def payments(
        self,
        request: Request,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await AdminService(db).get_payments(current_user=current_user)

    @router.get("/audit-logs", response_model=List[AuditLogOut])
    @safe_handler
    async def audit_logs(
        self,
        request: Request,
        limit: int = Query(default=100, ge=1, le=500),
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await AdminService(db).get_audit_logs(current_user=current_user, limit=limit)

    @router.get("/stats", response_model=AdminStats)
    @safe_handler
    async def stats(
        self,
        request: Request,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await AdminService(db).get_stats(current_user=current_user)

    @router.patch("/listings/{listing_id}", response_model=OwnListingOut)
    @safe_handler
    async def set_listing_status(
        self,
        request: Request,
        listing_id: uuid.UUID,
        data: AdminListingStatusUpdate,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
        actor: ActorContext = Depends(get_actor_context),
    ):
        return await AdminService(db).set_listing_status(
            listing_id=listing_id,
            status=data.status,
            current_user=current_user,
            actor=actor,
        )
