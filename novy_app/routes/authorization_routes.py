from fastapi import APIRouter, Depends, Request
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_db import get_db_async
from core.mapper import ORMMapper
from core.request_context import ActorContext, get_actor_context
from core.safe_handler import safe_handler
from schemas.schema import (
    AuthorizationDecisionIn,
    AuthorizationOut,
    AuthorizationResult,
    AuthorizationView,
    ListingOut,
)
from services.owner_authorization_service import OwnerAuthorizationService

router = APIRouter(tags=["Owner Authorization"])


@cbv(router)
class AuthorizationRoutes:
    @router.get("/authorize/{token}", response_model=AuthorizationView)
    @safe_handler
    async def view(
        self,
        request: Request,
        token: str,
        db: AsyncSession = Depends(get_db_async),
    ):
        authorization, listing = await OwnerAuthorizationService(db).validate(token)
        return AuthorizationView(
            authorization=ORMMapper.one(authorization, AuthorizationOut),
            listing=ORMMapper.one(listing, ListingOut),
        )

    @router.post("/authorize/{token}", response_model=AuthorizationResult)
    @safe_handler
    async def decide(
        self,
        request: Request,
        token: str,
        data: AuthorizationDecisionIn,
        db: AsyncSession = Depends(get_db_async),
        actor: ActorContext = Depends(get_actor_context),
    ):
        authorization, listing = await OwnerAuthorizationService(db).redeem(
            token, data.decision, actor
        )
        return AuthorizationResult(
            authorization=ORMMapper.one(authorization, AuthorizationOut),
            listing_status=listing.status,
        )
