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
from schemas.schema import ConversationOut, GateDecisionOut, MessageCreate, MessageOut
from services.messaging_service import MessagingService

router = APIRouter(tags=["Messages"])


@cbv(router)
class MessageRoutes:
    @router.post("/messages", status_code=201, response_model=MessageOut)
    @safe_handler
    async def send(
        self,
        request: Request,
        data: MessageCreate,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
        actor: ActorContext = Depends(get_actor_context),
    ):
        return await MessagingService(db).send_message(
            data=data, current_user=current_user, actor=actor
        )

    @router.get("/messages/conversations", response_model=List[ConversationOut])
    @safe_handler
    async def conversations(
        self,
        request: Request,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await MessagingService(db).get_conversations(current_user=current_user)

    @router.get(
        "/messages/can-message/{listing_id}/{participant_id}", response_model=GateDecisionOut
    )
    @safe_handler
    async def gate(
        self,
        request: Request,
        listing_id: uuid.UUID,
        participant_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await MessagingService(db).get_gate(
            listing_id=listing_id,
            participant_id=participant_id,
            current_user=current_user,
        )

    @router.get("/messages/{listing_id}/{participant_id}", response_model=List[MessageOut])
    @safe_handler
    async def thread(
        self,
        request: Request,
        listing_id: uuid.UUID,
        participant_id: uuid.UUID,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
    ):
        return await MessagingService(db).get_thread(
            listing_id=listing_id,
            participant_id=participant_id,
            current_user=current_user,
        )
