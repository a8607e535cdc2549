from fastapi import APIRouter, Depends, Request
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_user
from core.get_db import get_db_async
from core.request_context import ActorContext, get_actor_context
from core.safe_handler import safe_handler
from fintechs.stripe_client import StripeClient
from models.models import User
from schemas.schema import CheckoutCreate, CheckoutOut
from services.payment_service import PaymentService

router = APIRouter(tags=["Payments"])


def get_stripe_client() -> StripeClient:
    return StripeClient()


@cbv(router)
class PaymentRoutes:
    @router.post("/payments/create-checkout", response_model=CheckoutOut)
    @safe_handler
    async def create_checkout(
        self,
        request: Request,
        data: CheckoutCreate,
        db: AsyncSession = Depends(get_db_async),
        current_user: User = Depends(get_current_user),
        actor: ActorContext = Depends(get_actor_context),
        stripe_client: StripeClient = Depends(get_stripe_client),
    ):
        return await PaymentService(db, stripe_client=stripe_client).create_checkout(
            application_id=data.application_id,
            current_user=current_user,
            actor=actor,
        )
