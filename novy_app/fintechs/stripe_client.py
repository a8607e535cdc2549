import logging
from dataclasses import dataclass

import stripe

from core.breaker import CircuitBreaker
from core.credentials import StripeCredentialProvider
from core.exceptions import UpstreamError
from core.threads import run_in_thread

logger = logging.getLogger(__name__)

# request errors never trip the circuit
stripe_breaker = CircuitBreaker(
    name="stripe",
    failure_threshold=3,
    base_recovery_time=10,
    ignore=(stripe.InvalidRequestError, stripe.IdempotencyError),
)


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str


class StripeClient:
    """Hosted checkout over the Stripe SDK. Keys are fetched per call."""

    def __init__(
        self,
        credentials: StripeCredentialProvider | None = None,
        breaker: CircuitBreaker = stripe_breaker,
    ):
        self.credentials = credentials or StripeCredentialProvider()
        self.breaker = breaker

    async def create_checkout_session(
        self,
        *,
        amount: int,
        currency: str,
        product_name: str,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        client_reference_id: str,
        customer_email: str | None = None,
        idempotency_key: str | None = None,
    ) -> CheckoutSession:
        api_key = self.credentials.get().secret_key

        params = {
            "api_key": api_key,
            "mode": "payment",
            "line_items": [
                {
                    "price_data": {
                        "currency": currency,
                        "unit_amount": amount,
                        "product_data": {"name": product_name},
                    },
                    "quantity": 1,
                }
            ],
            "metadata": metadata,
            "payment_intent_data": {"metadata": metadata},
            "success_url": success_url,
            "cancel_url": cancel_url,
            "client_reference_id": client_reference_id,
        }
        if customer_email:
            params["customer_email"] = customer_email
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        async def handler():
            return await run_in_thread(stripe.checkout.Session.create, **params)

        try:
            session = await self.breaker.call(handler)
        except stripe.StripeError as e:
            logger.error(f"Stripe checkout session creation failed: {e}")
            raise UpstreamError(
                "Could not start checkout with the payment provider",
                details={"provider": "stripe"},
            )

        return CheckoutSession(id=session.id, url=session.url)
