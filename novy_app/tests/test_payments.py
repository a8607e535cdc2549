"""Tests for starting a platform-fee checkout"""
import uuid
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import stripe

from core.breaker import CircuitBreaker
from core.exceptions import ConflictError, ForbiddenError, NotFoundError, UpstreamError
from fintechs.stripe_client import StripeClient, stripe_breaker
from models.enums import (
    ApplicationPaymentStatus,
    ApplicationStatus,
    AuditAction,
    ListingStatus,
    ListingType,
    PaymentStatus,
    ResourceType,
)
from repos.payment_repo import PaymentRepo
from services.audit_service import AuditService
from services.payment_service import PaymentService


async def approved_application(make_user, make_listing, make_application, **listing_kwargs):
    owner = await make_user()
    applicant = await make_user()
    listing = await make_listing(owner, **listing_kwargs)
    application = await make_application(listing, applicant, status=ApplicationStatus.APPROVED)
    return owner, applicant, listing, application


class TestCreateCheckout:
    @pytest.mark.asyncio
    async def test_residential_fee(self, db, make_user, make_listing, make_application, stripe_client):
        _, applicant, listing, application = await approved_application(
            make_user, make_listing, make_application
        )

        result = await PaymentService(db, stripe_client=stripe_client).create_checkout(
            application.id, applicant
        )

        assert result.session_id == "cs_test_1"
        assert result.checkout_url == "https://checkout.stripe.test/cs_test_1"

        kwargs = stripe_client.create_checkout_session.call_args.kwargs
        assert kwargs["amount"] == 39900
        assert kwargs["currency"] == "usd"
        assert kwargs["metadata"] == {
            "applicationId": str(application.id),
            "userId": str(applicant.id),
            "listingId": str(listing.id),
            "listingType": "residential",
        }
        assert kwargs["customer_email"] == applicant.email
        assert kwargs["idempotency_key"].startswith("checkout-")

    @pytest.mark.asyncio
    async def test_commercial_fee(self, db, make_user, make_listing, make_application, stripe_client):
        _, applicant, _, application = await approved_application(
            make_user, make_listing, make_application, listing_type=ListingType.COMMERCIAL
        )

        await PaymentService(db, stripe_client=stripe_client).create_checkout(
            application.id, applicant
        )

        assert stripe_client.create_checkout_session.call_args.kwargs["amount"] == 250000

    @pytest.mark.asyncio
    async def test_pending_payment_is_recorded_and_audited(
        self, db, make_user, make_listing, make_application, stripe_client
    ):
        _, applicant, _, application = await approved_application(
            make_user, make_listing, make_application
        )

        await PaymentService(db, stripe_client=stripe_client).create_checkout(
            application.id, applicant
        )

        payment = await PaymentRepo(db).get_for_application(application.id)
        assert payment.status == PaymentStatus.PENDING
        assert payment.amount == 39900
        assert payment.stripe_checkout_session_id == "cs_test_1"

        trail = await AuditService(db).trail(ResourceType.PAYMENT, payment.id)
        assert [entry.action for entry in trail] == [AuditAction.PAYMENT_INITIATED]
        assert trail[0].event_metadata["stripe_session_id"] == "cs_test_1"

    @pytest.mark.asyncio
    async def test_retry_reuses_pending_payment(
        self, db, make_user, make_listing, make_application, stripe_client
    ):
        _, applicant, _, application = await approved_application(
            make_user, make_listing, make_application
        )
        service = PaymentService(db, stripe_client=stripe_client)

        await service.create_checkout(application.id, applicant)
        first_key = stripe_client.create_checkout_session.call_args.kwargs["idempotency_key"]
        await service.create_checkout(application.id, applicant)
        second_key = stripe_client.create_checkout_session.call_args.kwargs["idempotency_key"]

        assert first_key == second_key
        assert await PaymentRepo(db).count() == 1

    @pytest.mark.asyncio
    async def test_edited_listing_gets_a_new_key(
        self, db, make_user, make_listing, make_application, stripe_client
    ):
        _, applicant, listing, application = await approved_application(
            make_user, make_listing, make_application
        )
        service = PaymentService(db, stripe_client=stripe_client)

        await service.create_checkout(application.id, applicant)
        first_key = stripe_client.create_checkout_session.call_args.kwargs["idempotency_key"]
        listing.title = "Sunny two bedroom, parking included"
        await db.commit()
        await service.create_checkout(application.id, applicant)
        second = stripe_client.create_checkout_session.call_args.kwargs

        assert second["product_name"] == "Lease transfer fee: Sunny two bedroom, parking included"
        assert second["idempotency_key"] != first_key
        payment = await PaymentRepo(db).get_for_application(application.id)
        assert second["idempotency_key"].startswith(f"checkout-{payment.id}-")
        assert await PaymentRepo(db).count() == 1


class TestCheckoutPreconditions:
    @pytest.mark.asyncio
    async def test_unknown_application(self, db, make_user, stripe_client):
        applicant = await make_user()

        with pytest.raises(NotFoundError):
            await PaymentService(db, stripe_client=stripe_client).create_checkout(
                uuid.uuid4(), applicant
            )

    @pytest.mark.asyncio
    async def test_only_applicant_pays(self, db, make_user, make_listing, make_application, stripe_client):
        owner, _, _, application = await approved_application(
            make_user, make_listing, make_application
        )

        with pytest.raises(ForbiddenError):
            await PaymentService(db, stripe_client=stripe_client).create_checkout(
                application.id, owner
            )
        stripe_client.create_checkout_session.assert_not_called()

    @pytest.mark.asyncio
    async def test_paid_is_checked_before_approval(
        self, db, make_user, make_listing, make_application, stripe_client
    ):
        owner = await make_user()
        applicant = await make_user()
        listing = await make_listing(owner)
        application = await make_application(
            listing, applicant, payment_status=ApplicationPaymentStatus.PAID
        )

        with pytest.raises(ConflictError):
            await PaymentService(db, stripe_client=stripe_client).create_checkout(
                application.id, applicant
            )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status",
        [
            ApplicationStatus.PENDING,
            ApplicationStatus.UNDER_REVIEW,
            ApplicationStatus.REJECTED,
            ApplicationStatus.WITHDRAWN,
        ],
    )
    async def test_requires_owner_approval(
        self, db, make_user, make_listing, make_application, stripe_client, status
    ):
        owner = await make_user()
        applicant = await make_user()
        listing = await make_listing(owner)
        application = await make_application(listing, applicant, status=status)

        with pytest.raises(ForbiddenError) as exc:
            await PaymentService(db, stripe_client=stripe_client).create_checkout(
                application.id, applicant
            )

        assert exc.value.message == "Payment can only be made after owner approval"
        stripe_client.create_checkout_session.assert_not_called()
        assert await PaymentRepo(db).count() == 0

    @pytest.mark.asyncio
    async def test_listing_must_still_be_active(
        self, db, make_user, make_listing, make_application, stripe_client
    ):
        _, applicant, _, application = await approved_application(
            make_user, make_listing, make_application, status=ListingStatus.TRANSFERRED
        )

        with pytest.raises(ForbiddenError):
            await PaymentService(db, stripe_client=stripe_client).create_checkout(
                application.id, applicant
            )

    @pytest.mark.asyncio
    async def test_provider_failure_leaves_no_payment(
        self, db, make_user, make_listing, make_application, stripe_client
    ):
        _, applicant, _, application = await approved_application(
            make_user, make_listing, make_application
        )
        application_id = application.id
        stripe_client.create_checkout_session.side_effect = UpstreamError("stripe down")

        with pytest.raises(UpstreamError):
            await PaymentService(db, stripe_client=stripe_client).create_checkout(
                application_id, applicant
            )

        assert await PaymentRepo(db).count() == 0
        assert await AuditService(db).recent() == []


class TestStripeClient:
    @pytest.mark.asyncio
    async def test_session_params(self):
        client = StripeClient(breaker=CircuitBreaker(name="stripe-test"))
        created = SimpleNamespace(id="cs_live_1", url="https://checkout.stripe.com/c/cs_live_1")

        with patch("fintechs.stripe_client.stripe.checkout.Session.create", return_value=created) as create:
            session = await client.create_checkout_session(
                amount=39900,
                currency="usd",
                product_name="Lease transfer fee",
                metadata={"applicationId": "a", "userId": "u"},
                success_url="http://novy.test/ok",
                cancel_url="http://novy.test/cancel",
                client_reference_id="a",
                idempotency_key="checkout-p-39900",
            )

        assert session.id == "cs_live_1"
        params = create.call_args.kwargs
        assert params["api_key"] == "sk_test_novy"
        assert params["mode"] == "payment"
        assert params["line_items"][0]["price_data"]["unit_amount"] == 39900
        assert params["payment_intent_data"] == {"metadata": {"applicationId": "a", "userId": "u"}}
        assert params["idempotency_key"] == "checkout-p-39900"
        assert "customer_email" not in params

    @pytest.mark.asyncio
    async def test_stripe_errors_become_upstream_errors(self):
        client = StripeClient(breaker=CircuitBreaker(name="stripe-test"))
        failing = MagicMock(side_effect=stripe.APIConnectionError("connection reset"))

        with patch("fintechs.stripe_client.stripe.checkout.Session.create", failing):
            with pytest.raises(UpstreamError):
                await client.create_checkout_session(
                    amount=100,
                    currency="usd",
                    product_name="fee",
                    metadata={},
                    success_url="http://novy.test/ok",
                    cancel_url="http://novy.test/cancel",
                    client_reference_id="a",
                )

    @pytest.mark.asyncio
    async def test_rejected_requests_do_not_trip_the_circuit(self):
        breaker = CircuitBreaker(
            name="stripe-test",
            failure_threshold=1,
            ignore=(stripe.InvalidRequestError, stripe.IdempotencyError),
        )
        client = StripeClient(breaker=breaker)
        failing = MagicMock(side_effect=stripe.IdempotencyError("Key reused with other parameters"))

        with patch("fintechs.stripe_client.stripe.checkout.Session.create", failing):
            with pytest.raises(UpstreamError):
                await client.create_checkout_session(
                    amount=100,
                    currency="usd",
                    product_name="fee",
                    metadata={},
                    success_url="http://novy.test/ok",
                    cancel_url="http://novy.test/cancel",
                    client_reference_id="a",
                    idempotency_key="checkout-p-abc",
                )

        assert breaker.state == "CLOSED"
        assert breaker.failure_count == 0

    def test_shared_stripe_circuit_ignores_request_errors(self):
        assert issubclass(stripe.InvalidRequestError, stripe_breaker.ignore)
        assert issubclass(stripe.IdempotencyError, stripe_breaker.ignore)
