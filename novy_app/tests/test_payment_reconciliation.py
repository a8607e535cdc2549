"""Tests for applying verified Stripe events"""
import asyncio
import uuid

import pytest

from core.exceptions import IntegrityViolationError
from models.enums import (
    ApplicationPaymentStatus,
    ApplicationStatus,
    AuditAction,
    PaymentStatus,
    ResourceType,
)
from repos.payment_repo import PaymentRepo
from services.audit_service import AuditService
from services.payment_reconciliation_service import PaymentReconciliationService
from services.payment_service import PaymentService
from support import payment_intent_event


async def approved_application(make_user, make_listing, make_application):
    owner = await make_user()
    applicant = await make_user()
    listing = await make_listing(owner)
    return await make_application(listing, applicant, status=ApplicationStatus.APPROVED)


def checkout_completed_event(application, payment_status="paid", event_id="evt_cs_1"):
    return {
        "id": event_id,
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_test_1",
                "object": "checkout.session",
                "payment_status": payment_status,
                "payment_intent": {"id": "pi_from_session", "object": "payment_intent"},
                "amount_total": 39900,
                "currency": "usd",
                "metadata": {
                    "applicationId": str(application.id),
                    "userId": str(application.applicant_id),
                    "listingId": str(application.listing_id),
                    "listingType": "residential",
                },
            }
        },
    }


class TestParsing:
    def test_payment_intent_event(self):
        application_id, user_id, listing_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        event = {
            "id": "evt_1",
            "type": "payment_intent.succeeded",
            "data": {
                "object": {
                    "id": "pi_1",
                    "amount_received": 39900,
                    "currency": "usd",
                    "metadata": {
                        "applicationId": str(application_id),
                        "userId": str(user_id),
                        "listingId": str(listing_id),
                        "listingType": "residential",
                    },
                }
            },
        }

        parsed = PaymentReconciliationService.parse_succeeded(event)

        assert parsed.payment_intent_id == "pi_1"
        assert parsed.amount == 39900
        assert parsed.metadata.application_id == application_id
        assert parsed.metadata.listing_id == listing_id

    def test_snake_case_metadata_is_accepted(self):
        application_id, user_id = uuid.uuid4(), uuid.uuid4()
        event = {
            "id": "evt_2",
            "type": "payment_intent.succeeded",
            "data": {
                "object": {
                    "id": "pi_2",
                    "metadata": {"application_id": str(application_id), "user_id": str(user_id)},
                }
            },
        }

        parsed = PaymentReconciliationService.parse_succeeded(event)

        assert parsed.metadata.user_id == user_id
        assert parsed.metadata.listing_id is None

    @pytest.mark.parametrize(
        "metadata",
        [
            {},
            {"applicationId": "not-a-uuid", "userId": str(uuid.uuid4())},
            {"applicationId": str(uuid.uuid4())},
            {"applicationId": str(uuid.uuid4()), "userId": str(uuid.uuid4()), "listingType": "castle"},
        ],
    )
    def test_malformed_metadata_is_rejected(self, metadata):
        event = {
            "id": "evt_bad",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_bad", "metadata": metadata}},
        }

        assert PaymentReconciliationService.parse_succeeded(event) is None

    def test_unpaid_checkout_session_is_not_a_success(self):
        event = {
            "id": "evt_3",
            "type": "checkout.session.completed",
            "data": {"object": {"id": "cs_1", "payment_status": "unpaid", "metadata": {}}},
        }

        assert PaymentReconciliationService.parse_succeeded(event) is None


class TestReconcile:
    @pytest.mark.asyncio
    async def test_marks_application_paid(self, db, make_user, make_listing, make_application):
        application = await approved_application(make_user, make_listing, make_application)

        status = await PaymentReconciliationService(db).handle_event(
            payment_intent_event(application)
        )

        assert status == "processed"
        await db.refresh(application)
        assert application.payment_status == ApplicationPaymentStatus.PAID
        assert application.stripe_payment_intent_id == "pi_test_1"

        payment = await PaymentRepo(db).get_for_application(application.id)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.amount == 39900
        assert payment.stripe_charge_id == "pi_test_1"
        assert payment.completed_at is not None

        trail = await AuditService(db).trail(ResourceType.PAYMENT, payment.id)
        assert [entry.action for entry in trail] == [AuditAction.PAYMENT_COMPLETED]
        assert trail[0].user_id == application.applicant_id
        assert trail[0].event_metadata["stripe_event_id"] == "evt_test_1"

    @pytest.mark.asyncio
    async def test_redelivery_is_a_no_op(self, db, make_user, make_listing, make_application):
        application = await approved_application(make_user, make_listing, make_application)
        service = PaymentReconciliationService(db)
        event = payment_intent_event(application)

        assert await service.handle_event(event) == "processed"
        assert await service.handle_event(event) == "already_handled"

        assert await PaymentRepo(db).count(status=PaymentStatus.COMPLETED) == 1
        assert len(await AuditService(db).recent(action=AuditAction.PAYMENT_COMPLETED)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_deliveries_apply_once(
        self, db, session_factory, make_user, make_listing, make_application
    ):
        application = await approved_application(make_user, make_listing, make_application)
        event = payment_intent_event(application)

        async def deliver():
            async with session_factory() as session:
                return await PaymentReconciliationService(session).handle_event(event)

        results = await asyncio.gather(deliver(), deliver(), deliver())

        assert sorted(results) == ["already_handled", "already_handled", "processed"]
        await db.refresh(application)
        assert application.payment_status == ApplicationPaymentStatus.PAID
        assert await PaymentRepo(db).count(status=PaymentStatus.COMPLETED) == 1
        assert len(await AuditService(db).recent(action=AuditAction.PAYMENT_COMPLETED)) == 1

    @pytest.mark.asyncio
    async def test_both_success_events_apply_once(self, db, make_user, make_listing, make_application):
        application = await approved_application(make_user, make_listing, make_application)
        service = PaymentReconciliationService(db)

        assert await service.handle_event(checkout_completed_event(application)) == "processed"
        assert await service.handle_event(
            payment_intent_event(application, intent_id="pi_from_session")
        ) == "already_handled"

        payment = await PaymentRepo(db).get_for_application(application.id)
        assert payment.stripe_checkout_session_id == "cs_test_1"
        assert payment.stripe_payment_intent_id == "pi_from_session"
        assert await PaymentRepo(db).count() == 1

    @pytest.mark.asyncio
    async def test_completes_the_checkout_payment_row(
        self, db, make_user, make_listing, make_application, stripe_client
    ):
        owner = await make_user()
        applicant = await make_user()
        listing = await make_listing(owner)
        application = await make_application(listing, applicant, status=ApplicationStatus.APPROVED)
        await PaymentService(db, stripe_client=stripe_client).create_checkout(
            application.id, applicant
        )
        pending = await PaymentRepo(db).get_for_application(application.id)
        pending_id = pending.id

        await PaymentReconciliationService(db).handle_event(payment_intent_event(application))

        payments = await PaymentRepo(db).get_all()
        assert [p.id for p in payments] == [pending_id]
        await db.refresh(payments[0])
        assert payments[0].status == PaymentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_unpaid_checkout_session_is_ignored(
        self, db, make_user, make_listing, make_application
    ):
        application = await approved_application(make_user, make_listing, make_application)

        status = await PaymentReconciliationService(db).handle_event(
            checkout_completed_event(application, payment_status="unpaid")
        )

        assert status == "ignored"
        await db.refresh(application)
        assert application.payment_status == ApplicationPaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_listing_mismatch_is_an_integrity_violation(
        self, db, make_user, make_listing, make_application
    ):
        application = await approved_application(make_user, make_listing, make_application)
        event = payment_intent_event(application, listingId=str(uuid.uuid4()))

        with pytest.raises(IntegrityViolationError):
            await PaymentReconciliationService(db).handle_event(event)

        await db.refresh(application)
        assert application.payment_status == ApplicationPaymentStatus.PENDING
        assert await PaymentRepo(db).count() == 0

    @pytest.mark.asyncio
    async def test_user_mismatch_is_an_integrity_violation(
        self, db, make_user, make_listing, make_application
    ):
        application = await approved_application(make_user, make_listing, make_application)
        event = payment_intent_event(application, userId=str(uuid.uuid4()))

        with pytest.raises(IntegrityViolationError):
            await PaymentReconciliationService(db).handle_event(event)

    @pytest.mark.asyncio
    async def test_unknown_application(self, db, make_user, make_listing, make_application):
        application = await approved_application(make_user, make_listing, make_application)
        event = payment_intent_event(application, applicationId=str(uuid.uuid4()))

        assert await PaymentReconciliationService(db).handle_event(event) == "already_handled"

    @pytest.mark.asyncio
    async def test_unapproved_application_is_not_paid(
        self, db, make_user, make_listing, make_application
    ):
        owner = await make_user()
        applicant = await make_user()
        listing = await make_listing(owner)
        application = await make_application(listing, applicant, status=ApplicationStatus.PENDING)

        status = await PaymentReconciliationService(db).handle_event(
            payment_intent_event(application)
        )

        assert status == "already_handled"
        await db.refresh(application)
        assert application.payment_status == ApplicationPaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_malformed_metadata_changes_nothing(
        self, db, make_user, make_listing, make_application
    ):
        application = await approved_application(make_user, make_listing, make_application)
        event = payment_intent_event(application, applicationId="garbage")

        assert await PaymentReconciliationService(db).handle_event(event) == "ignored"
        assert await AuditService(db).recent() == []

    @pytest.mark.asyncio
    async def test_failure_is_recorded_only(self, db, make_user, make_listing, make_application):
        application = await approved_application(make_user, make_listing, make_application)
        event = payment_intent_event(application)
        event["type"] = "payment_intent.payment_failed"
        event["data"]["object"]["last_payment_error"] = {"message": "Your card was declined."}

        status = await PaymentReconciliationService(db).handle_event(event)

        assert status == "recorded"
        failures = await AuditService(db).recent(action=AuditAction.PAYMENT_FAILED)
        assert len(failures) == 1
        assert failures[0].event_metadata["failure_message"] == "Your card was declined."
        await db.refresh(application)
        assert application.status == ApplicationStatus.APPROVED
        assert application.payment_status == ApplicationPaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_unrelated_event_types_are_ignored(self, db):
        event = {"id": "evt_x", "type": "customer.created", "data": {"object": {"id": "cus_1"}}}

        assert await PaymentReconciliationService(db).handle_event(event) == "ignored"
