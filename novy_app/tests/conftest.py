"""Shared fixtures: a throwaway SQLite database per test and an ASGI client."""
import os
import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

# settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ALGORITHM"] = "HS256"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_novy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_novy"
os.environ["FRONTEND_URL"] = "http://novy.test"
os.environ.pop("EMAIL_SERVER", None)

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import models.event_listener  # noqa: F401
from core.date_helper import utcnow
from core.get_db import Base, get_db_async
from fintechs.stripe_client import CheckoutSession, StripeClient
from models.enums import (
    ApplicationPaymentStatus,
    ApplicationStatus,
    ListingStatus,
    ListingType,
)
from models.models import Application, Listing, User, UserRole


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'novy.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(db):
    async def _make_user(email=None, first_name="Test", last_name="User", roles=()):
        user = User(
            email=email or f"user-{uuid.uuid4().hex[:8]}@example.com",
            first_name=first_name,
            last_name=last_name,
        )
        db.add(user)
        await db.flush()
        for role in roles:
            db.add(UserRole(user_id=user.id, role=role))
        await db.commit()
        return user

    return _make_user


@pytest.fixture
def make_listing(db):
    async def _make_listing(
        owner,
        status=ListingStatus.ACTIVE,
        listing_type=ListingType.RESIDENTIAL,
        lease_expiration=None,
        owner_email="landlord@example.com",
    ):
        listing = Listing(
            user_id=owner.id,
            type=listing_type,
            status=status,
            title="Sunny two bedroom",
            address="12 Main Street",
            city="Austin",
            state="TX",
            zip_code="78701",
            rent=2400,
            lease_expiration=lease_expiration or utcnow() + timedelta(days=180),
            owner_email=owner_email,
            owner_name="Pat Landlord",
        )
        db.add(listing)
        await db.commit()
        return listing

    return _make_listing


@pytest.fixture
def make_application(db):
    async def _make_application(
        listing,
        applicant,
        status=ApplicationStatus.PENDING,
        payment_status=ApplicationPaymentStatus.PENDING,
    ):
        now = utcnow()
        application = Application(
            listing_id=listing.id,
            applicant_id=applicant.id,
            status=status,
            payment_status=payment_status,
            tos_accepted_at=now,
            disclaimer_accepted_at=now,
        )
        db.add(application)
        await db.commit()
        return application

    return _make_application

@pytest.fixture
def stripe_client():
    client = MagicMock(spec=StripeClient)
    client.create_checkout_session = AsyncMock(
        return_value=CheckoutSession(id="cs_test_1", url="https://checkout.stripe.test/cs_test_1")
    )
    return client


@pytest_asyncio.fixture
async def client(session_factory, stripe_client):
    from app import app
    from routes.payment_routes import get_stripe_client

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_async] = override_get_db
    app.dependency_overrides[get_stripe_client] = lambda: stripe_client

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()
