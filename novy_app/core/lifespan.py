import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text

from .get_db import AsyncSessionLocal, async_engine
from .settings import settings

logger = logging.getLogger("startup")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Waiting for application startup...")

    if not settings.SECRET_KEY:
        logger.error("SECRET_KEY is not set; authorization tokens and JWTs cannot be verified")
    if not settings.STRIPE_SECRET_KEY:
        logger.warning("STRIPE_SECRET_KEY is not set; checkout is disabled")
    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.warning("STRIPE_WEBHOOK_SECRET is not set; all webhooks will be rejected")
    if not settings.EMAIL_SERVER:
        logger.warning("EMAIL_SERVER is not set; owner authorization emails will not be sent")

    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
        logger.info("Database connected.")
    except Exception:
        logger.exception("Database connection failed")

    logger.info("Application startup complete.")

    yield

    await async_engine.dispose()
    logger.info("Database engine disposed.")
