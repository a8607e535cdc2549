import logging

import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

import models.event_listener  # noqa: F401
from core.catch_error_middleware import ErrorHandlerMiddleware
from core.exception_handler import AppExceptionHandler, ValidationErrorHandler
from core.exceptions import AppException
from core.lifespan import lifespan
from core.settings import settings
from routes.admin_routes import router as admin_router
from routes.application_routes import router as application_router
from routes.authorization_routes import router as authorization_router
from routes.listing_routes import router as listing_router
from routes.message_routes import router as message_router
from routes.payment_routes import router as payment_router
from routes.webhooks_routes import router as webhook_router

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

app = FastAPI(
    lifespan=lifespan,
    title=settings.PROJECT_NAME,
    version="1.0.0",
)

app.include_router(webhook_router, prefix="/api")
app.include_router(listing_router, prefix="/api")
app.include_router(authorization_router, prefix="/api")
app.include_router(application_router, prefix="/api")
app.include_router(payment_router, prefix="/api")
app.include_router(message_router, prefix="/api")
app.include_router(admin_router, prefix="/api/admin")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["System"])
@app.get("/api/health", tags=["System"])
async def health_check():
    return {"status": "ok"}


app.add_exception_handler(RequestValidationError, ValidationErrorHandler())
app.add_exception_handler(AppException, AppExceptionHandler())

app.add_middleware(ErrorHandlerMiddleware)


if __name__ == "__main__":
    uvicorn.run(app, host="127.0.0.1", port=8001)
