import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .exceptions import AppException, IntegrityViolationError

logger = logging.getLogger(__name__)


class ValidationErrorHandler:
    async def __call__(self, request: Request, exc: RequestValidationError):
        errors = []

        for err in exc.errors():
            errors.append(
                {
                    "loc": err.get("loc"),
                    "msg": str(err.get("msg")),
                    "type": err.get("type"),
                }
            )

        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "error": "VALIDATION_ERROR",
                "message": "Validation failed",
                "details": errors,
            },
        )


class AppExceptionHandler:
    async def __call__(self, request: Request, exc: AppException):
        if isinstance(exc, IntegrityViolationError):
            logger.critical(
                f"[IntegrityViolation] {request.method} {request.url.path}: "
                f"{exc.message} {exc.details}"
            )
            message = "Something went wrong on our end. Please try again."
            details = {}
        else:
            message = exc.message
            details = exc.details

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "error": exc.code,
                "message": message,
                "details": details,
            },
        )
