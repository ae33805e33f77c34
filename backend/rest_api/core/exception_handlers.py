"""
Exception handlers: every error leaves the API as
``{"detail": str, "code": str, ...extra}``.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
from starlette.background import BackgroundTask

from shared.config.constants import SessionStatus
from shared.config.logging import rest_api_logger as logger
from shared.infrastructure.events import publish_session_closed
from shared.security.rate_limit import rate_limit_exceeded_handler
from shared.utils.exceptions import AppException, DatabaseError, SessionNotActiveError
from rest_api.services.events import dispatch_event


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers=exc.headers,
    )


async def session_not_active_handler(request: Request, exc: SessionNotActiveError) -> JSONResponse:
    """
    Terminal session error. When this request is the one that observed the
    TTL lapse, the expiry is announced to the session after the response.
    """
    background = None
    if exc.expired_now and exc.store_id:
        background = BackgroundTask(
            dispatch_event,
            publish_session_closed,
            store_id=exc.store_id,
            session_id=exc.session_id,
            status=SessionStatus.EXPIRED,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        background=background,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed payloads are reported as 400 VALIDATION_ERROR."""
    errors = [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": error.get("msg", ""),
        }
        for error in exc.errors()
    ]
    logger.info("Request validation failed", path=request.url.path, errors=errors)
    return JSONResponse(
        status_code=400,
        content={
            "detail": errors[0]["msg"] if errors else "Invalid request",
            "code": "VALIDATION_ERROR",
            "errors": errors,
        },
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Storage failures leave as a generic 500 without driver detail."""
    error = DatabaseError(
        f"{request.method} {request.url.path}",
        error_type=type(exc).__name__,
    )
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SessionNotActiveError, session_not_active_handler)
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
