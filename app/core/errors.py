"""
API error taxonomy and the FastAPI handlers that render it.

Every error leaves the service in the same envelope as a success, with
``success`` set to false and a machine-readable ``code``:

    {"success": false, "error": "...", "message": "...", "code": "NOT_FOUND"}

Handlers registered by install_exception_handlers():

    ApiError                 -> its own status / code
    RequestValidationError   -> 400 VALIDATION_ERROR
    HTTPException            -> status kept, code derived from status
    SQLAlchemyError          -> 500, statement logged (truncated)
    Exception                -> 500, detail only when Settings.expose_errors
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import Settings
from app.core.logging_config import get_logger

logger = get_logger("errors")

MAX_SQL_LOG_CHARS = 500


class ApiError(Exception):
    """Base class for errors that map to a client-visible response."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationFailed(ApiError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class InvalidStateTransition(ApiError):
    status_code = 400
    code = "INVALID_STATE"
    default_message = "Operation not allowed in the current state"


class AuthenticationFailed(ApiError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Not authenticated"


class PermissionDenied(ApiError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Permission denied"


class CrossOrgAccessDenied(PermissionDenied):
    code = "CROSS_ORG_ACCESS_DENIED"
    default_message = "Access to another organization's data is not allowed"


class EditDisabled(PermissionDenied):
    code = "EDIT_DISABLED_FOR_DATA_INTEGRITY"
    default_message = "Receive orders cannot be edited; void the order and create a new one"


class NotFound(ApiError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


class ConsistencyError(ApiError):
    status_code = 500
    code = "CONSISTENCY_ERROR"
    default_message = "Ledger and payment records could not be updated consistently"


class NumberingExhausted(ApiError):
    status_code = 500
    code = "NUMBER_ALLOCATION_FAILED"
    default_message = "Could not allocate a document number"


_STATUS_CODES = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


def error_body(message: str, code: str, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "error": message, "message": message, "code": code}
    body.update(extra)
    return body


def truncate_sql(statement: str | None) -> str | None:
    if statement is None:
        return None
    if len(statement) <= MAX_SQL_LOG_CHARS:
        return statement
    return statement[:MAX_SQL_LOG_CHARS] + "..."


def install_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(ApiError)
    async def _api_error(request: Request, exc: ApiError):
        extra = {"details": jsonable_encoder(exc.details)} if exc.details else {}
        if exc.status_code >= 500:
            logger.error(
                "api_error",
                extra={"code": exc.code, "path": request.url.path, "error_message": exc.message},
            )
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.code, **extra))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        first = errors[0] if errors else {}
        loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{loc}: {first.get('msg')}" if loc else str(first.get("msg") or "Invalid request")
        return JSONResponse(status_code=400, content=error_body(message, "VALIDATION_ERROR", details=errors))

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        code = _STATUS_CODES.get(exc.status_code, "ERROR")
        return JSONResponse(status_code=exc.status_code, content=error_body(str(exc.detail), code))

    @app.exception_handler(SQLAlchemyError)
    async def _db_error(request: Request, exc: SQLAlchemyError):
        logger.error(
            "database_error",
            extra={
                "path": request.url.path,
                "error_type": type(exc).__name__,
                "sql": truncate_sql(getattr(exc, "statement", None)),
            },
        )
        extra = {"detail": str(exc.__cause__ or exc)} if settings.expose_errors else {}
        return JSONResponse(status_code=500, content=error_body("Database error", "DATABASE_ERROR", **extra))

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("unhandled_error", extra={"path": request.url.path, "error_type": type(exc).__name__})
        extra = {"detail": repr(exc)} if settings.expose_errors else {}
        return JSONResponse(status_code=500, content=error_body("Internal server error", "INTERNAL_ERROR", **extra))
