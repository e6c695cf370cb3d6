"""
Error types and the global handlers that render them.

Every error leaves the API in the same envelope::

    {"errors": {"body": ["message", ...]}}

Routers mostly raise ``HTTPException``; services raise the
``ConduitError`` subclasses below when the failure is a business rule
rather than a missing row.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ConduitError(Exception):
    """Base class for application errors; ``status_code`` picks the response code."""

    status_code = 400

    def __init__(self, message: str = "The request could not be processed",
                 context: Optional[Dict[str, Any]] = None):
        self.message = message
        # Logged, never returned to the client.
        self.context = context or {}
        super().__init__(message)


class NotFoundError(ConduitError):
    status_code = 404

    def __init__(self, resource: str = "resource", context: Optional[Dict[str, Any]] = None):
        super().__init__(f"{resource} not found", context)


class PermissionDeniedError(ConduitError):
    status_code = 403

    def __init__(self, message: str = "You are not allowed to modify this resource",
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)


class UnprocessableError(ConduitError):
    status_code = 422


class InvalidCredentialsError(ConduitError):
    status_code = 401

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__("email or password is invalid", context)


def error_body(messages: List[str]) -> Dict[str, Any]:
    return {"errors": {"body": messages}}


def _format_validation_error(error: Dict[str, Any]) -> str:
    # Drop the envelope keys ("body", "user", ...) from the location.
    location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(location[1:] if len(location) > 1 else location)
    message = error.get("msg", "is invalid")
    return f"{field} {message}".strip() if field else message


async def conduit_error_handler(request: Request, exc: ConduitError) -> JSONResponse:
    logger.info(
        "%s on %s %s: %s",
        type(exc).__name__, request.method, request.url.path, exc.message,
        extra={"context": exc.context},
    )
    return JSONResponse(error_body([exc.message]), status_code=exc.status_code)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, list) else [str(exc.detail)]
    return JSONResponse(error_body(detail), status_code=exc.status_code, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = [_format_validation_error(err) for err in exc.errors()]
    return JSONResponse(error_body(messages), status_code=422)


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    # Constraint names and SQL stay in the log.
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(
        error_body(["Record with same parameters already exists"]),
        status_code=422,
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ConduitError, conduit_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
