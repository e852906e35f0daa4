"""Custom exceptions and their conversion to response envelopes."""

import logging
import traceback
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ValidationException(HTTPException):
    def __init__(self, errors: List[str], message: str = "Validation error"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=message)
        self.errors = errors


class MalformedIdentifierException(HTTPException):
    def __init__(self, resource: str = "contact"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {resource} ID")


class PayloadTooLargeException(HTTPException):
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="Request body too large"
        )


class NotFoundException(HTTPException):
    def __init__(self, resource: str = "Contact"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"{resource} not found")


class ConflictException(HTTPException):
    def __init__(self, field: str, verb: str = "already exists"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=f"{field} {verb}")
        self.field = field


class DatabaseUnavailableError(RuntimeError):
    """Raised when the database cannot be reached after all retries."""


def _envelope(message: str, errors: Optional[List[str]] = None, **extra) -> dict:
    body = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    body.update(extra)
    return body


def register_exception_handlers(app: FastAPI, debug: bool = False) -> None:
    """Install handlers turning every failure into the error envelope.

    Args:
        app: Application to configure.
        debug: Include stack traces in 500 responses.
    """

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_envelope(str(exc.detail), getattr(exc, "errors", None)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = []
        for error in exc.errors():
            loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
            name = ".".join(loc) or "body"
            errors.append(f"{name}: {error['msg']}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_envelope("Validation error", errors),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        extra = {}
        if debug:
            extra["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_envelope("Server Error", **extra),
        )
