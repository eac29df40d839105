"""Exception handlers of the bridge API.

register_exception_handlers() maps every failure to the error envelope:
- NolejHttpError and WorkflowError carry their own status and code
- Starlette HTTP errors (unknown route, wrong method) use the reason phrase
- Request validation errors list the offending fields
- Anything else is a 500 without exception details
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from nolej.api.error_model import code_for_status, error_response, request_id_for
from nolej.services.workflow.service import WorkflowError

logger = logging.getLogger(__name__)

# Request parts FastAPI prefixes to validation locations.
_LOCATION_PREFIXES = frozenset({"body", "query", "path", "header"})


class NolejHttpError(Exception):
    """Error raised by routes and dependencies with an explicit answer.

    Attributes:
        status_code: HTTP status, e.g. 401.
        code: Machine-readable code, e.g. "unauthorized".
        message: Human-readable message.
        details: Optional extra context.
    """

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


async def _coded_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, NolejHttpError | WorkflowError)

    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(
        request,
        exc.status_code,
        exc.code,
        exc.message,
        getattr(exc, "details", None),
    )


async def _http_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, HTTPException)

    message = str(exc.detail) if exc.detail else f"HTTP {exc.status_code}"
    return error_response(request, exc.status_code, code_for_status(exc.status_code), message)


def _field_name(location: Sequence[Any]) -> str:
    parts = [str(part) for part in location if part not in _LOCATION_PREFIXES]
    return ".".join(parts) or "request"


async def _validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Report field names and messages only, never the rejected input."""
    assert isinstance(exc, RequestValidationError)

    errors = [
        {"field": _field_name(error.get("loc", ())), "message": error.get("msg", "invalid")}
        for error in exc.errors()
    ]
    return error_response(
        request,
        422,
        "REQUEST_VALIDATION_FAILED",
        "Request validation failed",
        {"errors": errors} if errors else None,
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled %s on %s %s (request_id=%s)",
        type(exc).__name__,
        request.method,
        request.url.path,
        request_id_for(request),
    )
    return error_response(request, 500, "INTERNAL_ERROR", "An internal error occurred")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(NolejHttpError, _coded_error_handler)
    app.add_exception_handler(WorkflowError, _coded_error_handler)
    app.add_exception_handler(HTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
