"""Error envelope of the bridge API.

Client-facing errors share one JSON shape:

    {"code": "document_not_found", "message": "...", "details": null,
     "request_id": "..."}

The request id is the one RequestIdMiddleware put on the request, so the
body and the X-Request-Id header always agree. Webhook answers are not
errors in this sense and keep Nolej's {"message": ...} format.
"""

from __future__ import annotations

import uuid
from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from nolej.api.middleware.request_id import REQUEST_ID_HEADER


class ErrorEnvelope(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None
    request_id: str


def request_id_for(request: Request) -> str:
    """Id of the current request; a fresh one if the middleware did not run."""
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())


def code_for_status(status_code: int) -> str:
    """Error code derived from the HTTP reason phrase, e.g. 405 -> METHOD_NOT_ALLOWED."""
    try:
        phrase = HTTPStatus(status_code).phrase
    except ValueError:
        return "ERROR"
    return phrase.upper().replace(" ", "_").replace("-", "_")


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    envelope = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        request_id=request_id_for(request),
    )
    return JSONResponse(
        status_code=status_code,
        content=envelope.model_dump(),
        headers={REQUEST_ID_HEADER: envelope.request_id},
    )
