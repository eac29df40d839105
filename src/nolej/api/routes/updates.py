"""Status polling endpoint for the browser client.

GET /v1/updates?document_id=...&status=N answers "update" when the stored
status differs from N, and an empty body otherwise (also for unknown
documents). The page reloads when it sees "update".
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query
from fastapi.responses import PlainTextResponse

from nolej.api.deps import CurrentUser, Services

router = APIRouter(prefix="/v1", tags=["Updates"])


@router.get("/updates", response_class=PlainTextResponse)
def check_updates(
    services: Services,
    user_id: CurrentUser,
    document_id: Annotated[str, Query(min_length=1, max_length=50)],
    status: Annotated[int, Query(ge=0)],
) -> PlainTextResponse:
    return PlainTextResponse(services.workflow.check_updates(document_id, status))
