"""Nolej webhook endpoint.

POST /v1/webhook is called by Nolej when a stage completes. It is not
authenticated; the document status guard is what makes deliveries safe
to repeat. Answers keep Nolej's {"message": ...} format:
    200 accepted or acknowledged
    400 malformed body
    404 document not in the pending state of the action
Notifications are sent after the answer.
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, BackgroundTasks, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from nolej.api.deps import Services
from nolej.services.webhooks.ingestor import MSG_INVALID

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["Webhook"])


@router.post("/webhook")
async def receive_webhook(
    request: Request,
    services: Services,
    background_tasks: BackgroundTasks,
) -> JSONResponse:
    """Ingest a Nolej callback."""
    raw = await request.body()
    try:
        data = json.loads(raw) if raw else None
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.warning("Webhook body is not JSON")
        return JSONResponse(status_code=400, content={"message": MSG_INVALID})

    outcome = await run_in_threadpool(services.ingestor.ingest, data)
    if outcome.notifications:
        background_tasks.add_task(services.ingestor.dispatch, outcome)

    logger.info("Replied to Nolej: %d %s", outcome.http_status, outcome.message)
    return JSONResponse(status_code=outcome.http_status, content={"message": outcome.message})
