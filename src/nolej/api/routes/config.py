"""Configuration routes.

GET /v1/config returns the effective values with the API key masked.
PUT /v1/config stores values in the config table; the service graph is
rebuilt on the next request so a new key takes effect immediately.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field

from nolej.api.deps import CurrentUser, Services, get_services, reset_services
from nolej.config import CONFIG_KEY_API_KEY, CONFIG_KEY_INTERVAL, mask_api_key
from nolej.persistence.db import begin_conn
from nolej.persistence.repositories.config import ConfigRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["Config"])


class ConfigResponse(BaseModel):
    api_key_set: bool
    api_key: str
    interval: int


class UpdateConfigRequest(BaseModel):
    """Request body for PUT /v1/config; omitted fields are left unchanged."""

    model_config = ConfigDict(extra="forbid")

    api_key: Annotated[str | None, Field(default=None, min_length=1, max_length=200)] = None
    interval: Annotated[int | None, Field(default=None, ge=1)] = None


@router.get("/config", response_model=ConfigResponse)
def get_config(services: Services, user_id: CurrentUser) -> ConfigResponse:
    settings = services.settings
    return ConfigResponse(
        api_key_set=settings.has_api_key,
        api_key=mask_api_key(settings.api_key),
        interval=settings.poll_interval_seconds,
    )


@router.put("/config", response_model=ConfigResponse)
def update_config(
    request_body: UpdateConfigRequest,
    request: Request,
    services: Services,
    user_id: CurrentUser,
) -> ConfigResponse:
    with begin_conn(services.engine) as conn:
        repo = ConfigRepository(conn)
        if request_body.api_key is not None:
            repo.save(CONFIG_KEY_API_KEY, request_body.api_key)
        if request_body.interval is not None:
            repo.save(CONFIG_KEY_INTERVAL, str(request_body.interval))
    logger.info("Configuration updated by user %s", user_id)

    reset_services(request)
    # dependencies were resolved before the change; rebuild for the answer
    return get_config(get_services(request), user_id)
