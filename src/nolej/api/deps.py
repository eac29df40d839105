"""FastAPI dependencies: current user and service graph.

The service graph is built lazily from app.state and cached until the
stored configuration changes (see routes/config.py).
"""

from __future__ import annotations

import logging
import threading
from typing import Annotated

from fastapi import Depends, Header, Request

from nolej.api.errors import NolejHttpError
from nolej.services.container import NolejServices, resolve_settings

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"

_services_lock = threading.Lock()


def require_user_id(
    x_user_id: Annotated[str | None, Header(alias=USER_ID_HEADER)] = None,
) -> int:
    """Authenticated user id from the X-User-Id header.

    Raises:
        NolejHttpError: 401 if the header is missing or not a positive integer.
    """
    if x_user_id is None or not x_user_id.strip().isdigit() or int(x_user_id) <= 0:
        raise NolejHttpError(
            status_code=401,
            code="unauthorized",
            message=f"Missing or invalid {USER_ID_HEADER} header",
        )
    return int(x_user_id)


def get_services(request: Request) -> NolejServices:
    """Service graph for the current settings."""
    state = request.app.state
    services: NolejServices | None = getattr(state, "services", None)
    if services is not None:
        return services

    with _services_lock:
        services = getattr(state, "services", None)
        if services is None:
            settings = resolve_settings(state.settings, state.engine)
            services = state.service_factory(settings)
            state.services = services
            logger.debug("Built services (api_key_set=%s)", settings.has_api_key)
    return services


def reset_services(request: Request) -> None:
    """Drop the cached service graph so the next request rebuilds it."""
    with _services_lock:
        request.app.state.services = None


CurrentUser = Annotated[int, Depends(require_user_id)]
Services = Annotated[NolejServices, Depends(get_services)]
