"""Nolej bridge FastAPI application factory.

This module provides the create_app() factory for bootstrapping the API.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

import httpx
from fastapi import FastAPI

from nolej import __version__
from nolej.api.errors import register_exception_handlers
from nolej.api.middleware.request_id import RequestIdMiddleware
from nolej.api.routes.config import router as config_router
from nolej.api.routes.documents import router as documents_router
from nolej.api.routes.health import router as health_router
from nolej.api.routes.notifications import router as notifications_router
from nolej.api.routes.updates import router as updates_router
from nolej.api.routes.webhook import router as webhook_router
from nolej.config import NolejSettings, load_settings
from nolej.persistence.db import create_db_engine
from nolej.persistence.schema import ensure_schema
from nolej.services.container import NolejServices, build_services
from nolej.services.notifications.notifier import Notifier
from nolej.storage.content_store import ContentStore

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def create_app(
    settings: NolejSettings | None = None,
    engine: Engine | None = None,
    *,
    http_client: httpx.Client | None = None,
    notifier: Notifier | None = None,
    content_store: ContentStore | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.time,
    create_schema: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    This factory:
    - Resolves settings (environment when not given) and the database engine
    - Creates missing tables unless create_schema is False (migrations
      are run by "nolej init-db")
    - Registers the request id middleware and the exception handlers
    - Mounts the health router and the /v1 routers

    Args:
        settings: Settings; loaded from the environment if None.
        engine: Database engine; created from settings.database_url if None.
        http_client: Optional httpx.Client for outbound calls (testing).
        notifier: Notification delivery (default: LoggingNotifier).
        content_store: Host content store (default: filesystem).
        sleep: Sleep function between package import attempts.
        clock: Time source for activity and package timestamps.
        create_schema: Create missing tables on startup.

    Returns:
        Configured FastAPI application instance.
    """
    settings = settings or load_settings()
    engine = engine or create_db_engine(settings.database_url)
    if create_schema:
        ensure_schema(engine)

    app = FastAPI(
        title="Nolej Bridge API",
        description="Document workflow, webhooks and H5P import for Nolej",
        version=__version__,
    )

    def service_factory(resolved: NolejSettings) -> NolejServices:
        return build_services(
            resolved,
            engine,
            http_client=http_client,
            notifier=notifier,
            content_store=content_store,
            sleep=sleep,
            clock=clock,
        )

    app.state.settings = settings
    app.state.engine = engine
    app.state.service_factory = service_factory
    app.state.services = None

    app.add_middleware(RequestIdMiddleware)

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(webhook_router)
    app.include_router(updates_router)
    app.include_router(documents_router)
    app.include_router(notifications_router)
    app.include_router(config_router)

    logger.info("Nolej bridge API created (api_url=%s)", settings.api_url)
    return app
