"""Wiring of the bridge services.

Builds every component from one resolved NolejSettings and a database
engine, so the API, the CLI and the tests share the same object graph.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from nolej.config import NolejSettings
from nolej.persistence.db import begin_conn
from nolej.persistence.repositories.config import ConfigRepository
from nolej.services.importer.importer import PackageImporter
from nolej.services.notifications.inbox import NotificationInbox
from nolej.services.notifications.notifier import LoggingNotifier, Notifier
from nolej.services.remote.client import NolejClient
from nolej.services.status.tracker import StatusTracker
from nolej.services.webhooks.ingestor import WebhookIngestor
from nolej.services.workflow.analysis import AnalysisStarter
from nolej.services.workflow.service import DocumentWorkflow
from nolej.storage.content_store import ContentStore, FilesystemContentStore

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NolejServices:
    """Components built for one settings snapshot."""

    settings: NolejSettings
    engine: Engine
    client: NolejClient
    tracker: StatusTracker
    importer: PackageImporter
    ingestor: WebhookIngestor
    workflow: DocumentWorkflow
    inbox: NotificationInbox


def resolve_settings(settings: NolejSettings, engine: Engine) -> NolejSettings:
    """Apply the values stored in the config table to the settings."""
    with begin_conn(engine) as conn:
        stored = ConfigRepository(conn).all()
    return settings.with_stored_values(stored)


def build_services(
    settings: NolejSettings,
    engine: Engine,
    *,
    http_client: httpx.Client | None = None,
    notifier: Notifier | None = None,
    content_store: ContentStore | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.time,
) -> NolejServices:
    """Build the component graph.

    Args:
        settings: Resolved settings (stored values already applied).
        engine: Database engine.
        http_client: Optional httpx.Client for dependency injection (testing).
        notifier: Notification delivery (default: LoggingNotifier).
        content_store: Host content store (default: filesystem under content_dir).
        sleep: Sleep function used between package import attempts.
        clock: Time source for activity and package timestamps.

    Returns:
        NolejServices.
    """
    client = NolejClient(
        settings.api_url,
        settings.api_key,
        timeout_seconds=settings.http_timeout_seconds,
        http_client=http_client,
    )
    tracker = StatusTracker(engine)
    importer = PackageImporter(
        engine,
        client,
        content_store or FilesystemContentStore(settings.content_dir),
        settings.data_dir,
        retry_delay_seconds=settings.import_retry_delay_seconds,
        sleep=sleep,
        clock=clock,
    )
    analysis_starter = AnalysisStarter(engine, settings, client)
    ingestor = WebhookIngestor(
        engine,
        tracker,
        analysis_starter,
        importer,
        notifier or LoggingNotifier(),
        clock=clock,
    )
    workflow = DocumentWorkflow(
        engine,
        settings,
        client,
        tracker,
        analysis_starter,
        ingestor,
        clock=clock,
    )
    return NolejServices(
        settings=settings,
        engine=engine,
        client=client,
        tracker=tracker,
        importer=importer,
        ingestor=ingestor,
        workflow=workflow,
        inbox=NotificationInbox(engine),
    )
