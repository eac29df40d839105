"""Pytest configuration and fixtures for the Nolej bridge tests.

This module provides the common fixtures: settings pointing at a
temporary directory, a SQLite engine with the schema created, the fake
Nolej API and the wired service graph.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine

from nolej.api.main import create_app
from nolej.config import NolejSettings
from nolej.persistence.db import create_db_engine
from nolej.persistence.schema import ensure_schema
from nolej.services.container import NolejServices, build_services
from nolej.services.notifications.notifier import InMemoryNotifier
from tests.fixtures.nolej import API_URL, NOW, PUBLIC_URL, FakeNolej

NOLEJ_ENV_VARS = (
    "NOLEJ_DATABASE_URL",
    "NOLEJ_API_URL",
    "NOLEJ_API_KEY",
    "NOLEJ_DATA_DIR",
    "NOLEJ_CONTENT_DIR",
    "NOLEJ_PUBLIC_BASE_URL",
    "NOLEJ_POLL_INTERVAL_SECONDS",
    "NOLEJ_HTTP_TIMEOUT_SECONDS",
    "NOLEJ_IMPORT_RETRY_DELAY_SECONDS",
    "NOLEJ_ORGANISATION",
)


@pytest.fixture(autouse=True)
def clear_nolej_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer NOLEJ_* variables out of the tests."""
    for name in NOLEJ_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings(tmp_path: Path) -> NolejSettings:
    return NolejSettings(
        database_url=f"sqlite:///{tmp_path / 'nolej.sqlite3'}",
        api_url=API_URL,
        api_key="test-api-key-1234",
        data_dir=tmp_path / "data",
        content_dir=tmp_path / "h5p",
        public_base_url=PUBLIC_URL,
        import_retry_delay_seconds=0.0,
    )


@pytest.fixture
def engine(settings: NolejSettings) -> Iterator[Engine]:
    db_engine = create_db_engine(settings.database_url)
    ensure_schema(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def fake_nolej() -> FakeNolej:
    return FakeNolej()


@pytest.fixture
def notifier() -> InMemoryNotifier:
    return InMemoryNotifier()


@pytest.fixture
def sleeps() -> list[float]:
    """Delays requested by the package importer."""
    return []


@pytest.fixture
def services(
    settings: NolejSettings,
    engine: Engine,
    fake_nolej: FakeNolej,
    notifier: InMemoryNotifier,
    sleeps: list[float],
) -> NolejServices:
    return build_services(
        settings,
        engine,
        http_client=fake_nolej.client(),
        notifier=notifier,
        sleep=sleeps.append,
        clock=lambda: NOW,
    )


@pytest.fixture
def client(
    settings: NolejSettings,
    engine: Engine,
    fake_nolej: FakeNolej,
    notifier: InMemoryNotifier,
    sleeps: list[float],
) -> TestClient:
    """Test client for an app wired to the fake Nolej API."""
    app = create_app(
        settings,
        engine,
        http_client=fake_nolej.client(),
        notifier=notifier,
        sleep=sleeps.append,
        clock=lambda: NOW,
    )
    return TestClient(app)
