"""Runtime configuration for the Nolej bridge.

Settings are resolved once at process start and passed explicitly to the
components that need them. Values persisted in the key/value config table
(api_key, interval) take precedence over environment defaults.

Environment Variables:
    NOLEJ_DATABASE_URL: SQLAlchemy URL (default: sqlite:///./var/nolej.sqlite3)
    NOLEJ_API_URL: Nolej REST endpoint (default: https://api-live.nolej.io)
    NOLEJ_API_KEY: Nolej API key, used when the config table has none
    NOLEJ_DATA_DIR: Root directory of document workspaces (default: ./var/nolej)
    NOLEJ_CONTENT_DIR: Root directory of the H5P content store (default: ./var/h5p)
    NOLEJ_PUBLIC_BASE_URL: Public URL of this service, used for callbacks
    NOLEJ_POLL_INTERVAL_SECONDS: Browser polling interval (default: 1, minimum: 1)
    NOLEJ_HTTP_TIMEOUT_SECONDS: Outbound HTTP timeout (default: 30)
    NOLEJ_IMPORT_RETRY_DELAY_SECONDS: Pause between package import attempts (default: 0.5)
    NOLEJ_ORGANISATION: Organisation name reported to Nolej
"""

from __future__ import annotations

import dataclasses
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

NOLEJ_DATABASE_URL_ENV = "NOLEJ_DATABASE_URL"
NOLEJ_API_URL_ENV = "NOLEJ_API_URL"
NOLEJ_API_KEY_ENV = "NOLEJ_API_KEY"
NOLEJ_DATA_DIR_ENV = "NOLEJ_DATA_DIR"
NOLEJ_CONTENT_DIR_ENV = "NOLEJ_CONTENT_DIR"
NOLEJ_PUBLIC_BASE_URL_ENV = "NOLEJ_PUBLIC_BASE_URL"
NOLEJ_POLL_INTERVAL_ENV = "NOLEJ_POLL_INTERVAL_SECONDS"
NOLEJ_HTTP_TIMEOUT_ENV = "NOLEJ_HTTP_TIMEOUT_SECONDS"
NOLEJ_IMPORT_RETRY_DELAY_ENV = "NOLEJ_IMPORT_RETRY_DELAY_SECONDS"
NOLEJ_ORGANISATION_ENV = "NOLEJ_ORGANISATION"

DEFAULT_DATABASE_URL = "sqlite:///./var/nolej.sqlite3"
DEFAULT_API_URL = "https://api-live.nolej.io"
DEFAULT_PUBLIC_BASE_URL = "http://localhost:8000"
DEFAULT_ORGANISATION = "Nolej Bridge"

CONFIG_KEY_API_KEY = "api_key"
CONFIG_KEY_INTERVAL = "interval"


class ConfigError(Exception):
    """Raised when a configuration value is missing or invalid."""

    pass


def _parse_int(name: str, raw: str, minimum: int) -> int:
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _parse_float(name: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e
    if value < 0:
        raise ConfigError(f"{name} must be >= 0, got {value}")
    return value


@dataclass(frozen=True)
class NolejSettings:
    """Resolved configuration.

    Attributes:
        database_url: SQLAlchemy database URL.
        api_url: Base URL of the Nolej REST API.
        api_key: Nolej API key ("" when not configured).
        data_dir: Root of the per-document workspaces.
        content_dir: Root of the H5P content store.
        public_base_url: Public URL of this service (webhook and file URLs).
        poll_interval_seconds: Interval the browser uses to poll for updates.
        http_timeout_seconds: Timeout for outbound calls.
        import_retry_delay_seconds: Pause between package import attempts.
        organisation: Organisation name sent with new documents.
    """

    database_url: str = DEFAULT_DATABASE_URL
    api_url: str = DEFAULT_API_URL
    api_key: str = ""
    data_dir: Path = Path("./var/nolej")
    content_dir: Path = Path("./var/h5p")
    public_base_url: str = DEFAULT_PUBLIC_BASE_URL
    poll_interval_seconds: int = 1
    http_timeout_seconds: float = 30.0
    import_retry_delay_seconds: float = 0.5
    organisation: str = DEFAULT_ORGANISATION

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    @property
    def webhook_url(self) -> str:
        """URL Nolej calls back when a stage completes."""
        return f"{self.public_base_url.rstrip('/')}/v1/webhook"

    def document_file_url(self, document_id: str, filename: str) -> str:
        """Public URL of a workspace file served to Nolej."""
        return f"{self.public_base_url.rstrip('/')}/v1/documents/{document_id}/files/{filename}"

    def with_stored_values(self, stored: Mapping[str, str]) -> NolejSettings:
        """Return a copy with values from the config table applied.

        Args:
            stored: Keyword -> value pairs read from the config table.

        Returns:
            New settings; unknown keywords are ignored.

        Raises:
            ConfigError: If a stored interval is not a positive integer.
        """
        changes: dict[str, Any] = {}
        api_key = stored.get(CONFIG_KEY_API_KEY)
        if api_key:
            changes["api_key"] = api_key
        interval = stored.get(CONFIG_KEY_INTERVAL)
        if interval:
            changes["poll_interval_seconds"] = _parse_int(CONFIG_KEY_INTERVAL, interval, 1)
        return dataclasses.replace(self, **changes) if changes else self


def load_settings(
    environ: Mapping[str, str] | None = None,
    **overrides: Any,
) -> NolejSettings:
    """Build settings from the environment.

    Args:
        environ: Mapping to read from (defaults to os.environ).
        **overrides: Explicit field values that win over the environment.

    Returns:
        Resolved NolejSettings.

    Raises:
        ConfigError: If a numeric variable cannot be parsed.
    """
    env = os.environ if environ is None else environ

    settings = NolejSettings(
        database_url=env.get(NOLEJ_DATABASE_URL_ENV, DEFAULT_DATABASE_URL),
        api_url=env.get(NOLEJ_API_URL_ENV, DEFAULT_API_URL).rstrip("/"),
        api_key=env.get(NOLEJ_API_KEY_ENV, ""),
        data_dir=Path(env.get(NOLEJ_DATA_DIR_ENV, "./var/nolej")),
        content_dir=Path(env.get(NOLEJ_CONTENT_DIR_ENV, "./var/h5p")),
        public_base_url=env.get(NOLEJ_PUBLIC_BASE_URL_ENV, DEFAULT_PUBLIC_BASE_URL),
        poll_interval_seconds=_parse_int(
            NOLEJ_POLL_INTERVAL_ENV, env.get(NOLEJ_POLL_INTERVAL_ENV, "1"), 1
        ),
        http_timeout_seconds=_parse_float(
            NOLEJ_HTTP_TIMEOUT_ENV, env.get(NOLEJ_HTTP_TIMEOUT_ENV, "30")
        ),
        import_retry_delay_seconds=_parse_float(
            NOLEJ_IMPORT_RETRY_DELAY_ENV, env.get(NOLEJ_IMPORT_RETRY_DELAY_ENV, "0.5")
        ),
        organisation=env.get(NOLEJ_ORGANISATION_ENV, DEFAULT_ORGANISATION),
    )
    if overrides:
        settings = dataclasses.replace(settings, **overrides)

    logger.debug(
        "Loaded settings: api_url=%s data_dir=%s api_key_set=%s",
        settings.api_url,
        settings.data_dir,
        settings.has_api_key,
    )
    return settings


def mask_api_key(api_key: str) -> str:
    """Keep the last four characters of a key, e.g. "********abcd"."""
    if not api_key:
        return ""
    if len(api_key) <= 4:
        return "*" * len(api_key)
    return "*" * (len(api_key) - 4) + api_key[-4:]
