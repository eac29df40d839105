"""Import of generated H5P packages after the activities stage.

For every package Nolej advertises, the importer downloads, validates and
registers it in the content store, then records a generated package row.
Each package gets at most MAX_ATTEMPTS tries. Failures are collected as
"{name} ({reason})" and joined, cut between entries when the summary would
not fit in an activity record. An empty summary means full success.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Final

from sqlalchemy.exc import SQLAlchemyError

from nolej.models.package import GeneratedPackage, PackageDescriptor
from nolej.persistence.db import begin_conn
from nolej.persistence.repositories.activities import ERROR_MESSAGE_MAX_LENGTH
from nolej.persistence.repositories.packages import PackagesRepository
from nolej.services.importer.validator import PackageValidationError, validate_package
from nolej.services.remote.client import NolejApiError, NolejClient
from nolej.storage.content_store import ContentStore
from nolej.storage.errors import StorageError
from nolej.storage.workspace import DocumentWorkspace

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

MAX_ATTEMPTS: Final[int] = 2

REASON_DOWNLOAD_FAILED: Final[str] = "download failed"
REASON_INVALID_PACKAGE: Final[str] = "invalid package"
REASON_IMPORT_FAILED: Final[str] = "import failed"
REASON_CONTENT_ID_MISSING: Final[str] = "content id missing"
LIST_FAILED: Final[str] = "could not retrieve the activity list"
CLEAR_FAILED: Final[str] = "could not clear previous packages"


def summarize_failures(failures: list[str], limit: int = ERROR_MESSAGE_MAX_LENGTH) -> str:
    """Join failure entries, cutting only between whole entries.

    When the entries do not fit in limit characters, the tail is replaced
    by "and N more" so that no package name is cut in half.
    """
    summary = ", ".join(failures)
    if len(summary) <= limit:
        return summary
    for kept in range(len(failures) - 1, -1, -1):
        rest = f"and {len(failures) - kept} more"
        summary = ", ".join([*failures[:kept], rest])
        if len(summary) <= limit:
            return summary
    return summary[:limit]


class PackageImporter:
    """Downloads and imports the packages of a document.

    Args:
        engine: Database engine for generated package rows.
        client: Nolej API client.
        content_store: Host content store.
        workspace_root: Root directory of document workspaces.
        max_attempts: Tries per package.
        retry_delay_seconds: Pause between two tries of the same package.
        sleep: Sleep function (injectable for tests).
        clock: Time source for generated_at (injectable for tests).
    """

    def __init__(
        self,
        engine: Engine,
        client: NolejClient,
        content_store: ContentStore,
        workspace_root: str | Path,
        *,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay_seconds: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._engine = engine
        self._client = client
        self._content_store = content_store
        self._workspace_root = Path(workspace_root)
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay_seconds
        self._sleep = sleep
        self._clock = clock

    def import_packages(self, document_id: str) -> str:
        """Import every package generated for a document.

        Previously downloaded package files are removed first, so the
        whole stage can be re-run.

        Args:
            document_id: Document whose activities were generated.

        Returns:
            Failure summary, empty on full success.
        """
        workspace = DocumentWorkspace(self._workspace_root, document_id)
        try:
            workspace.clear_packages()
        except (OSError, StorageError) as e:
            logger.warning("Could not clear packages of document %s: %s", document_id, e)
            return CLEAR_FAILED

        try:
            descriptors = self._client.list_activities(document_id)
        except NolejApiError as e:
            logger.warning("Could not list packages of document %s: %s", document_id, e)
            return LIST_FAILED

        generated_at = int(self._clock())
        failures: list[str] = []
        for descriptor in descriptors:
            reason = self._import_with_retry(workspace, descriptor, generated_at)
            if reason:
                failures.append(f"{descriptor.activity_name} ({reason})")

        if failures:
            logger.warning(
                "Imported %d/%d packages of document %s",
                len(descriptors) - len(failures),
                len(descriptors),
                document_id,
            )
        else:
            logger.info("Imported %d packages of document %s", len(descriptors), document_id)
        return summarize_failures(failures)

    def _import_with_retry(
        self,
        workspace: DocumentWorkspace,
        descriptor: PackageDescriptor,
        generated_at: int,
    ) -> str:
        """Try to import one package up to max_attempts times.

        Returns:
            Reason of the last failure, empty on success.
        """
        reason = ""
        for attempt in range(1, self._max_attempts + 1):
            reason = self._attempt(workspace, descriptor, generated_at)
            if not reason:
                return ""
            logger.warning(
                "Attempt %d/%d for package %s of document %s failed: %s",
                attempt,
                self._max_attempts,
                descriptor.activity_name,
                workspace.document_id,
                reason,
            )
            if attempt < self._max_attempts and self._retry_delay > 0:
                self._sleep(self._retry_delay)
        return reason

    def _attempt(
        self,
        workspace: DocumentWorkspace,
        descriptor: PackageDescriptor,
        generated_at: int,
    ) -> str:
        """Download, validate and register one package once."""
        try:
            data = self._client.download(descriptor.url)
            path = workspace.write_package(descriptor.activity_name, data)
        except (NolejApiError, StorageError) as e:
            logger.debug("Download of %s failed: %s", descriptor.activity_name, e)
            return REASON_DOWNLOAD_FAILED

        try:
            manifest = validate_package(path)
        except PackageValidationError as e:
            logger.debug("Package %s rejected: %s", descriptor.activity_name, e)
            return REASON_INVALID_PACKAGE

        try:
            content_id = self._content_store.register(
                path,
                document_id=workspace.document_id,
                package_type=descriptor.activity_name,
                title=manifest.title,
            )
        except StorageError as e:
            logger.debug("Import of %s failed: %s", descriptor.activity_name, e)
            return REASON_IMPORT_FAILED

        if content_id is None:
            return REASON_CONTENT_ID_MISSING
        logger.debug(
            "Package %s stored in %s content store as %d",
            descriptor.activity_name,
            self._content_store.backend_name,
            content_id,
        )

        try:
            with begin_conn(self._engine) as conn:
                PackagesRepository(conn).add(
                    GeneratedPackage(
                        content_id=content_id,
                        document_id=workspace.document_id,
                        type=descriptor.activity_name,
                        generated_at=generated_at,
                    )
                )
        except SQLAlchemyError as e:
            logger.warning(
                "Could not record package %s as content %d: %s",
                descriptor.activity_name,
                content_id,
                e,
            )
            self._content_store.discard(content_id)
            return REASON_IMPORT_FAILED
        return ""
