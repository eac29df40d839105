"""Client workflow actions on Nolej documents.

Each action checks the document status, calls Nolej, then moves the
document into the pending state of the next stage. The pending state is
left by the matching webhook (see nolej.services.webhooks.ingestor).
Status moves that can race with a webhook are compare-and-swap.

Remote failures never leave a document in a pending state: the status is
reverted (or set to FAILED by the webhook path) and a "ko" activity
record is stored so the failure stays visible after the response.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Any, Final

from nolej.config import NolejSettings
from nolej.models.activity import STATUS_KO, STATUS_OK, ActivityRecord
from nolej.models.document import Document, MediaType
from nolej.models.package import GeneratedPackage
from nolej.models.status import DocumentStatus
from nolej.persistence.db import begin_conn
from nolej.persistence.repositories.activities import ActivitiesRepository
from nolej.persistence.repositories.documents import DocumentsRepository
from nolej.persistence.repositories.packages import PackagesRepository
from nolej.services.remote.client import RESOURCES, NolejApiError, NolejClient
from nolej.services.status.tracker import StatusTracker
from nolej.services.webhooks.ingestor import WebhookIngestor, WebhookOutcome
from nolej.services.workflow.analysis import AnalysisStarter
from nolej.storage.errors import StorageError
from nolej.storage.workspace import SETTINGS_FILE, TRANSCRIPTION_FILE, DocumentWorkspace

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

# Package always generated, whatever the user selected.
ALWAYS_GENERATED_PACKAGE: Final[str] = "ibook"

UPDATE_SIGNAL: Final[str] = "update"


class WorkflowError(Exception):
    """Raised when a client action cannot be performed.

    Attributes:
        status_code: HTTP status for the API layer.
        code: Machine-readable error code.
        message: Human-readable message.
    """

    def __init__(self, status_code: int, code: str, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


class DocumentWorkflow:
    """Client actions driving a document through the Nolej stages.

    Args:
        engine: Database engine.
        settings: Resolved settings.
        client: Nolej API client.
        tracker: Status tracker.
        analysis_starter: Transcription download and analysis submission.
        ingestor: Webhook ingestor, used to replay the last webhook.
        clock: Time source for activity timestamps.
    """

    def __init__(
        self,
        engine: Engine,
        settings: NolejSettings,
        client: NolejClient,
        tracker: StatusTracker,
        analysis_starter: AnalysisStarter,
        ingestor: WebhookIngestor,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._engine = engine
        self._settings = settings
        self._client = client
        self._tracker = tracker
        self._analysis_starter = analysis_starter
        self._ingestor = ingestor
        self._clock = clock

    def create_document(
        self,
        *,
        user_id: int,
        title: str,
        source_url: str,
        media_type: str,
        language: str,
        automatic_mode: bool = False,
        decremented_credit: int = 1,
    ) -> Document:
        """Create a document on Nolej and start its transcription.

        Returns:
            Stored document, in CREATION_PENDING.

        Raises:
            WorkflowError: If no API key is configured, the media type is
                unknown, or Nolej refuses the document.
        """
        if not self._client.has_api_key:
            raise WorkflowError(503, "api_key_missing", "Nolej API key is not configured")
        try:
            media = MediaType(media_type)
        except ValueError as e:
            raise WorkflowError(
                400, "invalid_media_type", f"Unknown media type: {media_type}"
            ) from e

        payload: dict[str, Any] = {
            "userID": user_id,
            "organisationID": self._settings.organisation,
            "title": title,
            "decrementedCredit": decremented_credit,
            "docURL": source_url,
            "webhookURL": self._settings.webhook_url,
            "mediaType": media.value,
            "automaticMode": automatic_mode,
            "language": language,
        }
        try:
            document_id = self._client.create_document(payload)
        except NolejApiError as e:
            logger.warning("Nolej refused document %r: %s", title, e)
            raise WorkflowError(502, "remote_error", f"Document creation failed: {e}") from e

        with begin_conn(self._engine) as conn:
            document = DocumentsRepository(conn).create(
                document_id=document_id,
                status=DocumentStatus.CREATION_PENDING,
                title=title,
                doc_url=source_url,
                media_type=media.value,
                automatic_mode=automatic_mode,
                language=language,
            )
            ActivitiesRepository(conn).upsert(
                self._activity(
                    document_id,
                    user_id,
                    "transcription",
                    STATUS_OK,
                    consumed_credit=decremented_credit,
                )
            )
        logger.info("Created document %s (%s) for user %s", document_id, media.value, user_id)
        return document

    def get_document(self, document_id: str) -> Document:
        """Stored document.

        Raises:
            WorkflowError: 404 if the document does not exist.
        """
        with begin_conn(self._engine) as conn:
            document = DocumentsRepository(conn).get(document_id)
        if document is None:
            raise WorkflowError(404, "document_not_found", f"Document not found: {document_id}")
        return document

    def list_packages(self, document_id: str) -> list[GeneratedPackage]:
        """Current imported package of every type."""
        with begin_conn(self._engine) as conn:
            return PackagesRepository(conn).list_current(document_id)

    def read_transcription(self, document_id: str) -> str | None:
        """Workspace transcription served back to Nolej, None if absent."""
        return self._workspace(document_id).read_text(TRANSCRIPTION_FILE)

    def download_transcription(self, document_id: str) -> str | None:
        """Fetch the transcription into the workspace.

        Returns:
            Transcription title, if Nolej provides one.

        Raises:
            WorkflowError: If the transcription is not ready or cannot be fetched.
        """
        document = self.get_document(document_id)
        if document.status < DocumentStatus.ANALYSIS:
            raise WorkflowError(409, "invalid_status", "Transcription is not ready yet")
        try:
            return self._analysis_starter.download_transcription(document_id)
        except (NolejApiError, StorageError) as e:
            raise WorkflowError(502, "remote_error", f"Transcription download failed: {e}") from e

    def start_analysis(self, document_id: str, user_id: int, title: str | None = None) -> Document:
        """Confirm the transcription and ask Nolej for the analysis.

        Returns:
            Document after the action (ANALYSIS_PENDING).

        Raises:
            WorkflowError: If the document is not in ANALYSIS or Nolej refuses.
        """
        document = self.get_document(document_id)
        if document.status != DocumentStatus.ANALYSIS:
            raise WorkflowError(409, "invalid_status", "Document is not waiting for analysis")

        if title:
            with begin_conn(self._engine) as conn:
                DocumentsRepository(conn).update_title(document_id, title)

        try:
            self._analysis_starter.start(document)
        except (NolejApiError, StorageError) as e:
            self._store(self._activity(document_id, user_id, "analysis", STATUS_KO, error=e))
            raise WorkflowError(502, "remote_error", f"Analysis could not be started: {e}") from e

        if not self._tracker.compare_and_transition(
            document_id, DocumentStatus.ANALYSIS, DocumentStatus.ANALYSIS_PENDING
        ):
            raise WorkflowError(409, "invalid_status", "Document status changed concurrently")
        self._store(self._activity(document_id, user_id, "analysis", STATUS_OK))
        return self.get_document(document_id)

    def get_resource(self, document_id: str, resource: str) -> Any:
        """Read a resource, from the workspace when it was already fetched.

        Raises:
            WorkflowError: If the resource is unknown or cannot be fetched.
        """
        self._check_resource(resource)
        self.get_document(document_id)
        workspace = self._workspace(document_id)
        cached = workspace.read_json(f"{resource}.json")
        if cached is not None:
            return cached
        try:
            data = self._client.get_resource(document_id, resource)
        except NolejApiError as e:
            raise WorkflowError(502, "remote_error", f"Could not get {resource}: {e}") from e
        workspace.write_json(f"{resource}.json", data)
        return data

    def save_resource(self, document_id: str, resource: str, content: Any) -> None:
        """Store a revised resource locally and on Nolej.

        Raises:
            WorkflowError: If the document has no analysis yet or Nolej refuses.
        """
        self._check_resource(resource)
        document = self.get_document(document_id)
        if document.status < DocumentStatus.REVISION:
            raise WorkflowError(409, "invalid_status", "Document has not been analysed yet")
        self._workspace(document_id).write_json(f"{resource}.json", content)
        try:
            self._client.put_resource(document_id, resource, content)
        except NolejApiError as e:
            raise WorkflowError(502, "remote_error", f"Could not save {resource}: {e}") from e
        logger.info("Saved %s of document %s", resource, document_id)

    def mark_reviewed(self, document_id: str) -> Document:
        """Close the revision and allow activity generation."""
        self.get_document(document_id)
        if not self._tracker.compare_and_transition(
            document_id, DocumentStatus.REVISION, DocumentStatus.ACTIVITIES
        ):
            raise WorkflowError(409, "invalid_status", "Document is not in revision")
        return self.get_document(document_id)

    def generate_activities(
        self,
        document_id: str,
        user_id: int,
        desired_packages: Sequence[str],
        settings: dict[str, Any],
    ) -> Document:
        """Request the generation of activity packages.

        The ibook package is always requested. A completed document can be
        generated again.

        Returns:
            Document after the action (ACTIVITIES_PENDING).

        Raises:
            WorkflowError: If the document is not ready or Nolej refuses.
        """
        document = self.get_document(document_id)
        previous = document.status
        if previous not in (DocumentStatus.ACTIVITIES, DocumentStatus.COMPLETED):
            raise WorkflowError(409, "invalid_status", "Document is not ready for generation")

        current = self.get_resource(document_id, "settings")
        available = current.get("avaible_packages", []) if isinstance(current, dict) else []
        desired = list(dict.fromkeys([*desired_packages, ALWAYS_GENERATED_PACKAGE]))
        body = {
            "settings": settings,
            "avaible_packages": available,
            "desired_packages": desired,
        }
        self._workspace(document_id).write_json(SETTINGS_FILE, body)

        if not self._tracker.compare_and_transition(
            document_id, previous, DocumentStatus.ACTIVITIES_PENDING
        ):
            raise WorkflowError(409, "invalid_status", "Document status changed concurrently")

        try:
            self._client.put_resource(document_id, "settings", body)
        except NolejApiError as e:
            self._tracker.compare_and_transition(
                document_id, DocumentStatus.ACTIVITIES_PENDING, previous
            )
            self._store(self._activity(document_id, user_id, "activities", STATUS_KO, error=e))
            raise WorkflowError(
                502, "remote_error", f"Generation could not be requested: {e}"
            ) from e

        self._store(self._activity(document_id, user_id, "activities", STATUS_OK))
        logger.info("Requested %s for document %s", ", ".join(desired), document_id)
        return self.get_document(document_id)

    def recover_last_webhook(self, document_id: str) -> WebhookOutcome:
        """Replay the last webhook Nolej sent, for lost deliveries.

        Raises:
            WorkflowError: If the document is not pending or Nolej cannot be reached.
        """
        document = self.get_document(document_id)
        if not document.status.is_pending:
            raise WorkflowError(409, "invalid_status", "Document is not waiting for Nolej")
        try:
            data = self._client.get_last_webhook(document_id)
        except NolejApiError as e:
            raise WorkflowError(502, "remote_error", f"Could not get the last webhook: {e}") from e

        outcome = self._ingestor.ingest(data)
        self._ingestor.dispatch(outcome)
        logger.info(
            "Replayed last webhook of %s: %d %s", document_id, outcome.http_status, outcome.message
        )
        return outcome

    def check_updates(self, document_id: str, status: int) -> str:
        """Polling answer: "update" if the stored status differs, else ""."""
        current = self._tracker.current(document_id)
        if current is None or int(current) == status:
            return ""
        return UPDATE_SIGNAL

    def delete_document(self, document_id: str) -> bool:
        """Delete a document with its records and workspace.

        Returns:
            True if the document existed.
        """
        with begin_conn(self._engine) as conn:
            existed = DocumentsRepository(conn).delete(document_id)
        self._workspace(document_id).delete()
        if existed:
            logger.info("Deleted document %s", document_id)
        return existed

    def _workspace(self, document_id: str) -> DocumentWorkspace:
        try:
            return DocumentWorkspace(self._settings.data_dir, document_id)
        except StorageError as e:
            raise WorkflowError(400, "invalid_document_id", str(e)) from e

    def _check_resource(self, resource: str) -> None:
        if resource not in RESOURCES:
            raise WorkflowError(404, "unknown_resource", f"Unknown resource: {resource}")

    def _activity(
        self,
        document_id: str,
        user_id: int,
        action: str,
        status: str,
        *,
        consumed_credit: int = 0,
        error: Exception | None = None,
    ) -> ActivityRecord:
        code = 0
        if isinstance(error, NolejApiError):
            code = error.status_code or 0
        return ActivityRecord(
            document_id=document_id,
            user_id=user_id,
            action=action,
            tstamp=int(self._clock()),
            status=status,
            code=code,
            error_message=str(error) if error is not None else "",
            consumed_credit=consumed_credit,
        )

    def _store(self, record: ActivityRecord) -> None:
        with begin_conn(self._engine) as conn:
            ActivitiesRepository(conn).upsert(record)
