"""Webhook ingestion for Nolej stage callbacks.

Processing of one delivery is strictly sequential:
    validate -> guarded transition -> side effect -> activity record -> notify

A stage webhook is accepted only while the document is in the pending
status of that stage. The transition itself is a compare-and-swap on that
status, so a redelivered or concurrently delivered webhook finds the
document already moved and is answered with 404 without any change.

Transitions:
    transcription ok  CREATION_PENDING -> ANALYSIS (-> ANALYSIS_PENDING when
                      the media needs no transcription review)
    transcription ko  CREATION_PENDING -> CREATION
    analysis ok       ANALYSIS_PENDING -> REVISION
    analysis ko       ANALYSIS_PENDING -> FAILED
    activities ok     ACTIVITIES_PENDING -> COMPLETED, then package import
    activities ko     ACTIVITIES_PENDING -> ACTIVITIES
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final

from nolej.models.activity import STATUS_KO, STATUS_OK, ActivityRecord
from nolej.models.document import Document
from nolej.models.status import EXPECTED_STATUS_FOR_ACTION, DocumentStatus
from nolej.persistence.db import begin_conn
from nolej.persistence.repositories.activities import ActivitiesRepository
from nolej.persistence.repositories.documents import DocumentsRepository
from nolej.services.importer.importer import PackageImporter
from nolej.services.notifications.notifier import Notification, Notifier, build_notification
from nolej.services.remote.client import NolejApiError
from nolej.services.status.tracker import StatusTracker
from nolej.services.webhooks.payload import (
    ACTION_ACTIVITIES,
    ACTION_ANALYSIS,
    ACTION_TRANSCRIPTION,
    ACTION_WORK_IN_PROGRESS,
    STAGE_ACTIONS,
    WebhookPayload,
    WebhookValidationError,
    parse_action,
    parse_stage_payload,
)
from nolej.services.workflow.analysis import AnalysisStarter
from nolej.storage.errors import StorageError

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

MSG_INVALID: Final[str] = "Request not valid."
MSG_NOT_FOUND: Final[str] = "Document ID not found."
MSG_WORK_IN_PROGRESS: Final[str] = "Work in progress."
MSG_UNKNOWN_ACTION: Final[str] = "Action not recognized."
MSG_TRANSCRIPTION_OK: Final[str] = "Transcription received!"
MSG_TRANSCRIPTION_ADVANCED: Final[str] = "Transcription received, analysis started."
MSG_TRANSCRIPTION_ADVANCE_FAILED: Final[str] = (
    "Transcription received, but analysis could not be started."
)
MSG_TRANSCRIPTION_KO: Final[str] = "Transcription failure received."
MSG_ANALYSIS_OK: Final[str] = "Analysis received!"
MSG_ANALYSIS_KO: Final[str] = "Analysis failure received."
MSG_ACTIVITIES_OK: Final[str] = "Activities received!"
MSG_ACTIVITIES_PARTIAL: Final[str] = (
    "Activities received, but something went wrong while retrieving them."
)
MSG_ACTIVITIES_KO: Final[str] = "Activities failure received."

# (action, succeeded) -> status after the webhook.
_TARGET_STATUS: Final[dict[tuple[str, bool], DocumentStatus]] = {
    (ACTION_TRANSCRIPTION, True): DocumentStatus.ANALYSIS,
    (ACTION_TRANSCRIPTION, False): DocumentStatus.CREATION,
    (ACTION_ANALYSIS, True): DocumentStatus.REVISION,
    (ACTION_ANALYSIS, False): DocumentStatus.FAILED,
    (ACTION_ACTIVITIES, True): DocumentStatus.COMPLETED,
    (ACTION_ACTIVITIES, False): DocumentStatus.ACTIVITIES,
}


@dataclass(frozen=True)
class WebhookOutcome:
    """Result of one delivery.

    Attributes:
        http_status: Status code to answer Nolej with.
        message: Body message.
        notifications: Notifications to dispatch once the answer is sent.
        status: Document status after processing, None if unchanged.
    """

    http_status: int
    message: str
    notifications: tuple[Notification, ...] = field(default_factory=tuple)
    status: DocumentStatus | None = None

    @property
    def accepted(self) -> bool:
        return self.http_status == 200


class WebhookIngestor:
    """Validates webhooks and drives the document status.

    Args:
        engine: Database engine.
        tracker: Status tracker.
        analysis_starter: Starts the analysis for auto-advanced documents.
        importer: Imports generated packages after the activities stage.
        notifier: Delivery of stage notifications.
        clock: Time source for activity timestamps.
    """

    def __init__(
        self,
        engine: Engine,
        tracker: StatusTracker,
        analysis_starter: AnalysisStarter,
        importer: PackageImporter,
        notifier: Notifier,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._engine = engine
        self._tracker = tracker
        self._analysis_starter = analysis_starter
        self._importer = importer
        self._notifier = notifier
        self._clock = clock

    def ingest(self, data: Any) -> WebhookOutcome:
        """Process one decoded webhook body.

        Args:
            data: JSON-decoded request body.

        Returns:
            Outcome with the answer for Nolej and pending notifications.
        """
        try:
            action = parse_action(data)
        except WebhookValidationError as e:
            logger.warning("Rejected webhook: %s", e)
            return WebhookOutcome(http_status=400, message=MSG_INVALID)

        if action == ACTION_WORK_IN_PROGRESS:
            logger.info("Received work in progress")
            return WebhookOutcome(http_status=200, message=MSG_WORK_IN_PROGRESS)

        if action not in STAGE_ACTIONS:
            logger.warning("Received unknown webhook action %r", action)
            return WebhookOutcome(http_status=200, message=MSG_UNKNOWN_ACTION)

        try:
            payload = parse_stage_payload(data)
        except WebhookValidationError as e:
            logger.warning("Rejected %s webhook: %s", action, e)
            return WebhookOutcome(http_status=400, message=MSG_INVALID)

        logger.info(
            "Received %s webhook for document %s: %s",
            payload.action,
            payload.document_id,
            payload.status,
        )

        expected = EXPECTED_STATUS_FOR_ACTION[payload.action]
        with begin_conn(self._engine) as conn:
            found = DocumentsRepository(conn).find_in_status_with_user(
                payload.document_id, expected
            )
        if found is None:
            logger.warning(
                "Document %s not found in %s, %s webhook ignored",
                payload.document_id,
                expected.name,
                payload.action,
            )
            return WebhookOutcome(http_status=404, message=MSG_NOT_FOUND)

        document, user_id = found
        target = _TARGET_STATUS[(payload.action, payload.succeeded)]
        if not self._tracker.compare_and_transition(
            payload.document_id, expected, target, consumed_credit=payload.consumed_credit
        ):
            return WebhookOutcome(http_status=404, message=MSG_NOT_FOUND)

        if payload.action == ACTION_TRANSCRIPTION:
            return self._after_transcription(payload, document, user_id)
        if payload.action == ACTION_ANALYSIS:
            return self._after_analysis(payload, document, user_id)
        return self._after_activities(payload, document, user_id)

    def dispatch(self, outcome: WebhookOutcome) -> None:
        """Deliver the notifications of an outcome."""
        for notification in outcome.notifications:
            self._notifier.notify(notification)

    def _after_transcription(
        self, payload: WebhookPayload, document: Document, user_id: int
    ) -> WebhookOutcome:
        if not payload.succeeded:
            notification = self._record(payload, document, user_id, f"{ACTION_TRANSCRIPTION}_ko")
            return WebhookOutcome(
                http_status=200,
                message=MSG_TRANSCRIPTION_KO,
                notifications=(notification,),
                status=DocumentStatus.CREATION,
            )

        transcribed = self._record(payload, document, user_id, f"{ACTION_TRANSCRIPTION}_ok")
        if document.requires_transcription_review:
            return WebhookOutcome(
                http_status=200,
                message=MSG_TRANSCRIPTION_OK,
                notifications=(transcribed,),
                status=DocumentStatus.ANALYSIS,
            )

        try:
            self._analysis_starter.start(document)
        except (NolejApiError, StorageError) as e:
            logger.warning("Automatic analysis of %s failed: %s", document.document_id, e)
            if not self._tracker.compare_and_transition(
                document.document_id, DocumentStatus.ANALYSIS, DocumentStatus.FAILED
            ):
                return self._status_changed(document, transcribed)
            failed = self._store(
                document,
                ActivityRecord(
                    document_id=document.document_id,
                    user_id=user_id,
                    action=ACTION_ANALYSIS,
                    tstamp=int(self._clock()),
                    status=STATUS_KO,
                    code=getattr(e, "status_code", None) or 0,
                    error_message=str(e),
                    consumed_credit=payload.consumed_credit,
                ),
            )
            return WebhookOutcome(
                http_status=200,
                message=MSG_TRANSCRIPTION_ADVANCE_FAILED,
                notifications=(transcribed, failed),
                status=DocumentStatus.FAILED,
            )

        if not self._tracker.compare_and_transition(
            document.document_id, DocumentStatus.ANALYSIS, DocumentStatus.ANALYSIS_PENDING
        ):
            return self._status_changed(document, transcribed)
        started = self._store(
            document,
            ActivityRecord(
                document_id=document.document_id,
                user_id=user_id,
                action=ACTION_ANALYSIS,
                tstamp=int(self._clock()),
                status=STATUS_OK,
                consumed_credit=payload.consumed_credit,
            ),
        )
        return WebhookOutcome(
            http_status=200,
            message=MSG_TRANSCRIPTION_ADVANCED,
            notifications=(transcribed, started),
            status=DocumentStatus.ANALYSIS_PENDING,
        )

    def _status_changed(self, document: Document, transcribed: Notification) -> WebhookOutcome:
        """Outcome when the document left ANALYSIS during the automatic advance."""
        status = self._tracker.current(document.document_id)
        logger.warning(
            "Document %s changed to %s during automatic analysis, no analysis recorded",
            document.document_id,
            status.name if status is not None else "deleted",
        )
        return WebhookOutcome(
            http_status=200,
            message=MSG_TRANSCRIPTION_OK,
            notifications=(transcribed,),
            status=status,
        )

    def _after_analysis(
        self, payload: WebhookPayload, document: Document, user_id: int
    ) -> WebhookOutcome:
        if payload.succeeded:
            notification = self._record(payload, document, user_id, f"{ACTION_ANALYSIS}_ok")
            return WebhookOutcome(
                http_status=200,
                message=MSG_ANALYSIS_OK,
                notifications=(notification,),
                status=DocumentStatus.REVISION,
            )
        notification = self._record(payload, document, user_id, f"{ACTION_ANALYSIS}_ko")
        return WebhookOutcome(
            http_status=200,
            message=MSG_ANALYSIS_KO,
            notifications=(notification,),
            status=DocumentStatus.FAILED,
        )

    def _after_activities(
        self, payload: WebhookPayload, document: Document, user_id: int
    ) -> WebhookOutcome:
        if not payload.succeeded:
            notification = self._record(payload, document, user_id, f"{ACTION_ACTIVITIES}_ko")
            return WebhookOutcome(
                http_status=200,
                message=MSG_ACTIVITIES_KO,
                notifications=(notification,),
                status=DocumentStatus.ACTIVITIES,
            )

        failures = self._importer.import_packages(document.document_id)
        if failures:
            logger.warning(
                "Some packages of document %s were not imported: %s",
                document.document_id,
                failures,
            )
            notification = self._record(
                payload,
                document,
                user_id,
                f"{ACTION_ACTIVITIES}_ko",
                error_message=failures,
            )
            return WebhookOutcome(
                http_status=200,
                message=MSG_ACTIVITIES_PARTIAL,
                notifications=(notification,),
                status=DocumentStatus.COMPLETED,
            )

        notification = self._record(payload, document, user_id, f"{ACTION_ACTIVITIES}_ok")
        return WebhookOutcome(
            http_status=200,
            message=MSG_ACTIVITIES_OK,
            notifications=(notification,),
            status=DocumentStatus.COMPLETED,
        )

    def _record(
        self,
        payload: WebhookPayload,
        document: Document,
        user_id: int,
        action: str,
        *,
        error_message: str | None = None,
    ) -> Notification:
        """Store the activity record of a stage outcome."""
        return self._store(
            document,
            ActivityRecord(
                document_id=payload.document_id,
                user_id=user_id,
                action=action,
                tstamp=int(self._clock()),
                status=payload.status if error_message is None else STATUS_KO,
                code=payload.code,
                error_message=payload.error_message if error_message is None else error_message,
                consumed_credit=payload.consumed_credit,
            ),
        )

    def _store(self, document: Document, record: ActivityRecord) -> Notification:
        with begin_conn(self._engine) as conn:
            stored = ActivitiesRepository(conn).upsert(record)
        return build_notification(stored, document.title)
