"""Tests for webhook ingestion: state guard, transitions, auto-advance and import."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest
from sqlalchemy import Engine, text

from nolej.models.status import DocumentStatus
from nolej.persistence.db import begin_conn
from nolej.persistence.repositories import (
    ActivitiesRepository,
    DocumentsRepository,
    PackagesRepository,
)
from nolej.persistence.schema import TABLE_ACTIVITIES
from nolej.services.container import NolejServices
from nolej.services.notifications import InMemoryNotifier
from nolej.services.webhooks.ingestor import (
    MSG_ACTIVITIES_KO,
    MSG_ACTIVITIES_OK,
    MSG_ACTIVITIES_PARTIAL,
    MSG_ANALYSIS_KO,
    MSG_ANALYSIS_OK,
    MSG_INVALID,
    MSG_NOT_FOUND,
    MSG_TRANSCRIPTION_ADVANCE_FAILED,
    MSG_TRANSCRIPTION_ADVANCED,
    MSG_TRANSCRIPTION_KO,
    MSG_TRANSCRIPTION_OK,
    MSG_UNKNOWN_ACTION,
    MSG_WORK_IN_PROGRESS,
)
from nolej.storage import DocumentWorkspace
from tests.fixtures.nolej import (
    PUBLIC_URL,
    USER_ID,
    FakeNolej,
    activity,
    current_status,
    h5p_response,
    make_corrupt_h5p,
    package_url,
    seed_document,
    stage_webhook,
)


def _activity_rows(engine: Engine) -> list[tuple[Any, ...]]:
    with begin_conn(engine) as conn:
        rows = conn.execute(
            text(f"SELECT action, tstamp, status FROM {TABLE_ACTIVITIES} ORDER BY action")
        ).fetchall()
    return [tuple(row) for row in rows]


class TestAcknowledgements:
    def test_work_in_progress_is_acknowledged(self, services: NolejServices) -> None:
        outcome = services.ingestor.ingest({"action": "work in progress"})

        assert outcome.http_status == 200
        assert outcome.message == MSG_WORK_IN_PROGRESS
        assert outcome.notifications == ()

    def test_unknown_action_is_acknowledged_without_change(
        self, services: NolejServices, engine: Engine
    ) -> None:
        seed_document(engine)

        outcome = services.ingestor.ingest(stage_webhook("publication"))

        assert outcome.http_status == 200
        assert outcome.message == MSG_UNKNOWN_ACTION
        assert current_status(engine) == DocumentStatus.CREATION_PENDING

    @pytest.mark.parametrize(
        "body",
        [
            None,
            ["transcription"],
            {"documentID": "doc-1"},
            stage_webhook("analysis", code="0"),
            stage_webhook("analysis", documentID=None),
            stage_webhook("analysis", consumedCredit="3"),
        ],
    )
    def test_malformed_body_is_rejected(
        self, services: NolejServices, engine: Engine, body: Any
    ) -> None:
        seed_document(engine, status=DocumentStatus.ANALYSIS_PENDING)

        outcome = services.ingestor.ingest(body)

        assert outcome.http_status == 400
        assert outcome.message == MSG_INVALID
        assert current_status(engine) == DocumentStatus.ANALYSIS_PENDING

    def test_unknown_document_is_not_found(self, services: NolejServices) -> None:
        outcome = services.ingestor.ingest(stage_webhook("analysis", documentID="ghost"))

        assert outcome.http_status == 404
        assert outcome.message == MSG_NOT_FOUND


class TestStateGuard:
    @pytest.mark.parametrize("action", ["transcription", "analysis", "activities"])
    @pytest.mark.parametrize("status", list(DocumentStatus))
    def test_webhook_accepted_only_in_matching_pending_status(
        self,
        services: NolejServices,
        engine: Engine,
        fake_nolej: FakeNolej,
        action: str,
        status: DocumentStatus,
    ) -> None:
        expected = {
            "transcription": DocumentStatus.CREATION_PENDING,
            "analysis": DocumentStatus.ANALYSIS_PENDING,
            "activities": DocumentStatus.ACTIVITIES_PENDING,
        }[action]
        seed_document(engine, status=status)
        fake_nolej.serve_packages("doc-1", {})
        before = _activity_rows(engine)

        outcome = services.ingestor.ingest(stage_webhook(action))

        if status == expected:
            assert outcome.http_status == 200
            assert current_status(engine) != status
        else:
            assert outcome.http_status == 404
            assert current_status(engine) == status
            assert _activity_rows(engine) == before

    def test_redelivered_webhook_is_a_no_op(
        self, services: NolejServices, engine: Engine, notifier: InMemoryNotifier
    ) -> None:
        seed_document(engine, status=DocumentStatus.ANALYSIS_PENDING)
        body = stage_webhook("analysis")

        first = services.ingestor.ingest(body)
        rows_after_first = _activity_rows(engine)
        second = services.ingestor.ingest(body)

        assert first.http_status == 200
        assert second.http_status == 404
        assert second.message == MSG_NOT_FOUND
        assert second.notifications == ()
        assert _activity_rows(engine) == rows_after_first
        assert current_status(engine) == DocumentStatus.REVISION

    def test_analysis_webhook_during_transcription_is_rejected(
        self, services: NolejServices, engine: Engine
    ) -> None:
        seed_document(engine, status=DocumentStatus.CREATION_PENDING)

        outcome = services.ingestor.ingest(stage_webhook("analysis"))

        assert outcome.http_status == 404
        assert current_status(engine) == DocumentStatus.CREATION_PENDING
        assert activity(engine, "analysis_ok") is None


class TestTranscriptionWebhook:
    @pytest.mark.parametrize("media_type", ["audio", "video"])
    def test_reviewed_media_stops_at_analysis(
        self,
        services: NolejServices,
        engine: Engine,
        fake_nolej: FakeNolej,
        media_type: str,
    ) -> None:
        seed_document(engine, media_type=media_type)

        outcome = services.ingestor.ingest(stage_webhook("transcription", consumedCredit=3))

        assert outcome.http_status == 200
        assert outcome.message == MSG_TRANSCRIPTION_OK
        assert outcome.status == DocumentStatus.ANALYSIS
        assert current_status(engine) == DocumentStatus.ANALYSIS
        assert fake_nolej.requests == []

        record = activity(engine, "transcription_ok")
        assert record is not None
        assert record.succeeded
        assert record.consumed_credit == 3
        with begin_conn(engine) as conn:
            document = DocumentsRepository(conn).get("doc-1")
        assert document is not None
        assert document.consumed_credit == 3

    def test_example_scenario_auto_advances_to_analysis_pending(
        self, services: NolejServices, engine: Engine, fake_nolej: FakeNolej
    ) -> None:
        seed_document(engine, media_type="document")
        fake_nolej.serve_transcription("doc-1", title="Light and plants")

        outcome = services.ingestor.ingest(
            {
                "action": "transcription",
                "documentID": "doc-1",
                "status": "ok",
                "code": 0,
                "error_message": "",
                "consumedCredit": 3,
            }
        )

        assert outcome.http_status == 200
        assert outcome.message == MSG_TRANSCRIPTION_ADVANCED
        assert outcome.status == DocumentStatus.ANALYSIS_PENDING
        assert current_status(engine) == DocumentStatus.ANALYSIS_PENDING
        assert activity(engine, "transcription_ok") is not None
        started = activity(engine, "analysis")
        assert started is not None
        assert started.succeeded

        [submit] = fake_nolej.api_calls("PUT", "/documents/doc-1/transcription")
        assert json.loads(submit.content) == {
            "s3URL": f"{PUBLIC_URL}/v1/documents/doc-1/files/transcription.htm",
            "automaticMode": False,
        }

    def test_auto_advance_stores_transcription_and_title(
        self,
        services: NolejServices,
        engine: Engine,
        fake_nolej: FakeNolej,
    ) -> None:
        seed_document(engine, media_type="web")
        fake_nolej.serve_transcription("doc-1", title="Light and plants")

        services.ingestor.ingest(stage_webhook("transcription"))

        workspace = DocumentWorkspace(services.settings.data_dir, "doc-1")
        assert workspace.read_text("transcription.htm") == "<p>Plants turn light into sugar.</p>"
        with begin_conn(engine) as conn:
            document = DocumentsRepository(conn).get("doc-1")
        assert document is not None
        assert document.title == "Light and plants"

    def test_auto_advance_failure_marks_document_failed(
        self, services: NolejServices, engine: Engine, fake_nolej: FakeNolej
    ) -> None:
        seed_document(engine, media_type="document")
        fake_nolej.serve_transcription("doc-1")
        fake_nolej.api(
            "PUT",
            "/documents/doc-1/transcription",
            json_body={"error": "quota exceeded"},
            status_code=500,
        )

        outcome = services.ingestor.ingest(stage_webhook("transcription"))

        assert outcome.http_status == 200
        assert outcome.message == MSG_TRANSCRIPTION_ADVANCE_FAILED
        assert current_status(engine) == DocumentStatus.FAILED
        failed = activity(engine, "analysis")
        assert failed is not None
        assert not failed.succeeded
        assert failed.code == 500
        assert [n.action for n in outcome.notifications] == ["transcription_ok", "analysis"]

    @pytest.mark.parametrize("remote_status", [200, 500])
    def test_auto_advance_lost_race_records_no_analysis(
        self,
        services: NolejServices,
        engine: Engine,
        fake_nolej: FakeNolej,
        remote_status: int,
    ) -> None:
        seed_document(engine, media_type="document")
        fake_nolej.serve_transcription("doc-1")

        def started_elsewhere(request: httpx.Request) -> httpx.Response:
            services.tracker.transition("doc-1", DocumentStatus.ACTIVITIES)
            return httpx.Response(remote_status, json={"result": "ok"})

        fake_nolej.api("PUT", "/documents/doc-1/transcription", started_elsewhere)

        outcome = services.ingestor.ingest(stage_webhook("transcription"))

        assert outcome.http_status == 200
        assert outcome.message == MSG_TRANSCRIPTION_OK
        assert outcome.status == DocumentStatus.ACTIVITIES
        assert current_status(engine) == DocumentStatus.ACTIVITIES
        assert activity(engine, "analysis") is None
        assert [n.action for n in outcome.notifications] == ["transcription_ok"]

    def test_transcription_failure_returns_to_creation(
        self, services: NolejServices, engine: Engine
    ) -> None:
        seed_document(engine, media_type="document")

        outcome = services.ingestor.ingest(
            stage_webhook("transcription", status="ko", code=415, error_message="bad format")
        )

        assert outcome.message == MSG_TRANSCRIPTION_KO
        assert current_status(engine) == DocumentStatus.CREATION
        record = activity(engine, "transcription_ko")
        assert record is not None
        assert record.code == 415
        assert record.error_message == "bad format"


class TestAnalysisWebhook:
    def test_success_moves_to_revision(self, services: NolejServices, engine: Engine) -> None:
        seed_document(engine, status=DocumentStatus.ANALYSIS_PENDING)

        outcome = services.ingestor.ingest(stage_webhook("analysis"))

        assert outcome.message == MSG_ANALYSIS_OK
        assert current_status(engine) == DocumentStatus.REVISION
        assert activity(engine, "analysis_ok") is not None

    def test_failure_marks_document_failed(self, services: NolejServices, engine: Engine) -> None:
        seed_document(engine, status=DocumentStatus.ANALYSIS_PENDING)

        outcome = services.ingestor.ingest(stage_webhook("analysis", status="ko", code=500))

        assert outcome.message == MSG_ANALYSIS_KO
        assert current_status(engine) == DocumentStatus.FAILED
        assert activity(engine, "analysis_ko") is not None

    def test_notifications_go_to_latest_user(
        self, services: NolejServices, engine: Engine, notifier: InMemoryNotifier
    ) -> None:
        seed_document(engine, status=DocumentStatus.ANALYSIS_PENDING, user_id=USER_ID)

        outcome = services.ingestor.ingest(stage_webhook("analysis"))
        assert notifier.sent == []

        services.ingestor.dispatch(outcome)

        assert notifier.actions() == ["analysis_ok"]
        assert notifier.sent[0].user_id == USER_ID
        assert "Photosynthesis" in notifier.sent[0].body


class TestActivitiesWebhook:
    def test_success_imports_every_package(
        self, services: NolejServices, engine: Engine, fake_nolej: FakeNolej
    ) -> None:
        seed_document(engine, status=DocumentStatus.ACTIVITIES_PENDING)
        fake_nolej.serve_packages(
            "doc-1",
            {"glossary": h5p_response("Glossary"), "ibook": h5p_response("Book")},
        )

        outcome = services.ingestor.ingest(stage_webhook("activities"))

        assert outcome.message == MSG_ACTIVITIES_OK
        assert current_status(engine) == DocumentStatus.COMPLETED
        assert activity(engine, "activities_ok") is not None
        with begin_conn(engine) as conn:
            packages = PackagesRepository(conn).list_current("doc-1")
        assert sorted(p.type for p in packages) == ["glossary", "ibook"]

    def test_partial_failure_still_completes(
        self, services: NolejServices, engine: Engine, fake_nolej: FakeNolej
    ) -> None:
        seed_document(engine, status=DocumentStatus.ACTIVITIES_PENDING)
        fake_nolej.serve_packages(
            "doc-1",
            {
                "glossary": h5p_response("Glossary"),
                "flashcards": httpx.Response(200, content=b"not a zip"),
                "ibook": h5p_response("Book"),
            },
        )

        outcome = services.ingestor.ingest(stage_webhook("activities"))

        assert outcome.http_status == 200
        assert outcome.message == MSG_ACTIVITIES_PARTIAL
        assert current_status(engine) == DocumentStatus.COMPLETED
        record = activity(engine, "activities_ko")
        assert record is not None
        assert record.error_message == "flashcards (invalid package)"
        assert activity(engine, "activities_ok") is None

    def test_corrupt_package_is_reported_and_notified(
        self,
        services: NolejServices,
        engine: Engine,
        fake_nolej: FakeNolej,
        notifier: InMemoryNotifier,
    ) -> None:
        seed_document(engine, status=DocumentStatus.ACTIVITIES_PENDING)
        fake_nolej.serve_packages(
            "doc-1",
            {
                "flashcards": httpx.Response(200, content=make_corrupt_h5p()),
                "glossary": h5p_response("Glossary"),
            },
        )

        outcome = services.ingestor.ingest(stage_webhook("activities"))
        services.ingestor.dispatch(outcome)

        assert outcome.http_status == 200
        assert outcome.message == MSG_ACTIVITIES_PARTIAL
        assert current_status(engine) == DocumentStatus.COMPLETED
        assert len(fake_nolej.calls("GET", package_url("doc-1", "flashcards"))) == 2
        record = activity(engine, "activities_ko")
        assert record is not None
        assert record.error_message == "flashcards (invalid package)"
        assert notifier.actions() == ["activities_ko"]

    def test_failure_returns_to_activities(
        self, services: NolejServices, engine: Engine, fake_nolej: FakeNolej
    ) -> None:
        seed_document(engine, status=DocumentStatus.ACTIVITIES_PENDING)

        outcome = services.ingestor.ingest(stage_webhook("activities", status="ko", code=500))

        assert outcome.message == MSG_ACTIVITIES_KO
        assert current_status(engine) == DocumentStatus.ACTIVITIES
        assert fake_nolej.requests == []
        with begin_conn(engine) as conn:
            record = ActivitiesRepository(conn).get("doc-1", USER_ID, "activities_ko")
        assert record is not None
