"""Tests for the persistence repositories (SQLite)."""

from __future__ import annotations

import pytest
from sqlalchemy import Engine, text

from nolej.models.activity import STATUS_KO, ActivityRecord
from nolej.models.package import GeneratedPackage
from nolej.models.status import DocumentStatus
from nolej.persistence.db import DatabaseConfigError, begin_conn, create_db_engine
from nolej.persistence.repositories import (
    ActivitiesRepository,
    ConfigRepository,
    DocumentsRepository,
    PackagesRepository,
)
from nolej.persistence.schema import TABLE_ACTIVITIES
from tests.fixtures.nolej import NOW, USER_ID, seed_document


def _record(action: str = "analysis_ok", **overrides: object) -> ActivityRecord:
    values: dict[str, object] = {
        "document_id": "doc-1",
        "user_id": USER_ID,
        "action": action,
        "tstamp": NOW,
    }
    values.update(overrides)
    return ActivityRecord(**values)


def _package(content_id: int, package_type: str, generated_at: int) -> GeneratedPackage:
    return GeneratedPackage(
        content_id=content_id,
        document_id="doc-1",
        type=package_type,
        generated_at=generated_at,
    )


class TestCreateDbEngine:
    def test_empty_url_is_rejected(self) -> None:
        with pytest.raises(DatabaseConfigError):
            create_db_engine("")

    def test_malformed_url_is_rejected(self) -> None:
        with pytest.raises(DatabaseConfigError):
            create_db_engine("not a url")

    def test_sqlite_parent_directory_is_created(self, tmp_path) -> None:
        db_engine = create_db_engine(f"sqlite:///{tmp_path / 'nested' / 'db.sqlite3'}")
        try:
            assert (tmp_path / "nested").is_dir()
        finally:
            db_engine.dispose()


class TestDocumentsRepository:
    def test_create_and_get(self, engine: Engine) -> None:
        with begin_conn(engine) as conn:
            created = DocumentsRepository(conn).create(
                document_id="doc-9",
                status=DocumentStatus.CREATION_PENDING,
                title="Cells",
                doc_url="https://example.org/cells.pdf",
                media_type="document",
                automatic_mode=True,
                language="fr",
            )

        with begin_conn(engine) as conn:
            loaded = DocumentsRepository(conn).get("doc-9")

        assert loaded == created
        assert loaded is not None
        assert loaded.automatic_mode is True
        assert loaded.status == DocumentStatus.CREATION_PENDING

    def test_get_missing_returns_none(self, engine: Engine) -> None:
        with begin_conn(engine) as conn:
            assert DocumentsRepository(conn).get("nope") is None
            assert DocumentsRepository(conn).get_status("nope") is None

    def test_find_in_status_with_user_uses_latest_activity(self, engine: Engine) -> None:
        seed_document(engine, status=DocumentStatus.ANALYSIS_PENDING, tstamp=NOW - 50)
        with begin_conn(engine) as conn:
            ActivitiesRepository(conn).upsert(_record("analysis", user_id=7, tstamp=NOW))

        with begin_conn(engine) as conn:
            found = DocumentsRepository(conn).find_in_status_with_user(
                "doc-1", DocumentStatus.ANALYSIS_PENDING
            )

        assert found is not None
        document, user_id = found
        assert document.document_id == "doc-1"
        assert user_id == 7

    def test_find_in_status_with_user_checks_status(self, engine: Engine) -> None:
        seed_document(engine, status=DocumentStatus.CREATION_PENDING)

        with begin_conn(engine) as conn:
            found = DocumentsRepository(conn).find_in_status_with_user(
                "doc-1", DocumentStatus.ANALYSIS_PENDING
            )

        assert found is None

    def test_find_in_status_with_user_requires_an_activity(self, engine: Engine) -> None:
        with begin_conn(engine) as conn:
            DocumentsRepository(conn).create(
                document_id="orphan",
                status=DocumentStatus.CREATION_PENDING,
                title=None,
                doc_url="x",
                media_type="web",
                automatic_mode=False,
                language="en",
            )
            found = DocumentsRepository(conn).find_in_status_with_user(
                "orphan", DocumentStatus.CREATION_PENDING
            )

        assert found is None

    def test_delete_cascades_to_activities_and_packages(self, engine: Engine) -> None:
        seed_document(engine, status=DocumentStatus.COMPLETED)
        with begin_conn(engine) as conn:
            PackagesRepository(conn).add(_package(1, "glossary", NOW))

        with begin_conn(engine) as conn:
            assert DocumentsRepository(conn).delete("doc-1") is True

        with begin_conn(engine) as conn:
            assert DocumentsRepository(conn).get("doc-1") is None
            assert ActivitiesRepository(conn).list_for_document("doc-1") == []
            assert PackagesRepository(conn).list_current("doc-1") == []
            assert DocumentsRepository(conn).delete("doc-1") is False


class TestActivitiesRepository:
    def test_upsert_same_key_keeps_one_row_with_latest_values(self, engine: Engine) -> None:
        with begin_conn(engine) as conn:
            repo = ActivitiesRepository(conn)
            repo.upsert(_record(tstamp=NOW, consumed_credit=1))
            repo.upsert(
                _record(
                    tstamp=NOW + 10,
                    status=STATUS_KO,
                    code=500,
                    error_message="boom",
                    consumed_credit=4,
                )
            )

        with begin_conn(engine) as conn:
            count = conn.execute(
                text(f"SELECT COUNT(*) FROM {TABLE_ACTIVITIES} WHERE action = 'analysis_ok'")
            ).scalar_one()
            stored = ActivitiesRepository(conn).get("doc-1", USER_ID, "analysis_ok")

        assert count == 1
        assert stored is not None
        assert stored.tstamp == NOW + 10
        assert stored.status == STATUS_KO
        assert stored.code == 500
        assert stored.error_message == "boom"
        assert stored.consumed_credit == 4

    def test_upsert_resets_notified(self, engine: Engine) -> None:
        with begin_conn(engine) as conn:
            repo = ActivitiesRepository(conn)
            repo.upsert(_record())
            assert repo.dismiss("doc-1", USER_ID) == 1
            assert repo.get("doc-1", USER_ID, "analysis_ok").notified is True

            repo.upsert(_record(tstamp=NOW + 5))
            assert repo.get("doc-1", USER_ID, "analysis_ok").notified is False

    def test_zero_timestamp_is_replaced_by_current_time(self, engine: Engine) -> None:
        with begin_conn(engine) as conn:
            stored = ActivitiesRepository(conn).upsert(_record(tstamp=0))

        assert stored.tstamp > NOW

    def test_long_error_message_is_truncated(self, engine: Engine) -> None:
        with begin_conn(engine) as conn:
            repo = ActivitiesRepository(conn)
            repo.upsert(_record(error_message="x" * 500))
            stored = repo.get("doc-1", USER_ID, "analysis_ok")

        assert stored is not None
        assert len(stored.error_message) == 200

    def test_list_for_user_returns_latest_unnotified_per_document(self, engine: Engine) -> None:
        with begin_conn(engine) as conn:
            repo = ActivitiesRepository(conn)
            repo.upsert(_record("transcription", tstamp=NOW - 30))
            repo.upsert(_record("analysis_ok", tstamp=NOW - 10))
            repo.upsert(_record("transcription", document_id="doc-2", tstamp=NOW - 20))
            repo.upsert(_record("transcription", document_id="doc-3", tstamp=NOW - 5))
            repo.upsert(_record("transcription", document_id="doc-4", user_id=99, tstamp=NOW))
            repo.dismiss("doc-3", USER_ID)

            entries = repo.list_for_user(USER_ID, since=0)

        assert [(r.document_id, r.action) for r in entries] == [
            ("doc-1", "analysis_ok"),
            ("doc-2", "transcription"),
        ]

    def test_list_for_user_honours_window(self, engine: Engine) -> None:
        with begin_conn(engine) as conn:
            repo = ActivitiesRepository(conn)
            repo.upsert(_record("transcription", document_id="old", tstamp=NOW - 100))
            repo.upsert(_record("transcription", document_id="mid", tstamp=NOW - 50))
            repo.upsert(_record("transcription", document_id="new", tstamp=NOW))

            entries = repo.list_for_user(USER_ID, since=NOW - 60, until=NOW - 1)

        assert [r.document_id for r in entries] == ["mid"]

    def test_count_new_and_latest_timestamp(self, engine: Engine) -> None:
        with begin_conn(engine) as conn:
            repo = ActivitiesRepository(conn)
            repo.upsert(_record("transcription", tstamp=NOW - 30))
            repo.upsert(_record("analysis_ok", tstamp=NOW - 10))
            repo.upsert(_record("transcription", document_id="doc-2", tstamp=NOW))

            assert repo.count_new(USER_ID, since=0) == 2
            assert repo.count_new(USER_ID, since=NOW - 5) == 1
            assert repo.latest_timestamp(USER_ID) == NOW
            assert repo.latest_timestamp(12345) is None

    def test_dismiss_only_touches_that_user(self, engine: Engine) -> None:
        with begin_conn(engine) as conn:
            repo = ActivitiesRepository(conn)
            repo.upsert(_record("transcription"))
            repo.upsert(_record("transcription", user_id=8))

            assert repo.dismiss("doc-1", USER_ID) == 1
            assert repo.dismiss("doc-1", USER_ID) == 0
            assert repo.list_for_user(8, since=0)[0].user_id == 8


class TestPackagesRepository:
    def test_latest_content_id_is_most_recent_generation(self, engine: Engine) -> None:
        with begin_conn(engine) as conn:
            repo = PackagesRepository(conn)
            repo.add(_package(1, "glossary", NOW))
            repo.add(_package(5, "glossary", NOW + 60))
            repo.add(_package(6, "ibook", NOW + 60))

            assert repo.latest_content_id("doc-1", "glossary") == 5
            assert repo.latest_content_id("doc-1", "ibook") == 6
            assert repo.latest_content_id("doc-1", "flashcards") is None

    def test_list_current_returns_one_package_per_type(self, engine: Engine) -> None:
        with begin_conn(engine) as conn:
            repo = PackagesRepository(conn)
            repo.add(_package(1, "glossary", NOW))
            repo.add(_package(2, "glossary", NOW + 1))
            repo.add(_package(3, "ibook", NOW))

            current = repo.list_current("doc-1")

        assert [(p.type, p.content_id) for p in current] == [("glossary", 2), ("ibook", 3)]


class TestConfigRepository:
    def test_save_get_and_overwrite(self, engine: Engine) -> None:
        with begin_conn(engine) as conn:
            repo = ConfigRepository(conn)
            assert repo.get("api_key") is None

            repo.save("api_key", "first")
            repo.save("api_key", "second")
            repo.save("interval", "5")

            assert repo.get("api_key") == "second"
            assert repo.all() == {"api_key": "second", "interval": "5"}
