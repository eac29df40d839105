"""Tests for document workspaces and the filesystem content store."""

from __future__ import annotations

import io
import json
import zipfile
from pathlib import Path

import pytest

from nolej.storage import (
    ContentStoreError,
    DocumentWorkspace,
    FilesystemContentStore,
    PathTraversalError,
    WorkspaceError,
)
from tests.fixtures.nolej import make_corrupt_h5p, make_h5p


class TestDocumentWorkspace:
    @pytest.mark.parametrize("document_id", ["", ".", "..", "../etc", "a/b", "a\\b", "x\x00y"])
    def test_unsafe_document_id_is_rejected(self, tmp_path: Path, document_id: str) -> None:
        with pytest.raises(PathTraversalError):
            DocumentWorkspace(tmp_path, document_id)

    @pytest.mark.parametrize("filename", ["../secret", "sub/file.json", "..", ""])
    def test_unsafe_file_name_is_rejected(self, tmp_path: Path, filename: str) -> None:
        workspace = DocumentWorkspace(tmp_path, "doc-1")
        with pytest.raises(PathTraversalError):
            workspace.write_text(filename, "x")

    def test_read_missing_file_returns_none(self, tmp_path: Path) -> None:
        workspace = DocumentWorkspace(tmp_path, "doc-1")

        assert workspace.read_text("concepts.json") is None
        assert workspace.read_json("concepts.json") is None
        assert not workspace.has("concepts.json")

    def test_write_creates_directory_and_overwrites(self, tmp_path: Path) -> None:
        workspace = DocumentWorkspace(tmp_path, "doc-1")

        workspace.write_json("summary.json", {"summary": ["v1"]})
        workspace.write_json("summary.json", {"summary": ["v2"]})

        assert (tmp_path / "doc-1" / "summary.json").is_file()
        assert workspace.read_json("summary.json") == {"summary": ["v2"]}

    def test_invalid_json_raises(self, tmp_path: Path) -> None:
        workspace = DocumentWorkspace(tmp_path, "doc-1")
        workspace.write_text("concepts.json", "{not json")

        with pytest.raises(WorkspaceError):
            workspace.read_json("concepts.json")

    def test_packages_live_in_h5p_directory(self, tmp_path: Path) -> None:
        workspace = DocumentWorkspace(tmp_path, "doc-1")

        path = workspace.write_package("glossary", b"data")

        assert path == tmp_path.resolve() / "doc-1" / "h5p" / "glossary.h5p"
        assert path.read_bytes() == b"data"

    def test_clear_packages_keeps_other_files(self, tmp_path: Path) -> None:
        workspace = DocumentWorkspace(tmp_path, "doc-1")
        workspace.write_package("glossary", b"a")
        workspace.write_package("ibook", b"b")
        workspace.write_text("transcription.htm", "<p>text</p>")

        assert workspace.clear_packages() == 2
        assert workspace.clear_packages() == 0
        assert workspace.has("transcription.htm")

    def test_delete_removes_everything(self, tmp_path: Path) -> None:
        workspace = DocumentWorkspace(tmp_path, "doc-1")
        workspace.write_package("glossary", b"a")
        workspace.write_text("settings.json", "{}")

        workspace.delete()
        workspace.delete()

        assert not (tmp_path / "doc-1").exists()


class TestFilesystemContentStore:
    def _package(self, tmp_path: Path, data: bytes) -> Path:
        path = tmp_path / "upload.h5p"
        path.write_bytes(data)
        return path

    def test_register_assigns_increasing_ids(self, tmp_path: Path) -> None:
        store = FilesystemContentStore(tmp_path / "content")
        package = self._package(tmp_path, make_h5p("Glossary"))

        first = store.register(package, document_id="doc-1", package_type="glossary", title="G")
        second = store.register(package, document_id="doc-1", package_type="ibook", title="B")

        assert (first, second) == (1, 2)
        assert store.exists(1)
        assert store.exists(2)
        assert not store.exists(3)
        assert store.backend_name == "filesystem"

    def test_register_extracts_package_and_metadata(self, tmp_path: Path) -> None:
        store = FilesystemContentStore(tmp_path / "content")
        package = self._package(tmp_path, make_h5p("Glossary"))

        content_id = store.register(
            package, document_id="doc-1", package_type="glossary", title="Glossary"
        )

        target = store.base_dir / str(content_id)
        assert json.loads((target / "h5p.json").read_text())["title"] == "Glossary"
        assert (target / "content" / "content.json").is_file()
        metadata = json.loads((target / "content.json").read_text())
        assert metadata == {
            "content_id": content_id,
            "document_id": "doc-1",
            "type": "glossary",
            "title": "Glossary",
        }

    def test_ids_continue_after_restart(self, tmp_path: Path) -> None:
        package = self._package(tmp_path, make_h5p())
        FilesystemContentStore(tmp_path / "content").register(
            package, document_id="doc-1", package_type="glossary", title="G"
        )

        content_id = FilesystemContentStore(tmp_path / "content").register(
            package, document_id="doc-1", package_type="glossary", title="G"
        )

        assert content_id == 2

    def test_member_escaping_target_is_refused(self, tmp_path: Path) -> None:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            archive.writestr("h5p.json", "{}")
            archive.writestr("../../evil.txt", "owned")
        store = FilesystemContentStore(tmp_path / "content")
        package = self._package(tmp_path, buffer.getvalue())

        with pytest.raises(PathTraversalError):
            store.register(package, document_id="doc-1", package_type="glossary", title="G")

        assert not (tmp_path / "evil.txt").exists()
        assert not store.exists(1)

    def test_corrupt_archive_is_a_content_store_error(self, tmp_path: Path) -> None:
        store = FilesystemContentStore(tmp_path / "content")
        package = self._package(tmp_path, make_corrupt_h5p())

        with pytest.raises(ContentStoreError):
            store.register(package, document_id="doc-1", package_type="glossary", title="G")

        assert not (store.base_dir / "1").exists()

    def test_discard_removes_content(self, tmp_path: Path) -> None:
        store = FilesystemContentStore(tmp_path / "content")
        package = self._package(tmp_path, make_h5p())
        content_id = store.register(package, document_id="doc-1", package_type="quiz", title="Q")
        assert content_id is not None

        store.discard(content_id)

        assert not store.exists(content_id)
        assert not (store.base_dir / str(content_id)).exists()
