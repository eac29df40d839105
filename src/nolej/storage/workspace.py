"""Per-document workspace on the local filesystem.

Layout:
    {data_dir}/{document_id}/
        transcription.htm
        settings.json, concepts.json, questions.json, summary.json
        h5p/{activity_name}.h5p

The workspace is a write-through cache of what was exchanged with Nolej:
reads return None when a file is absent, writes create the directory and
overwrite.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
from pathlib import Path
from typing import Any, Final

from nolej.storage.errors import PathTraversalError, WorkspaceError

logger = logging.getLogger(__name__)

TRANSCRIPTION_FILE: Final[str] = "transcription.htm"
SETTINGS_FILE: Final[str] = "settings.json"
PACKAGES_DIR: Final[str] = "h5p"
PACKAGE_SUFFIX: Final[str] = ".h5p"

_SAFE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_\-.]+$")


def _is_unsafe_name(name: str) -> bool:
    """Check if a single path segment could escape its directory.

    Rejects empty names, "." and "..", separators, null bytes and any
    character outside [a-zA-Z0-9_-.].
    """
    if not name or name in (".", ".."):
        return True
    return not _SAFE_NAME_PATTERN.match(name)


class DocumentWorkspace:
    """Files of one document.

    Args:
        root: Root directory holding all workspaces.
        document_id: Document the workspace belongs to.

    Raises:
        PathTraversalError: If the document id is not a safe directory name.
    """

    def __init__(self, root: str | Path, document_id: str) -> None:
        if _is_unsafe_name(document_id):
            raise PathTraversalError(document_id=document_id)
        self._root = Path(root).resolve()
        self._document_id = document_id
        self._dir = self._root / document_id

    @property
    def document_id(self) -> str:
        return self._document_id

    @property
    def path(self) -> Path:
        return self._dir

    @property
    def packages_dir(self) -> Path:
        return self._dir / PACKAGES_DIR

    def file_path(self, filename: str) -> Path:
        """Absolute path of a workspace file.

        Raises:
            PathTraversalError: If the name is not a plain file name.
        """
        if _is_unsafe_name(filename):
            raise PathTraversalError(document_id=self._document_id, name=filename)
        return self._dir / filename

    def has(self, filename: str) -> bool:
        return self.file_path(filename).is_file()

    def read_text(self, filename: str) -> str | None:
        """Content of a file, or None if it does not exist."""
        path = self.file_path(filename)
        if not path.is_file():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise WorkspaceError(
                f"Failed to read file: {e}", document_id=self._document_id, name=filename
            ) from e

    def write_text(self, filename: str, content: str) -> Path:
        """Write a file, creating the workspace directory as needed."""
        return self._write(filename, content.encode("utf-8"))

    def write_bytes(self, filename: str, data: bytes) -> Path:
        return self._write(filename, data)

    def read_json(self, filename: str) -> Any:
        """Decoded JSON content of a file, or None if it does not exist.

        Raises:
            WorkspaceError: If the file holds invalid JSON.
        """
        content = self.read_text(filename)
        if content is None:
            return None
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise WorkspaceError(
                f"Invalid JSON: {e}", document_id=self._document_id, name=filename
            ) from e

    def write_json(self, filename: str, data: Any) -> Path:
        return self.write_text(filename, json.dumps(data, ensure_ascii=False, indent=2))

    def package_path(self, activity_name: str) -> Path:
        """Download location of a generated package."""
        if _is_unsafe_name(activity_name):
            raise PathTraversalError(document_id=self._document_id, name=activity_name)
        return self.packages_dir / f"{activity_name}{PACKAGE_SUFFIX}"

    def write_package(self, activity_name: str, data: bytes) -> Path:
        """Store a downloaded package, replacing an older download."""
        path = self.package_path(activity_name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise WorkspaceError(
                f"Failed to write package: {e}", document_id=self._document_id, name=activity_name
            ) from e
        return path

    def clear_packages(self) -> int:
        """Delete every previously downloaded package.

        Returns:
            Number of files removed.
        """
        if not self.packages_dir.is_dir():
            return 0
        removed = 0
        for path in self.packages_dir.glob(f"*{PACKAGE_SUFFIX}"):
            path.unlink(missing_ok=True)
            removed += 1
        logger.debug("Removed %d package files of %s", removed, self._document_id)
        return removed

    def delete(self) -> None:
        """Remove the whole workspace directory."""
        if self._dir.exists():
            shutil.rmtree(self._dir)
            logger.info("Deleted workspace of document %s", self._document_id)

    def _write(self, filename: str, data: bytes) -> Path:
        path = self.file_path(filename)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise WorkspaceError(
                f"Failed to write file: {e}", document_id=self._document_id, name=filename
            ) from e
        return path
