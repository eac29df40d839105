"""Host content store for imported H5P packages.

The store assigns the integer content id under which a package is
addressed by the host. Generated package records point at these ids.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
import threading
import zipfile
import zlib
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from nolej.storage.errors import ContentStoreError, PathTraversalError

logger = logging.getLogger(__name__)

_METADATA_FILE = "content.json"
_CONTENT_DIR_PATTERN = re.compile(r"^[0-9]+$")


class ContentStore(ABC):
    """Abstract base class for content stores.

    Implementations:
    - FilesystemContentStore: extracted packages under a local directory
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier (e.g., "filesystem")."""
        ...

    @abstractmethod
    def register(
        self,
        package_path: Path,
        *,
        document_id: str,
        package_type: str,
        title: str,
    ) -> int | None:
        """Import a validated package.

        Args:
            package_path: Downloaded .h5p file.
            document_id: Document that produced the package.
            package_type: Artifact kind, e.g. "glossary".
            title: Package title from h5p.json.

        Returns:
            Content id assigned by the store, or None if the store
            accepted the package without assigning one.

        Raises:
            ContentStoreError: If the package cannot be stored.
        """
        ...

    @abstractmethod
    def exists(self, content_id: int) -> bool:
        """Check whether a content id is present in the store."""
        ...

    @abstractmethod
    def discard(self, content_id: int) -> None:
        """Remove a registered package whose record could not be stored."""
        ...


class FilesystemContentStore(ContentStore):
    """Content store extracting packages to {base_dir}/{content_id}/.

    Each content directory holds the unpacked package and a content.json
    file describing where it came from.
    """

    def __init__(self, base_dir: str | Path) -> None:
        self._base_dir = Path(base_dir).resolve()
        self._lock = threading.Lock()

    @property
    def backend_name(self) -> str:
        return "filesystem"

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def register(
        self,
        package_path: Path,
        *,
        document_id: str,
        package_type: str,
        title: str,
    ) -> int | None:
        with self._lock:
            content_id = self._next_content_id()
            target = self._base_dir / str(content_id)
            try:
                target.mkdir(parents=True)
                self._extract(package_path, target)
                metadata: dict[str, Any] = {
                    "content_id": content_id,
                    "document_id": document_id,
                    "type": package_type,
                    "title": title,
                }
                (target / _METADATA_FILE).write_text(json.dumps(metadata), encoding="utf-8")
            except (OSError, EOFError, zipfile.BadZipFile, zlib.error) as e:
                shutil.rmtree(target, ignore_errors=True)
                raise ContentStoreError(
                    f"Failed to store package: {e}", document_id=document_id, name=package_type
                ) from e
            except PathTraversalError:
                shutil.rmtree(target, ignore_errors=True)
                raise

        logger.info(
            "Registered %s package of document %s as content %d",
            package_type,
            document_id,
            content_id,
        )
        return content_id

    def exists(self, content_id: int) -> bool:
        return (self._base_dir / str(content_id) / _METADATA_FILE).is_file()

    def discard(self, content_id: int) -> None:
        shutil.rmtree(self._base_dir / str(content_id), ignore_errors=True)
        logger.info("Discarded content %d", content_id)

    def _next_content_id(self) -> int:
        if not self._base_dir.is_dir():
            return 1
        ids = [
            int(entry.name)
            for entry in self._base_dir.iterdir()
            if entry.is_dir() and _CONTENT_DIR_PATTERN.match(entry.name)
        ]
        return max(ids, default=0) + 1

    def _extract(self, package_path: Path, target: Path) -> None:
        """Unpack a package, refusing members that escape the target."""
        with zipfile.ZipFile(package_path) as archive:
            for member in archive.namelist():
                destination = (target / member).resolve()
                try:
                    destination.relative_to(target)
                except ValueError as e:
                    raise PathTraversalError(
                        message="Package member resolves outside content directory",
                        name=member,
                    ) from e
            archive.extractall(target)
