"""H5P package format validation.

A package is a zip archive with an h5p.json manifest at its root. Only
the manifest is checked; library contents are left to the host.
"""

from __future__ import annotations

import json
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Final

MANIFEST_NAME: Final[str] = "h5p.json"
REQUIRED_MANIFEST_FIELDS: Final[tuple[str, ...]] = (
    "title",
    "mainLibrary",
    "preloadedDependencies",
)

# Errors zipfile lets through for truncated, corrupt or encrypted members.
ARCHIVE_ERRORS: Final[tuple[type[Exception], ...]] = (
    zipfile.BadZipFile,
    zlib.error,
    EOFError,
    OSError,
    RuntimeError,
    NotImplementedError,
)


class PackageValidationError(Exception):
    """Raised when a downloaded file is not a valid H5P package."""


@dataclass(frozen=True)
class PackageManifest:
    """Fields of h5p.json the importer uses."""

    title: str
    main_library: str


def validate_package(path: Path) -> PackageManifest:
    """Validate a downloaded package.

    Args:
        path: Path of the .h5p file.

    Returns:
        Parsed manifest.

    Raises:
        PackageValidationError: If the file is not a readable zip archive,
            has a corrupt member, has no manifest, or the manifest misses a
            required field.
    """
    if not path.is_file() or path.stat().st_size == 0:
        raise PackageValidationError(f"{path.name} is missing or empty")

    try:
        with zipfile.ZipFile(path) as archive:
            try:
                raw = archive.read(MANIFEST_NAME)
            except KeyError as e:
                raise PackageValidationError(f"{MANIFEST_NAME} not found") from e
            corrupt = archive.testzip()
    except ARCHIVE_ERRORS as e:
        raise PackageValidationError(
            f"{path.name} is not a zip archive or is unreadable: {e}"
        ) from e
    if corrupt is not None:
        raise PackageValidationError(f"{corrupt} fails its CRC check")

    try:
        manifest = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise PackageValidationError(f"{MANIFEST_NAME} is not valid JSON") from e

    if not isinstance(manifest, dict):
        raise PackageValidationError(f"{MANIFEST_NAME} must be an object")

    missing = [field for field in REQUIRED_MANIFEST_FIELDS if field not in manifest]
    if missing:
        raise PackageValidationError(f"{MANIFEST_NAME} misses {', '.join(missing)}")

    if not isinstance(manifest["preloadedDependencies"], list):
        raise PackageValidationError("preloadedDependencies must be a list")

    return PackageManifest(
        title=str(manifest["title"]),
        main_library=str(manifest["mainLibrary"]),
    )
