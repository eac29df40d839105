"""Generated package import."""

from nolej.services.importer.importer import (
    CLEAR_FAILED,
    LIST_FAILED,
    MAX_ATTEMPTS,
    REASON_CONTENT_ID_MISSING,
    REASON_DOWNLOAD_FAILED,
    REASON_IMPORT_FAILED,
    REASON_INVALID_PACKAGE,
    PackageImporter,
    summarize_failures,
)
from nolej.services.importer.validator import (
    PackageManifest,
    PackageValidationError,
    validate_package,
)

__all__ = [
    "CLEAR_FAILED",
    "LIST_FAILED",
    "MAX_ATTEMPTS",
    "PackageImporter",
    "PackageManifest",
    "PackageValidationError",
    "REASON_CONTENT_ID_MISSING",
    "REASON_DOWNLOAD_FAILED",
    "REASON_IMPORT_FAILED",
    "REASON_INVALID_PACKAGE",
    "summarize_failures",
    "validate_package",
]
