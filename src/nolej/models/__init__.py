"""Nolej domain models: Pydantic models for persisted entities."""

from nolej.models.activity import STATUS_KO, STATUS_OK, ActivityRecord, normalize_outcome
from nolej.models.document import Document, MediaType
from nolej.models.package import GeneratedPackage, PackageDescriptor
from nolej.models.status import (
    EXPECTED_STATUS_FOR_ACTION,
    PENDING_STATUSES,
    DocumentStatus,
    is_pending,
)

__all__ = [
    "ActivityRecord",
    "Document",
    "DocumentStatus",
    "EXPECTED_STATUS_FOR_ACTION",
    "GeneratedPackage",
    "MediaType",
    "PackageDescriptor",
    "PENDING_STATUSES",
    "STATUS_KO",
    "STATUS_OK",
    "is_pending",
    "normalize_outcome",
]
