"""Document status tracking."""

from nolej.services.status.tracker import StatusTracker, UnknownDocumentError

__all__ = ["StatusTracker", "UnknownDocumentError"]
