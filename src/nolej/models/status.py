"""Document status values for the Nolej generation workflow.

The remote service works on a document in three asynchronous stages
(transcription, analysis, activity generation). Each stage has a "ready"
state, where the user may act, and a "pending" state, where the bridge
waits for a webhook from Nolej.

Normal flow (monotonically increasing):
    CREATION(0) -> CREATION_PENDING(1) -> ANALYSIS(2) -> ANALYSIS_PENDING(3)
    -> REVISION(4) -> REVISION_PENDING(5) -> ACTIVITIES(6)
    -> ACTIVITIES_PENDING(7) -> COMPLETED(8)

FAILED(9) is terminal and reachable from any pending state.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Final


class DocumentStatus(IntEnum):
    """Stored status of a document (integer column)."""

    CREATION = 0
    CREATION_PENDING = 1
    ANALYSIS = 2
    ANALYSIS_PENDING = 3
    REVISION = 4
    REVISION_PENDING = 5
    ACTIVITIES = 6
    ACTIVITIES_PENDING = 7
    COMPLETED = 8
    FAILED = 9

    @property
    def is_pending(self) -> bool:
        """True while the bridge waits on the remote service."""
        return self in PENDING_STATUSES


PENDING_STATUSES: Final[frozenset[DocumentStatus]] = frozenset(
    {
        DocumentStatus.CREATION_PENDING,
        DocumentStatus.ANALYSIS_PENDING,
        DocumentStatus.REVISION_PENDING,
        DocumentStatus.ACTIVITIES_PENDING,
    }
)

# Webhook action -> the only status in which that webhook is accepted.
EXPECTED_STATUS_FOR_ACTION: Final[dict[str, DocumentStatus]] = {
    "transcription": DocumentStatus.CREATION_PENDING,
    "analysis": DocumentStatus.ANALYSIS_PENDING,
    "activities": DocumentStatus.ACTIVITIES_PENDING,
}


def is_pending(status: int | DocumentStatus) -> bool:
    """Check if a (possibly raw integer) status is a pending state.

    Args:
        status: Status value as stored or as enum member.

    Returns:
        True if the status is one of the *_PENDING states.
    """
    try:
        return DocumentStatus(int(status)).is_pending
    except ValueError:
        return False
