"""Activity record: audit and notification entry for one stage outcome.

At most one record exists per (document_id, user_id, action); storing a
record with the same key replaces the previous outcome.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

STATUS_OK = "ok"
STATUS_KO = "ko"


def normalize_outcome(status: str) -> str:
    """Map a remote status string to "ok" or "ko".

    Nolej sometimes sends the JSON-encoded string '"ok"'; anything other
    than ok is treated as a failure.
    """
    return STATUS_OK if status.strip().strip('"') == STATUS_OK else STATUS_KO


class ActivityRecord(BaseModel):
    """Immutable outcome of a workflow stage for one user.

    Attributes:
        document_id: Document the stage belongs to.
        user_id: User that started the stage and receives the notification.
        action: Stage tag, e.g. "transcription", "analysis_ok", "activities_ko".
        tstamp: Unix timestamp (seconds) of the last store.
        status: "ok" or "ko".
        code: Remote error code (0 on success).
        error_message: Remote error message, or the import failure summary.
        consumed_credit: Credits consumed by the stage.
        notified: True once the user dismissed the notification.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    document_id: Annotated[str, Field(min_length=1)]
    user_id: Annotated[int, Field(gt=0)]
    action: Annotated[str, Field(min_length=1, max_length=30)]
    tstamp: int = 0
    status: str = STATUS_OK
    code: int = 0
    error_message: str = ""
    consumed_credit: int = 0
    notified: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_OK
