"""Webhook payload parsing.

Nolej posts a JSON object:
    {"action": str, "documentID": str, "status": "ok"|"ko", "code": int,
     "error_message": str, "consumedCredit": int|null}

Only "action" is required for every delivery. The stage actions
(transcription, analysis, activities) need all other fields with exact
types; a missing or null consumedCredit counts as 0.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Final

from nolej.models.activity import STATUS_OK, normalize_outcome

ACTION_TRANSCRIPTION: Final[str] = "transcription"
ACTION_ANALYSIS: Final[str] = "analysis"
ACTION_ACTIVITIES: Final[str] = "activities"
ACTION_WORK_IN_PROGRESS: Final[str] = "work in progress"

STAGE_ACTIONS: Final[frozenset[str]] = frozenset(
    {ACTION_TRANSCRIPTION, ACTION_ANALYSIS, ACTION_ACTIVITIES}
)


class WebhookValidationError(Exception):
    """Raised when a webhook body is malformed."""


@dataclass(frozen=True)
class WebhookPayload:
    """Validated stage webhook.

    Attributes:
        action: Stage that completed.
        document_id: Document the stage belongs to.
        status: Normalized outcome, "ok" or "ko".
        code: Remote error code.
        error_message: Remote error message.
        consumed_credit: Credits consumed so far.
    """

    action: str
    document_id: str
    status: str
    code: int
    error_message: str
    consumed_credit: int

    @property
    def succeeded(self) -> bool:
        return self.status == STATUS_OK


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def parse_action(data: Any) -> str:
    """Extract the action of a delivery.

    Raises:
        WebhookValidationError: If the body is not an object with a string action.
    """
    if not isinstance(data, dict):
        raise WebhookValidationError("Body must be a JSON object")
    action = data.get("action")
    if not isinstance(action, str):
        raise WebhookValidationError("action must be a string")
    return action


def parse_stage_payload(data: dict[str, Any]) -> WebhookPayload:
    """Validate the fields of a stage webhook.

    Args:
        data: Decoded body whose action is a stage action.

    Returns:
        Validated payload.

    Raises:
        WebhookValidationError: If a field is missing or has the wrong type.
    """
    action = parse_action(data)
    if action not in STAGE_ACTIONS:
        raise WebhookValidationError(f"{action!r} is not a stage action")

    consumed_credit = data.get("consumedCredit")
    if consumed_credit is None:
        consumed_credit = 0

    for field in ("documentID", "status", "error_message"):
        if not isinstance(data.get(field), str):
            raise WebhookValidationError(f"{field} must be a string")
    if not _is_int(data.get("code")):
        raise WebhookValidationError("code must be an integer")
    if not _is_int(consumed_credit):
        raise WebhookValidationError("consumedCredit must be an integer")
    if not data["documentID"]:
        raise WebhookValidationError("documentID must not be empty")

    return WebhookPayload(
        action=action,
        document_id=data["documentID"],
        status=normalize_outcome(data["status"]),
        code=data["code"],
        error_message=data["error_message"],
        consumed_credit=consumed_credit,
    )
