"""Inbound Nolej webhooks."""

from nolej.services.webhooks.ingestor import WebhookIngestor, WebhookOutcome
from nolej.services.webhooks.payload import (
    ACTION_ACTIVITIES,
    ACTION_ANALYSIS,
    ACTION_TRANSCRIPTION,
    ACTION_WORK_IN_PROGRESS,
    WebhookPayload,
    WebhookValidationError,
    parse_action,
    parse_stage_payload,
)

__all__ = [
    "ACTION_ACTIVITIES",
    "ACTION_ANALYSIS",
    "ACTION_TRANSCRIPTION",
    "ACTION_WORK_IN_PROGRESS",
    "WebhookIngestor",
    "WebhookOutcome",
    "WebhookPayload",
    "WebhookValidationError",
    "parse_action",
    "parse_stage_payload",
]
