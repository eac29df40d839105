"""Shared test helpers for the Nolej bridge: fake API, seeded rows, webhook bodies."""

from tests.fixtures.nolej.fake_api import (
    API_URL,
    FILES_URL,
    PUBLIC_URL,
    FakeNolej,
    h5p_response,
    make_corrupt_h5p,
    make_h5p,
    package_url,
)
from tests.fixtures.nolej.records import (
    NOW,
    USER_ID,
    activity,
    current_status,
    seed_document,
    stage_webhook,
)

__all__ = [
    "API_URL",
    "FILES_URL",
    "NOW",
    "PUBLIC_URL",
    "USER_ID",
    "FakeNolej",
    "activity",
    "current_status",
    "h5p_response",
    "make_corrupt_h5p",
    "make_h5p",
    "package_url",
    "seed_document",
    "stage_webhook",
]
