"""Notification inbox routes.

- GET    /v1/notifications?since=&until=   unread entries, newest first
- DELETE /v1/notifications/{document_id}   dismiss the entries of a document
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Path, Query
from pydantic import BaseModel

from nolej.api.deps import CurrentUser, Services

router = APIRouter(prefix="/v1", tags=["Notifications"])


class NotificationResponse(BaseModel):
    document_id: str
    action: str
    status: str
    code: int
    error_message: str
    consumed_credit: int
    tstamp: int
    title: str
    body: str


class NotificationListResponse(BaseModel):
    """Inbox of the current user.

    count is the number of documents with unread entries since the lower
    bound, whatever the upper bound of the listed window.
    """

    items: list[NotificationResponse]
    count: int
    latest_tstamp: int | None


class DismissResponse(BaseModel):
    document_id: str
    dismissed: int


@router.get("/notifications", response_model=NotificationListResponse)
def list_notifications(
    services: Services,
    user_id: CurrentUser,
    since: Annotated[int, Query(ge=0)] = 0,
    until: Annotated[int | None, Query(ge=0)] = None,
) -> NotificationListResponse:
    entries = services.inbox.entries(user_id, since, until)
    items = [
        NotificationResponse(
            document_id=entry.record.document_id,
            action=entry.record.action,
            status=entry.record.status,
            code=entry.record.code,
            error_message=entry.record.error_message,
            consumed_credit=entry.record.consumed_credit,
            tstamp=entry.record.tstamp,
            title=entry.notification.title,
            body=entry.notification.body,
        )
        for entry in entries
    ]
    return NotificationListResponse(
        items=items,
        count=services.inbox.count_new(user_id, since),
        latest_tstamp=services.inbox.latest_timestamp(user_id),
    )


@router.delete("/notifications/{document_id}", response_model=DismissResponse)
def dismiss_notifications(
    document_id: Annotated[str, Path(min_length=1, max_length=50)],
    services: Services,
    user_id: CurrentUser,
) -> DismissResponse:
    return DismissResponse(
        document_id=document_id,
        dismissed=services.inbox.dismiss(document_id, user_id),
    )
