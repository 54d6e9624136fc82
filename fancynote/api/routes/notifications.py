"""Notification endpoints."""

from typing import Annotated, cast

from fastapi import APIRouter, Query

from fancynote.api.deps import CurrentUserDep, SessionDep
from fancynote.schemas.notification import NotificationListResponse, NotificationResponse
from fancynote.services.notification_service import NotificationService
from fancynote.utils.exceptions import NotFoundError

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
def list_notifications(
    session: SessionDep,
    current_user: CurrentUserDep,
    unread_only: Annotated[bool, Query()] = False,
) -> NotificationListResponse:
    """
    List the current user's notifications, newest first.
    """
    user_id = cast(int, current_user.id)
    notifications, unread = NotificationService(session).list_notifications(
        user_id, unread_only=unread_only
    )
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        unread=unread,
    )


@router.post("/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_read(
    notification_id: int, session: SessionDep, current_user: CurrentUserDep
) -> NotificationResponse:
    user_id = cast(int, current_user.id)
    try:
        notification = NotificationService(session).mark_read(notification_id, user_id)
    except NotFoundError as e:
        raise e.to_http_exception()
    return NotificationResponse.model_validate(notification)
