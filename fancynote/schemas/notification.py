"""Notification schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class NotificationResponse(BaseModel):
    """Schema for notification response."""

    id: int
    type: str
    content: dict[str, Any]
    read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    """Schema for notification list."""

    notifications: list[NotificationResponse]
    unread: int
