"""Pydantic schemas for request/response validation."""

from fancynote.schemas.auth import TokenData
from fancynote.schemas.note import (
    Attachment,
    AttachmentDelete,
    NoteListResponse,
    NoteResponse,
    NoteSavedResponse,
    ProcessNoteAccepted,
    ProcessNoteRequest,
    ProcessType,
    ScrapingErrorItem,
)
from fancynote.schemas.notification import (
    NotificationListResponse,
    NotificationResponse,
)
from fancynote.schemas.settings import (
    AiSettings,
    AiSettingsResponse,
    AiSettingsUpdate,
    parse_ai_settings,
)

__all__ = [
    "TokenData",
    "Attachment",
    "AttachmentDelete",
    "NoteListResponse",
    "NoteResponse",
    "NoteSavedResponse",
    "ProcessNoteAccepted",
    "ProcessNoteRequest",
    "ProcessType",
    "ScrapingErrorItem",
    "NotificationListResponse",
    "NotificationResponse",
    "AiSettings",
    "AiSettingsResponse",
    "AiSettingsUpdate",
    "parse_ai_settings",
]
