"""Database models."""

from fancynote.models.note import DEFAULT_NOTE_TITLE, Note
from fancynote.models.notification import Notification
from fancynote.models.user import User, UserSettings

__all__ = ["User", "UserSettings", "Note", "Notification", "DEFAULT_NOTE_TITLE"]
