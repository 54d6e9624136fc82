"""Notification model."""

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, Column
from sqlmodel import Field, Relationship, SQLModel

from fancynote.utils.datetime import utc_now

if TYPE_CHECKING:
    from fancynote.models.user import User

NOTE_PROCESSED = "note_processed"
NOTE_PROCESSING_ERROR = "note_processing_error"


class Notification(SQLModel, table=True):  # type: ignore
    """User-visible notification about a background job outcome."""

    __tablename__ = "notifications"  # type: ignore

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)

    type: str = Field(index=True)  # note_processed, note_processing_error
    # {noteId, title, message}
    content: dict[str, Any] = Field(
        default_factory=dict, sa_column=Column(JSON, nullable=False)
    )
    read: bool = Field(default=False, index=True)

    created_at: datetime = Field(default_factory=utc_now, index=True)

    user: "User" = Relationship(back_populates="notifications")
