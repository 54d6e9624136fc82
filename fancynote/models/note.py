"""Note model."""

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, Column, Index
from sqlmodel import Field, Relationship, SQLModel

from fancynote.utils.datetime import utc_now

if TYPE_CHECKING:
    from fancynote.models.user import User

# Title every note carries until the pipeline generates a real one
DEFAULT_NOTE_TITLE = "New Note"


class Note(SQLModel, table=True):  # type: ignore
    """User note with attachments and AI-generated metadata."""

    __tablename__ = "notes"  # type: ignore

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)

    # Content
    title: str = Field(default=DEFAULT_NOTE_TITLE)
    text: str = Field(default="")
    excerpt: str = Field(default="")
    transcripts: str = Field(default="")

    # Attachment records: {path, name, size, type, includeInContext, createdAt}
    files: list[dict[str, Any]] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    images: list[dict[str, Any]] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    voice: list[dict[str, Any]] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )

    # Processing state
    processing_status: str = Field(
        default="idle", index=True
    )  # processing, completed, error, idle
    processing_error: str | None = Field(default=None)
    processed_at: datetime | None = Field(default=None)

    # Timestamps
    created_at: datetime = Field(default_factory=utc_now, index=True)
    updated_at: datetime = Field(default_factory=utc_now)

    # Relationships
    user: "User" = Relationship(back_populates="notes")

    __table_args__ = (
        Index("ix_notes_user_status", "user_id", "processing_status"),
        Index("ix_notes_user_created", "user_id", "created_at"),
    )
