"""User and UserSettings models."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlmodel import Field, Relationship, SQLModel

from fancynote.utils.datetime import utc_now

if TYPE_CHECKING:
    from fancynote.models.note import Note
    from fancynote.models.notification import Notification


class User(SQLModel, table=True):
    """User profile mirrored from the managed auth provider."""

    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    username: str = Field(unique=True, index=True)
    created_at: datetime = Field(default_factory=utc_now)

    # Long-lived API token for scripts and integrations
    api_token: str | None = Field(default=None, unique=True, index=True)

    # Credit ledger, one credit per processed note
    project_credits: int = Field(default=0)

    # Relationships
    settings: "UserSettings" = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"uselist": False, "lazy": "joined"},
    )
    notes: list["Note"] = Relationship(back_populates="user")
    notifications: list["Notification"] = Relationship(back_populates="user")


class UserSettings(SQLModel, table=True):
    """Per-user settings for AI configuration."""

    __tablename__ = "user_settings"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", unique=True, index=True)

    # AI configuration as a JSON object: {apiKey, model, systemPrompt, language}
    ai_settings: str = Field(default="{}")

    # Relationships
    user: User = Relationship(back_populates="settings")
