"""Note schemas."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ProcessType(str, Enum):
    """How the enrichment pipeline treats the note body."""

    FULL = "full"
    NO_AI_CONTENT_STRUCTURING = "no_ai_content_structuring"


class Attachment(BaseModel):
    """Attachment record as stored in a note's files/images/voice lists."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    path: str
    name: str
    size: int = 0
    type: str | None = None
    include_in_context: bool | None = Field(default=None, alias="includeInContext")
    created_at: str | None = Field(default=None, alias="createdAt")
    original_url: str | None = Field(default=None, alias="originalUrl")

    def to_record(self) -> dict[str, Any]:
        """Serialize for a JSON column, camelCase keys, unset fields dropped."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ProcessNoteRequest(BaseModel):
    """Body of the process-async trigger."""

    model_config = ConfigDict(populate_by_name=True)

    note_id: int | None = Field(default=None, alias="noteId")
    process_type: ProcessType = Field(default=ProcessType.FULL, alias="processType")


class ProcessNoteAccepted(BaseModel):
    """Immediate acknowledgment returned by the trigger."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = "Note processing started"
    note_id: int = Field(alias="noteId")


class ScrapingErrorItem(BaseModel):
    """A web URL that could not be turned into an attachment."""

    url: str
    error: str


class NoteSavedResponse(BaseModel):
    """Response for note create/update requests."""

    model_config = ConfigDict(populate_by_name=True)

    message: str
    note_id: int = Field(alias="noteId")
    scraping_errors: list[ScrapingErrorItem] = Field(
        default_factory=list, alias="scrapingErrors"
    )


class AttachmentDelete(BaseModel):
    """Identifies one attachment of a note."""

    path: str


class NoteBatchDelete(BaseModel):
    """Notes to delete in one request."""

    model_config = ConfigDict(populate_by_name=True)

    note_ids: list[int] = Field(default_factory=list, alias="noteIds")


class NoteBatchDeleted(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    deleted_note_ids: list[int] = Field(default_factory=list, alias="deletedNoteIds")
    storage_errors: list[str] = Field(default_factory=list, alias="storageErrors")


class NoteResponse(BaseModel):
    """Schema for note response."""

    id: int
    title: str
    text: str
    excerpt: str
    transcripts: str
    files: list[dict[str, Any]]
    images: list[dict[str, Any]]
    voice: list[dict[str, Any]]
    processing_status: str
    processing_error: str | None
    processed_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class NoteListResponse(BaseModel):
    """Schema for paginated note list."""

    notes: list[NoteResponse]
    total: int


class AttachmentAdded(BaseModel):
    """Response after attaching one file to an existing note."""

    message: str = "Attachment added successfully"
    attachment: dict[str, Any]
    note: NoteResponse
