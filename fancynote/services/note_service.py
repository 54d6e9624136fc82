"""Note service for CRUD operations and pipeline persistence passes."""

import logging
from typing import Any, cast

from sqlmodel import Session, func, select

from fancynote.models.note import Note
from fancynote.utils.datetime import utc_now
from fancynote.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)

ATTACHMENT_LISTS = ("files", "images", "voice")


class NoteService:
    """Service for note CRUD operations."""

    def __init__(self, session: Session):
        """
        Initialize the note service.

        Args:
            session: Database session
        """
        self.session = session

    def _save(self, note: Note) -> Note:
        note.updated_at = utc_now()
        self.session.add(note)
        self.session.commit()
        self.session.refresh(note)
        return note

    def create_note(
        self,
        user_id: int,
        title: str,
        text: str = "",
        files: list[dict[str, Any]] | None = None,
        images: list[dict[str, Any]] | None = None,
        voice: list[dict[str, Any]] | None = None,
        processing_status: str = "idle",
    ) -> Note:
        """
        Create a new note.

        Args:
            user_id: Owner user ID
            title: Note title (the "New Note" sentinel requests a generated one)
            text: Free text
            files: File attachment records
            images: Image attachment records
            voice: Voice recording records
            processing_status: Initial status

        Returns:
            Created Note instance
        """
        note = Note(
            user_id=user_id,
            title=title,
            text=text,
            files=files or [],
            images=images or [],
            voice=voice or [],
            processing_status=processing_status,
        )
        self.session.add(note)
        self.session.commit()
        self.session.refresh(note)
        return note

    def get_note(self, note_id: int, user_id: int) -> Note:
        """
        Get a single note by ID, ensuring user ownership.

        Raises:
            NotFoundError: If note not found or doesn't belong to user
        """
        note = self.session.get(Note, note_id)
        if not note or note.user_id != user_id:
            raise NotFoundError("Note")
        return note

    def list_notes(
        self, user_id: int, skip: int = 0, limit: int = 50
    ) -> tuple[list[Note], int]:
        """
        List notes for a user with pagination, newest first.

        Returns:
            Tuple of (notes list, total count)
        """
        count_statement = select(func.count()).where(Note.user_id == user_id)
        total = self.session.exec(count_statement).one()

        statement = (
            select(Note)
            .where(Note.user_id == user_id)
            .order_by(Note.created_at.desc())  # type: ignore
            .offset(skip)
            .limit(limit)
        )
        notes = list(self.session.exec(statement).all())
        return notes, total

    def delete_note(self, note_id: int, user_id: int) -> list[str]:
        """
        Delete a note row.

        Returns:
            Storage paths of every attachment the note referenced, for cleanup

        Raises:
            NotFoundError: If note not found or doesn't belong to user
        """
        note = self.get_note(note_id, user_id)
        paths = [
            record["path"]
            for name in ATTACHMENT_LISTS
            for record in getattr(note, name)
            if record.get("path")
        ]
        self.session.delete(note)
        self.session.commit()
        return paths

    def remove_attachment(self, note_id: int, user_id: int, path: str) -> dict[str, Any]:
        """
        Drop one attachment record, whichever list holds it.

        Returns:
            The removed record

        Raises:
            NotFoundError: If the note or the attachment is not found
        """
        note = self.get_note(note_id, user_id)
        for name in ATTACHMENT_LISTS:
            records = getattr(note, name)
            for record in records:
                if record.get("path") == path:
                    # Reassign so the JSON column is flagged as changed
                    setattr(note, name, [r for r in records if r is not record])
                    self._save(note)
                    return record
        raise NotFoundError("Attachment")

    def set_status(self, note: Note, status: str, error: str | None = None) -> Note:
        note.processing_status = status
        note.processing_error = error
        return self._save(note)

    def save_content(
        self,
        note: Note,
        text: str,
        transcripts: str,
        files: list[dict[str, Any]],
        error: str | None,
    ) -> Note:
        """
        Content persistence pass: synthesized text, raw transcripts and the
        files list, marking the note completed.
        """
        note.text = text
        note.transcripts = transcripts
        note.files = files
        note.processing_status = "completed"
        note.processing_error = error
        note.processed_at = utc_now()
        return self._save(note)

    def save_metadata(
        self, note: Note, title: str | None = None, excerpt: str | None = None
    ) -> Note:
        """Metadata persistence pass; only the produced fields are written."""
        if title is not None:
            note.title = title
        if excerpt is not None:
            note.excerpt = excerpt
        return self._save(note)

    def apply_update(
        self,
        note: Note,
        text: str,
        files: list[dict[str, Any]],
        images: list[dict[str, Any]],
        voice: list[dict[str, Any]],
        error: str | None = None,
    ) -> Note:
        """Store the result of a content update in one write."""
        note.text = text
        note.files = files
        note.images = images
        note.voice = voice
        note.processing_status = "idle"
        note.processing_error = error
        return self._save(note)

    def edit_note(
        self,
        note: Note,
        text: str | None = None,
        added: dict[str, list[dict[str, Any]]] | None = None,
    ) -> bool:
        """
        Manual edit: replace the text and append attachment records.

        Nothing is written when the text is unchanged and no records are added.

        Returns:
            Whether the note was changed
        """
        changed = False
        if text is not None and text != note.text:
            note.text = text
            changed = True
        for name, records in (added or {}).items():
            if name not in ATTACHMENT_LISTS:
                raise ValueError(f"Unknown attachment list: {name}")
            if records:
                # Reassign so the JSON column is flagged as changed
                setattr(note, name, [*getattr(note, name), *records])
                changed = True
        if changed:
            self._save(note)
        return changed

    def find_notes(self, note_ids: list[int], user_id: int) -> tuple[list[Note], list[str]]:
        """
        Load the listed notes the user owns; other IDs are ignored.

        Returns:
            Tuple of (notes, unique attachment paths across them)
        """
        statement = select(Note).where(
            Note.user_id == user_id,
            Note.id.in_(note_ids),  # type: ignore
        )
        notes = list(self.session.exec(statement).all())
        paths: list[str] = []
        for note in notes:
            for name in ATTACHMENT_LISTS:
                for record in getattr(note, name):
                    path = record.get("path")
                    if path and path not in paths:
                        paths.append(path)
        return notes, paths

    def delete_notes(self, notes: list[Note]) -> list[int]:
        """Delete note rows in one commit, returning their IDs."""
        deleted = [cast(int, note.id) for note in notes]
        for note in notes:
            self.session.delete(note)
        self.session.commit()
        return deleted
