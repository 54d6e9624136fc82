"""Collects transcriptions and file text from note attachments."""

import logging
from pathlib import Path, PurePosixPath
from typing import Any

from fancynote.schemas.note import Attachment
from fancynote.services.attachment_service import is_audio
from fancynote.services.prompts import IndexedContent
from fancynote.services.storage_service import AttachmentStore, build_storage_path
from fancynote.services.transcription_service import TranscriptionService
from fancynote.utils.datetime import utc_iso
from fancynote.utils.exceptions import FancyNoteException

logger = logging.getLogger(__name__)


def transcription_placeholder(message: str) -> str:
    return f"[Transcription Error: {message}]"


def unreadable_placeholder(name: str) -> str:
    return f"[Could not read content of file: {name}]"


class SourceCollector:
    """
    Downloads attachments into a staging directory and turns them into
    numbered content for the chat prompt.

    Recordings (voice notes and audio files) share one counter; text files
    have their own. Both start at 1. Per-item failures become inline
    placeholders and never abort collection.
    """

    def __init__(
        self,
        store: AttachmentStore,
        transcriber: TranscriptionService,
        staging_dir: Path,
        user_id: int,
        language: str,
        save_transcriptions: bool = True,
    ):
        self.store = store
        self.transcriber = transcriber
        self.staging_dir = staging_dir
        self.user_id = user_id
        self.language = language
        self.save_transcriptions = save_transcriptions

        self.transcriptions: list[IndexedContent] = []
        self.files: list[IndexedContent] = []
        self.artifacts: list[dict[str, Any]] = []

    @property
    def transcripts_text(self) -> str:
        """All transcriptions joined by a blank line."""
        return "\n\n".join(item.content for item in self.transcriptions)

    def _local_path(self, path: str) -> Path:
        return self.staging_dir / PurePosixPath(path).name

    async def _transcribe(self, local_path: Path) -> str:
        try:
            return await self.transcriber.transcribe(local_path, self.language)
        except FancyNoteException as e:
            logger.warning(f"Transcription failed for {local_path.name}: {e}")
            return transcription_placeholder(str(e))

    async def _save_artifact(self, source_path: str, text: str) -> None:
        name = f"{PurePosixPath(source_path).stem}.txt"
        path = build_storage_path(self.user_id, "transcriptions", name)
        data = text.encode("utf-8")
        try:
            await self.store.upload(data, path)
        except FancyNoteException as e:
            logger.error(f"Failed to save transcription {path}: {e}")
            return
        self.artifacts.append(
            Attachment(
                path=path,
                name=name,
                size=len(data),
                type="text/plain",
                include_in_context=True,
                created_at=utc_iso(),
            ).to_record()
        )

    async def add_recording(self, record: dict[str, Any]) -> None:
        """
        Download and transcribe one recording, numbering it in order.

        A transcript file is saved for every recording, placeholders included.
        """
        path = record["path"]
        local_path = self._local_path(path)
        try:
            await self.store.download(path, local_path)
        except FancyNoteException as e:
            logger.warning(f"Could not download recording {path}: {e}")
            text = transcription_placeholder(str(e))
        else:
            text = await self._transcribe(local_path)

        self.transcriptions.append(IndexedContent(len(self.transcriptions) + 1, text))
        if self.save_transcriptions:
            await self._save_artifact(path, text)

    async def add_file(self, record: dict[str, Any]) -> None:
        """Audio files go to the recordings, anything else is read as UTF-8 text."""
        path = record["path"]
        name = record.get("name") or PurePosixPath(path).name
        if is_audio(name) or is_audio(path):
            await self.add_recording(record)
            return

        local_path = self._local_path(path)
        try:
            await self.store.download(path, local_path)
            content = local_path.read_text(encoding="utf-8")
        except (FancyNoteException, UnicodeDecodeError, OSError) as e:
            logger.warning(f"Could not read file {name} as UTF-8 text: {e}")
            content = unreadable_placeholder(name)
        self.files.append(IndexedContent(len(self.files) + 1, content, name))

