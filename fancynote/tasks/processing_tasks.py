"""Background enrichment of notes: transcription, AI structuring and metadata."""

import logging
import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import cast

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from fancynote.config import PipelineConfig
from fancynote.database import new_session
from fancynote.models.note import DEFAULT_NOTE_TITLE, Note
from fancynote.models.notification import NOTE_PROCESSED, NOTE_PROCESSING_ERROR
from fancynote.schemas.note import ProcessType
from fancynote.schemas.settings import AiSettings, parse_ai_settings
from fancynote.services.auth_service import create_attachment_token
from fancynote.services.content_service import SourceCollector
from fancynote.services.llm_service import ChatService, candidate_models
from fancynote.services.metadata_service import MetadataService
from fancynote.services.note_service import NoteService
from fancynote.services.notification_service import NotificationService
from fancynote.services.profile_service import ProfileService
from fancynote.services.prompts import (
    attachment_url,
    build_messages,
    build_system_prompt,
    format_user_content,
)
from fancynote.services.storage_service import AttachmentStore, get_attachment_store
from fancynote.services.transcription_service import TranscriptionService
from fancynote.utils.events import EventManager, event_manager
from fancynote.utils.exceptions import FancyNoteException, LLMError

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Your note has been processed successfully!"


class EnrichmentPipeline:
    """
    Turns a saved note into a processed one.

    Steps run strictly in order: stage attachments, transcribe recordings,
    extract file text, structure the content with the chat model, persist
    the content, generate title and excerpt, persist them, deduct a credit,
    notify the user. The staging directory and the storage connection are
    released whatever happens.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = new_session,
        config: PipelineConfig | None = None,
        store_factory: Callable[[], AttachmentStore] = get_attachment_store,
        transcriber: TranscriptionService | None = None,
        chat: ChatService | None = None,
        metadata: MetadataService | None = None,
        events: EventManager = event_manager,
        token_factory: Callable[[int], str] = create_attachment_token,
    ):
        self.session_factory = session_factory
        self.config = config or PipelineConfig.from_settings()
        self.store_factory = store_factory
        self.transcriber = transcriber or TranscriptionService()
        self.chat = chat or ChatService()
        self.metadata = metadata or MetadataService()
        self.events = events
        self.token_factory = token_factory

    async def _stage(self, user_id: int, note_id: int, stage: str) -> None:
        logger.info(f"Note {note_id}: {stage}")
        await self.events.publish_status(user_id, note_id, stage)

    def _notify(
        self,
        session: Session,
        user_id: int,
        type: str,
        note_id: int,
        title: str,
        message: str,
    ) -> None:
        try:
            NotificationService(session).create(user_id, type, note_id, title, message)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to create notification for note {note_id}: {e}")

    async def run(
        self,
        note_id: int,
        user_id: int,
        ai_settings_raw: str | None,
        process_type: ProcessType = ProcessType.FULL,
    ) -> None:
        """
        Process one note.

        Args:
            note_id: Note to process; must belong to ``user_id``
            user_id: Owner of the note
            ai_settings_raw: The owner's stored AI settings (JSON string)
            process_type: ``full``, or ``no_ai_content_structuring`` to keep the text
        """
        staging_dir = Path(tempfile.mkdtemp(prefix="fancynote-"))
        store: AttachmentStore | None = None
        logger.info(f"Starting background processing for note {note_id}")

        with self.session_factory() as session:
            note: Note | None = None
            original_title = DEFAULT_NOTE_TITLE
            try:
                self.config.validate()
                ai_settings = parse_ai_settings(ai_settings_raw)
                note = NoteService(session).get_note(note_id, user_id)
                original_title = note.title

                store = self.store_factory()
                await store.connect()
                await self._enrich(session, note, ai_settings, process_type, store, staging_dir)
            except Exception as e:
                logger.exception(f"Failed to process note {note_id}: {e}")
                await self._fail(session, note_id, user_id, original_title, str(e))
            finally:
                if store is not None:
                    await store.close()
                shutil.rmtree(staging_dir, ignore_errors=True)
                logger.info(f"Cleaned up staging directory for note {note_id}")

    async def _enrich(
        self,
        session: Session,
        note: Note,
        ai_settings: AiSettings,
        process_type: ProcessType,
        store: AttachmentStore,
        staging_dir: Path,
    ) -> None:
        note_id, user_id = cast(int, note.id), note.user_id
        notes = NoteService(session)

        collector = SourceCollector(
            store,
            self.transcriber,
            staging_dir,
            user_id,
            ai_settings.language or self.config.transcription_language,
        )

        await self._stage(user_id, note_id, "transcribing")
        for record in note.voice:
            if record.get("includeInContext") is not False:
                await collector.add_recording(record)

        await self._stage(user_id, note_id, "extracting")
        for record in note.files:
            if record.get("includeInContext") is True:
                await collector.add_file(record)

        await self._stage(user_id, note_id, "synthesizing")
        text, error = await self._synthesize(note, ai_settings, process_type, collector)

        # Must succeed before any metadata work; failures here are fatal
        note = notes.save_content(
            note,
            text=text,
            transcripts=collector.transcripts_text,
            files=[*note.files, *collector.artifacts],
            error=error,
        )
        await self._stage(user_id, note_id, "persisted")

        await self._generate_metadata(session, note, ai_settings.language or "en")
        await self._stage(user_id, note_id, "titled")

        try:
            ProfileService(session).deduct_credit(user_id)
        except (SQLAlchemyError, FancyNoteException) as e:
            session.rollback()
            logger.error(f"Failed to update user credits for user {user_id}: {e}")
        await self._stage(user_id, note_id, "credited")

        self._notify(session, user_id, NOTE_PROCESSED, note_id, note.title, SUCCESS_MESSAGE)
        await self._stage(user_id, note_id, "notified")
        logger.info(f"Successfully processed note {note_id}")

    async def _synthesize(
        self,
        note: Note,
        ai_settings: AiSettings,
        process_type: ProcessType,
        collector: SourceCollector,
    ) -> tuple[str, str | None]:
        """
        Structure the collected content with the chat model.

        Returns:
            Tuple of (text to persist, processing error or None)
        """
        if process_type == ProcessType.NO_AI_CONTENT_STRUCTURING:
            logger.info(f"Skipping AI content structuring for note {note.id}")
            return note.text, None

        images = [record for record in note.images if record.get("includeInContext")]
        user_content = format_user_content(collector.transcriptions, note.text, collector.files)
        if not user_content and not images:
            logger.info(f"No content to process with LLM for note {note.id}")
            return note.text, None

        image_urls = []
        if images:
            token = self.token_factory(note.user_id)
            image_urls = [
                attachment_url(self.config.public_base_url, record["path"], token)
                for record in images
            ]

        messages = build_messages(
            build_system_prompt(ai_settings.system_prompt, ai_settings.language),
            user_content,
            image_urls,
        )
        models = candidate_models(
            ai_settings.model, self.config.default_llm_model, self.config.fallback_llm_models
        )
        try:
            answer = await self.chat.complete_with_fallback(models, messages, ai_settings.api_key)
        except LLMError as e:
            logger.warning(f"AI processing failed for note {note.id}, keeping original text: {e}")
            return note.text, f"AI processing failed: {e}"
        return answer, None

    async def _generate_metadata(self, session: Session, note: Note, language: str) -> None:
        """Title and excerpt for notes still carrying the default title."""
        if note.title != DEFAULT_NOTE_TITLE:
            return
        source = note.text if note.text.strip() else note.transcripts
        if not source.strip():
            logger.info(f"No content for title/excerpt generation of note {note.id}")
            return

        title = excerpt = None
        try:
            title = await self.metadata.generate_title(source, language)
        except Exception as e:
            logger.error(f"Error generating title for note {note.id}: {e}")
        try:
            excerpt = await self.metadata.generate_excerpt(source, language)
        except Exception as e:
            logger.error(f"Error generating excerpt for note {note.id}: {e}")

        if title is None and excerpt is None:
            return
        try:
            NoteService(session).save_metadata(note, title=title, excerpt=excerpt)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to save title/excerpt for note {note.id}: {e}")

    async def _fail(
        self, session: Session, note_id: int, user_id: int, title: str, message: str
    ) -> None:
        session.rollback()
        note = session.get(Note, note_id)
        if note is not None and note.user_id == user_id:
            try:
                NoteService(session).set_status(note, "error", message)
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Failed to record processing error for note {note_id}: {e}")
        await self._stage(user_id, note_id, "error")
        self._notify(
            session,
            user_id,
            NOTE_PROCESSING_ERROR,
            note_id,
            title,
            f"Note processing failed: {message}",
        )


async def run_enrichment(
    pipeline: EnrichmentPipeline,
    note_id: int,
    user_id: int,
    ai_settings_raw: str | None,
    process_type: ProcessType = ProcessType.FULL,
) -> None:
    """Background task entry point; nothing escapes into the server."""
    try:
        await pipeline.run(note_id, user_id, ai_settings_raw, process_type)
    except Exception:
        logger.exception(f"Unhandled error in background processing for note {note_id}")
