"""Note creation and content updates from uploaded material."""

import logging
import shutil
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from fancynote.config import PipelineConfig
from fancynote.models.note import DEFAULT_NOTE_TITLE, Note
from fancynote.schemas.note import ScrapingErrorItem
from fancynote.schemas.settings import parse_ai_settings
from fancynote.services.attachment_service import store_backup, store_upload, store_web_content
from fancynote.services.auth_service import create_attachment_token
from fancynote.services.content_service import SourceCollector
from fancynote.services.llm_service import ChatService, candidate_models
from fancynote.services.note_service import NoteService
from fancynote.services.profile_service import ProfileService
from fancynote.services.prompts import (
    EMPTY_UPDATE_MESSAGE,
    attachment_url,
    build_messages,
    build_update_system_prompt,
    format_user_content,
)
from fancynote.services.scraping_service import ScrapingService
from fancynote.services.storage_service import AttachmentStore, get_attachment_store
from fancynote.services.transcription_service import TranscriptionService
from fancynote.utils.exceptions import FancyNoteException, LLMError

logger = logging.getLogger(__name__)


@dataclass
class NewUpload:
    """A file received with a create or update request."""

    filename: str
    data: bytes
    content_type: str | None = None
    include_in_context: bool = True
    is_recording: bool = False


@dataclass
class UpdateResult:
    note: Note
    scraping_errors: list[ScrapingErrorItem]


class NoteIntake:
    """Stores incoming uploads and web pages, for new notes and for updates."""

    def __init__(
        self,
        config: PipelineConfig | None = None,
        store_factory: Callable[[], AttachmentStore] = get_attachment_store,
        transcriber: TranscriptionService | None = None,
        chat: ChatService | None = None,
        scraper: ScrapingService | None = None,
        token_factory: Callable[[int], str] = create_attachment_token,
    ):
        self.config = config or PipelineConfig.from_settings()
        self.store_factory = store_factory
        self.transcriber = transcriber or TranscriptionService()
        self.chat = chat or ChatService()
        self.scraper = scraper or ScrapingService()
        self.token_factory = token_factory

    async def _store_uploads(
        self, store: AttachmentStore, user_id: int, uploads: list[NewUpload]
    ) -> dict[str, list[dict[str, Any]]]:
        stored: dict[str, list[dict[str, Any]]] = {"files": [], "images": [], "voice": []}
        for upload in uploads:
            category, record = await store_upload(
                store,
                user_id,
                upload.filename,
                upload.data,
                content_type=upload.content_type,
                include_in_context=upload.include_in_context,
                category="voice" if upload.is_recording else None,
            )
            stored[category].append(record)
        return stored

    async def _scrape_urls(
        self, store: AttachmentStore, user_id: int, urls: list[str]
    ) -> tuple[list[dict[str, Any]], list[ScrapingErrorItem]]:
        """Scrape each URL into a text attachment; failures are collected, not raised."""
        records: list[dict[str, Any]] = []
        errors: list[ScrapingErrorItem] = []
        for url in urls:
            result = await self.scraper.scrape(url)
            if not result.success:
                logger.warning(f"Scraping failed for URL: {url}, Error: {result.error}")
                errors.append(ScrapingErrorItem(url=url, error=result.error or "Unknown scraping error"))
                continue
            try:
                records.append(await store_web_content(store, user_id, url, result))
            except FancyNoteException as e:
                logger.error(f"Error uploading scraped content for {url}: {e}")
                errors.append(
                    ScrapingErrorItem(url=url, error=f"Failed to save scraped content: {e}")
                )
        return records, errors

    async def create(
        self,
        session: Session,
        user_id: int,
        title: str | None,
        text: str,
        uploads: list[NewUpload],
        web_urls: list[str],
    ) -> UpdateResult:
        """
        Upload everything and create the note in ``processing`` state,
        ready for the enrichment pipeline.
        """
        async with self.store_factory() as store:
            stored = await self._store_uploads(store, user_id, uploads)
            web_files, scraping_errors = await self._scrape_urls(store, user_id, web_urls)

        note = NoteService(session).create_note(
            user_id,
            title=(title or "").strip() or DEFAULT_NOTE_TITLE,
            text=text,
            files=[*stored["files"], *web_files],
            images=stored["images"],
            voice=stored["voice"],
            processing_status="processing",
        )
        logger.info(f"Created note {note.id} with {len(uploads)} uploads for user {user_id}")
        return UpdateResult(note=note, scraping_errors=scraping_errors)

    async def update(
        self,
        session: Session,
        note_id: int,
        user_id: int,
        ai_settings_raw: str | None,
        text: str,
        uploads: list[NewUpload],
        web_urls: list[str],
    ) -> UpdateResult:
        """
        Merge new material into an existing note through the chat model.

        The current text is backed up first. New recordings and included
        files are turned into ``new_``-tagged content; scraped pages become
        attachments only. If the chat model fails the current text is kept
        and the failure is recorded on the note.

        Raises:
            NotFoundError: If the note is not the user's
        """
        notes = NoteService(session)
        note = notes.get_note(note_id, user_id)

        staging_dir = Path(tempfile.mkdtemp(prefix="fancynote-update-"))
        try:
            ai_settings = parse_ai_settings(ai_settings_raw)
            current_text = note.text or ""

            async with self.store_factory() as store:
                backup = await store_backup(store, user_id, note_id, current_text)
                stored = await self._store_uploads(store, user_id, uploads)

                collector = SourceCollector(
                    store,
                    self.transcriber,
                    staging_dir,
                    user_id,
                    ai_settings.language or self.config.transcription_language,
                    save_transcriptions=False,
                )
                for record in stored["voice"]:
                    if record.get("includeInContext") is not False:
                        await collector.add_recording(record)
                for record in stored["files"]:
                    if record.get("includeInContext"):
                        await collector.add_file(record)
                web_files, scraping_errors = await self._scrape_urls(store, user_id, web_urls)

            images = [record for record in stored["images"] if record.get("includeInContext")]
            user_content = format_user_content(
                collector.transcriptions, text, collector.files, prefix="new_"
            )

            new_text, error = current_text, None
            if user_content or images:
                image_urls = []
                if images:
                    token = self.token_factory(user_id)
                    image_urls = [
                        attachment_url(self.config.public_base_url, record["path"], token)
                        for record in images
                    ]
                messages = build_messages(
                    build_update_system_prompt(
                        ai_settings.system_prompt, ai_settings.language, current_text
                    ),
                    user_content,
                    image_urls,
                    empty_message=EMPTY_UPDATE_MESSAGE,
                )
                models = candidate_models(
                    ai_settings.model,
                    self.config.default_llm_model,
                    self.config.fallback_llm_models,
                )
                try:
                    new_text = await self.chat.complete_with_fallback(
                        models, messages, ai_settings.api_key
                    )
                except LLMError as e:
                    logger.warning(f"AI update failed for note {note_id}, keeping current text: {e}")
                    error = f"AI processing failed: {e}"
            else:
                logger.info(f"No new content to merge into note {note_id}")

            note = notes.apply_update(
                note,
                text=new_text,
                files=[*note.files, *stored["files"], *web_files, backup],
                images=[*note.images, *stored["images"]],
                voice=[*note.voice, *stored["voice"]],
                error=error,
            )
        except Exception as e:
            logger.exception(f"Error updating note {note_id}: {e}")
            session.rollback()
            failed = session.get(Note, note_id)
            if failed is not None:
                notes.set_status(failed, "error", str(e))
            raise
        finally:
            shutil.rmtree(staging_dir, ignore_errors=True)

        try:
            ProfileService(session).deduct_credit(user_id)
        except (SQLAlchemyError, FancyNoteException) as e:
            session.rollback()
            logger.error(f"Failed to update user credits for user {user_id}: {e}")

        return UpdateResult(note=note, scraping_errors=scraping_errors)
