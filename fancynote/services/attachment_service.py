"""Upload classification and storage of note attachments."""

import logging
import re
from pathlib import PurePosixPath
from typing import Any
from uuid import uuid4

from fancynote.schemas.note import Attachment
from fancynote.services.scraping_service import (
    ScrapeResult,
    extract_domain,
    sanitize_filename,
    web_content_document,
)
from fancynote.services.storage_service import AttachmentStore, build_storage_path
from fancynote.utils.datetime import backup_stamp, utc_iso

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = {".mp3", ".wav", ".m4a", ".ogg", ".aac", ".opus", ".flac", ".webm"}
BACKUP_TYPE = "backup/text"


def is_audio(name: str) -> bool:
    return PurePosixPath(name).suffix.lower() in AUDIO_EXTENSIONS


def unique_name(filename: str) -> str:
    """Stored file name: a fresh uuid4 followed by the sanitized original name."""
    safe = re.sub(r"[/\\]", "_", filename or "upload")
    return f"{uuid4()}_{safe}"


def upload_category(filename: str, content_type: str | None) -> str:
    """Note list an uploaded file belongs to: images, voice or files."""
    if content_type and content_type.startswith("image/"):
        return "images"
    if is_audio(filename):
        return "voice"
    return "files"


async def store_upload(
    store: AttachmentStore,
    user_id: int,
    filename: str,
    data: bytes,
    content_type: str | None = None,
    include_in_context: bool = True,
    category: str | None = None,
) -> tuple[str, dict[str, Any]]:
    """
    Upload one file and build its attachment record.

    Args:
        store: Connected attachment store
        user_id: Owner user ID
        filename: Original file name
        data: File contents
        content_type: MIME type reported by the client
        include_in_context: Whether the pipeline should read this attachment
        category: Force a list (e.g. "voice" for recordings) instead of classifying

    Returns:
        Tuple of (category, attachment record)
    """
    category = category or upload_category(filename, content_type)
    path = build_storage_path(user_id, category, unique_name(filename))
    await store.upload(data, path)
    record = Attachment(
        path=path,
        name=filename,
        size=len(data),
        type=content_type,
        include_in_context=include_in_context,
        created_at=utc_iso(),
    ).to_record()
    return category, record


async def store_web_content(
    store: AttachmentStore, user_id: int, url: str, result: ScrapeResult
) -> dict[str, Any]:
    """Save a scraped page as a text file attachment."""
    base = sanitize_filename(result.title or extract_domain(url))
    data = web_content_document(url, result.content)
    path = build_storage_path(user_id, "files", f"{uuid4()}_{base}.txt")
    await store.upload(data, path)
    logger.info(f"Saved scraped content of {url} to {path}")
    return Attachment(
        path=path,
        name=f"{base}.txt",
        size=len(data),
        type="text/plain",
        include_in_context=True,
        created_at=utc_iso(),
        original_url=url,
    ).to_record()


async def store_backup(
    store: AttachmentStore, user_id: int, note_id: int, text: str
) -> dict[str, Any]:
    """Save the current note text before an update overwrites it."""
    name = f"{note_id}_{backup_stamp()}.txt"
    data = text.encode("utf-8")
    path = build_storage_path(user_id, "note_backups", name)
    await store.upload(data, path)
    logger.info(f"Note backup saved to {path}")
    return Attachment(
        path=path,
        name=name,
        size=len(data),
        type=BACKUP_TYPE,
        created_at=utc_iso(),
    ).to_record()


def attachment_category(content_type: str | None) -> str:
    """List for files attached by hand: images, everything else is a plain file."""
    if content_type and content_type.startswith("image/"):
        return "images"
    return "files"
