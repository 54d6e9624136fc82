"""Service modules for business logic."""

from fancynote.services.llm_service import ChatService
from fancynote.services.metadata_service import MetadataService
from fancynote.services.note_service import NoteService
from fancynote.services.scraping_service import ScrapingService
from fancynote.services.transcription_service import TranscriptionService

__all__ = [
    "ChatService",
    "MetadataService",
    "NoteService",
    "ScrapingService",
    "TranscriptionService",
]
