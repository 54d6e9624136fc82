"""Transcription service using the Groq Whisper API."""

import logging
from pathlib import Path

import httpx

from fancynote.config import settings
from fancynote.utils.exceptions import TranscriptionError

logger = logging.getLogger(__name__)


class TranscriptionService:
    """Service for audio transcription through an OpenAI-compatible endpoint."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize transcription service.

        Args:
            base_url: API base URL (default from settings)
            api_key: Groq API key (default from settings)
            model: Whisper model to use (default from settings)
            transport: Optional httpx transport, used by tests
        """
        self.base_url = (base_url or settings.groq_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.groq_api_key
        self.model = model or settings.transcription_model
        self._transport = transport

    async def transcribe(self, file_path: str | Path, language: str) -> str:
        """
        Transcribe an audio file to text.

        Args:
            file_path: Path to the audio file
            language: ISO language hint, e.g. "pl"

        Returns:
            Transcribed text

        Raises:
            TranscriptionError: If the provider is not configured or the call fails
        """
        if not self.api_key:
            raise TranscriptionError("Transcription API key is not configured")

        path = Path(file_path)
        logger.info(f"Transcribing audio file: {path.name} ({self.model}, {language})")
        async with httpx.AsyncClient(transport=self._transport) as client:
            try:
                with open(path, "rb") as audio:
                    response = await client.post(
                        f"{self.base_url}/audio/transcriptions",
                        headers={"Authorization": f"Bearer {self.api_key}"},
                        data={"model": self.model, "language": language},
                        files={"file": (path.name, audio)},
                        timeout=300.0,
                    )
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                try:
                    error_msg = e.response.json().get("error", {}).get("message", str(e))
                except Exception:
                    error_msg = str(e)
                raise TranscriptionError(f"Transcription failed: {error_msg}") from e
            except httpx.RequestError as e:
                raise TranscriptionError(f"Transcription request failed: {e}") from e
            except OSError as e:
                raise TranscriptionError(f"Could not read audio file {path.name}: {e}") from e
            except ValueError as e:
                raise TranscriptionError(f"Invalid transcription response: {e}") from e

        if not isinstance(data, dict):
            raise TranscriptionError("Invalid transcription response: expected a JSON object")
        text = data.get("text") or ""
        if not isinstance(text, str):
            raise TranscriptionError("Invalid transcription response: text is not a string")
        return text.strip()


def get_transcription_service() -> TranscriptionService:
    return TranscriptionService()
