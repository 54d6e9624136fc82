"""Title and excerpt generation for processed notes."""

import logging

import httpx

from fancynote.config import settings
from fancynote.services.prompts import language_name
from fancynote.utils.exceptions import LLMError

logger = logging.getLogger(__name__)


def clean_generated_text(text: str | None) -> str | None:
    """Discard empty, "null" and single-character generations."""
    if not text:
        return None
    text = text.strip()
    if not text or text.lower() == "null" or len(text) <= 1:
        return None
    return text


class MetadataService:
    """Generates short titles and excerpts through the Groq chat API."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.groq_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.groq_api_key
        self.model = model or settings.metadata_model
        self._transport = transport

    async def _chat(
        self, system_prompt: str, content: str, temperature: float, max_tokens: int
    ) -> str:
        if not self.api_key:
            raise LLMError("Metadata API key is not configured")

        async with httpx.AsyncClient(transport=self._transport) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "model": self.model,
                        "messages": [
                            {"role": "system", "content": system_prompt},
                            {"role": "user", "content": content},
                        ],
                        "temperature": temperature,
                        "max_tokens": max_tokens,
                        "top_p": 1,
                        "stream": False,
                    },
                    timeout=60.0,
                )
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as e:
                raise LLMError(
                    f"Metadata generation failed: {e}", status_code=e.response.status_code
                ) from e
            except httpx.RequestError as e:
                raise LLMError(f"Metadata request failed: {e}") from e

        choices = data.get("choices") or [{}]
        return ((choices[0].get("message") or {}).get("content") or "").strip()

    async def generate_title(self, content: str, language: str) -> str | None:
        """
        Generate a title of up to six words in the target language.

        Returns:
            Title text, or None if the model produced nothing usable
        """
        if not content or not content.strip():
            logger.info("Skipping title generation: No content provided.")
            return None

        target = language_name(language)
        title = await self._chat(
            f"You are Titles Creator. The user sends you a note content. As a response "
            f"return ONLY (no replies, no comments) one short (up to 6 words) title in the "
            f"**{target}** language for the note.",
            content,
            temperature=0.7,
            max_tokens=30,
        )
        title = clean_generated_text(title)
        if title is None:
            return None
        # Models like to wrap titles in markdown emphasis
        return clean_generated_text(title.strip("*"))

    async def generate_excerpt(self, content: str, language: str) -> str | None:
        """
        Generate a description of up to forty words in the target language.

        Returns:
            Excerpt text, or None if the model produced nothing usable
        """
        if not content or not content.strip():
            logger.info("Skipping excerpt generation: No content provided.")
            return None

        target = language_name(language)
        excerpt = await self._chat(
            f"You are Descriptions Creator. The user sends you a note content. As a response "
            f"return ONLY (no replies, no comments) one short (up to 40 words) description in "
            f"the **{target}** language of what the note is about.",
            content,
            temperature=0.8,
            max_tokens=200,
        )
        return clean_generated_text(excerpt)


def get_metadata_service() -> MetadataService:
    return MetadataService()
