"""Chat completion client (OpenRouter) with ordered model fallback."""

import logging
from enum import Enum
from typing import Any

import httpx

from fancynote.config import settings
from fancynote.utils.exceptions import LLMError, MalformedResponseError, QuotaExceededError

logger = logging.getLogger(__name__)

ALL_MODELS_FAILED = "All LLM models failed to process the request."


class FallbackAction(str, Enum):
    """What the fallback loop does after a failed candidate."""

    ADVANCE = "advance"
    ABORT = "abort"


def classify_failure(error: LLMError) -> FallbackAction:
    """
    Map a failed chat call to the next step of the fallback loop.

    Quota errors, malformed success bodies and transport failures (no HTTP
    response at all) move on to the next candidate; any other HTTP error
    stops the loop.
    """
    if isinstance(error, (QuotaExceededError, MalformedResponseError)):
        return FallbackAction.ADVANCE
    if error.status_code is None:
        return FallbackAction.ADVANCE
    return FallbackAction.ABORT


def validate_model_id(model_id: str | None) -> str | None:
    """Model ids without a provider prefix are assumed to be OpenAI models."""
    if not model_id:
        return None
    if "/" in model_id:
        return model_id
    return f"openai/{model_id}"


def candidate_models(
    primary: str | None,
    default: str | None = None,
    fallbacks: list[str] | None = None,
) -> list[str]:
    """Ordered, de-duplicated candidate list: primary (or default), then fallbacks."""
    first = validate_model_id(primary) or default or settings.default_llm_model
    ordered = [first, *(settings.fallback_llm_models if fallbacks is None else fallbacks)]
    models: list[str] = []
    for model in ordered:
        if model not in models:
            models.append(model)
    return models


def _extract_content(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    choices = data.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return None
    content = (choices[0].get("message") or {}).get("content")
    if isinstance(content, str) and content.strip():
        return content
    return None


class ChatService:
    """Service for chat completions through the OpenRouter API."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        referer: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the chat service.

        Args:
            base_url: OpenAI-compatible API base URL
            api_key: Fallback API key when the user has none configured
            referer: Value for the HTTP-Referer attribution header
            transport: Optional httpx transport, used by tests
        """
        self.base_url = (base_url or settings.openrouter_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.openrouter_api_key
        self.referer = referer or settings.public_base_url
        self._transport = transport

    def _get_headers(self, api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.referer,
            "X-Title": "FancyNote App",
        }

    async def _complete(
        self,
        client: httpx.AsyncClient,
        model: str,
        messages: list[dict[str, Any]],
        api_key: str,
    ) -> str:
        payload = {
            "model": model,
            "messages": messages,
            "temperature": 0.7,
            "max_tokens": 4000,
            "top_p": 0.9,
        }
        logger.info(f"Attempting LLM processing with model: {model}")
        try:
            response = await client.post(
                f"{self.base_url}/chat/completions",
                headers=self._get_headers(api_key),
                json=payload,
                timeout=300.0,
            )
        except httpx.RequestError as e:
            raise LLMError(f"LLM request failed (model: {model}): {e}", model=model) from e

        if not response.is_success:
            try:
                error_msg = response.json()["error"]["message"]
            except Exception:
                error_msg = response.reason_phrase or f"HTTP {response.status_code}"
            logger.error(
                f"OpenRouter API error (model: {model}, status: {response.status_code}): {error_msg}"
            )
            message = f"LLM API error (model: {model}): {error_msg}"
            if response.status_code == 429:
                raise QuotaExceededError(message, model=model, status_code=429)
            raise LLMError(message, model=model, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError:
            data = None
        content = _extract_content(data)
        if content is None:
            logger.error(f"OpenRouter API response missing choices or content for model {model}")
            raise MalformedResponseError(
                f"Invalid response format from LLM API (model: {model}): Missing or empty choices/content",
                model=model,
                status_code=response.status_code,
            )
        return content

    async def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        api_key: str | None = None,
    ) -> str:
        """Single chat completion against one model."""
        return await self.complete_with_fallback([model], messages, api_key)

    async def complete_with_fallback(
        self,
        models: list[str],
        messages: list[dict[str, Any]],
        api_key: str | None = None,
    ) -> str:
        """
        Try each candidate model in order until one returns content.

        Args:
            models: Ordered candidates, primary first
            messages: Chat messages (text or mixed text/image content)
            api_key: User's API key; falls back to the configured key

        Returns:
            Generated message content of the first successful model

        Raises:
            LLMError: On the first aborting error, or the last remembered
                error once every candidate has been tried
        """
        key = api_key or self.api_key
        if not key:
            raise LLMError("No OpenRouter API key provided in settings or environment variables")

        last_error: LLMError | None = None
        async with httpx.AsyncClient(transport=self._transport) as client:
            for model in models:
                try:
                    content = await self._complete(client, model, messages, key)
                except LLMError as e:
                    last_error = e
                    if classify_failure(e) is FallbackAction.ABORT:
                        raise
                    logger.warning(f"Model {model} failed ({e}). Trying next model...")
                    continue
                logger.info(f"Successfully processed with model: {model}")
                return content

        logger.error(f"All LLM models failed. Last error: {last_error}")
        raise last_error or LLMError(ALL_MODELS_FAILED)


def get_chat_service() -> ChatService:
    return ChatService()
