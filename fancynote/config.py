"""Application configuration using Pydantic Settings."""

import logging
import warnings
from dataclasses import dataclass, field

from pydantic_settings import BaseSettings, SettingsConfigDict

from fancynote.utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # App
    app_name: str = "FancyNote"
    debug: bool = True

    # Public URL of this deployment (used for image references sent to the LLM)
    public_base_url: str = "http://localhost:8000"

    # Security (shared secret of the managed auth provider)
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 10080  # 1 week
    attachment_token_expire_minutes: int = 60

    # Database
    database_url: str = "sqlite:///./fancynote.db"

    # Attachment storage: "local" or "sftp"
    storage_backend: str = "local"
    storage_base_path: str = "uploads"
    sftp_host: str | None = None
    sftp_port: int = 22
    sftp_username: str | None = None
    sftp_private_key: str | None = None
    sftp_passphrase: str | None = None

    # OpenRouter (note content structuring)
    openrouter_url: str = "https://openrouter.ai/api/v1"
    openrouter_api_key: str | None = None
    default_llm_model: str = "google/gemini-2.5-pro-exp-03-25:free"
    fallback_llm_models: list[str] = [
        "google/gemini-2.0-flash-thinking-exp:free",
        "google/gemini-2.0-flash-lite-001",
    ]

    # Groq (transcription, titles and excerpts)
    groq_url: str = "https://api.groq.com/openai/v1"
    groq_api_key: str | None = None
    transcription_model: str = "whisper-large-v3"
    transcription_language: str = "pl"
    metadata_model: str = "meta-llama/llama-4-maverick-17b-128e-instruct"

    # Scrapeless (web content)
    scrapeless_url: str = "https://api.scrapeless.com/api/v1/unlocker/request"
    scrapeless_api_key: str | None = None

    # CORS
    cors_origins: list[str] = ["*"]

    def __init__(self, **kwargs):
        """Initialize settings and validate production configuration."""
        super().__init__(**kwargs)
        self._validate_production_settings()

    def _validate_production_settings(self) -> None:
        """Validate and warn about insecure production settings."""
        if not self.debug:
            # Production mode - check for insecure settings
            if self.secret_key == "change-me-in-production":
                warnings.warn(
                    "SECRET_KEY is set to default value. Change this in production!",
                    UserWarning,
                    stacklevel=2,
                )
                logger.warning(
                    "SECRET_KEY is set to default value. Change this in production!"
                )

            if "*" in self.cors_origins:
                warnings.warn(
                    "CORS is configured to allow all origins (*). Restrict this in production!",
                    UserWarning,
                    stacklevel=2,
                )
                logger.warning(
                    "CORS is configured to allow all origins (*). Restrict this in production!"
                )

            if self.storage_backend == "sftp" and not self.sftp_host:
                logger.warning("SFTP storage selected but SFTP_HOST is not set")


settings = Settings()


@dataclass
class PipelineConfig:
    """Process-wide values note processing needs, checked once per invocation."""

    public_base_url: str
    storage_backend: str
    default_llm_model: str
    fallback_llm_models: list[str] = field(default_factory=list)
    transcription_language: str = "pl"

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "PipelineConfig":
        config = config or settings
        return cls(
            public_base_url=config.public_base_url,
            storage_backend=config.storage_backend,
            default_llm_model=config.default_llm_model,
            fallback_llm_models=list(config.fallback_llm_models),
            transcription_language=config.transcription_language,
        )

    def validate(self) -> None:
        """
        Raises:
            ConfigurationError: If a required value is missing or invalid
        """
        if not self.public_base_url:
            raise ConfigurationError("PUBLIC_BASE_URL is not configured")
        if self.storage_backend not in ("local", "sftp"):
            raise ConfigurationError(f"Unknown storage backend: {self.storage_backend}")
        if not self.default_llm_model:
            raise ConfigurationError("DEFAULT_LLM_MODEL is not configured")
        if not self.transcription_language:
            raise ConfigurationError("TRANSCRIPTION_LANGUAGE is not configured")
