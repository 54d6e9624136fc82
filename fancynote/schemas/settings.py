"""User AI settings schemas."""

import json

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fancynote.utils.exceptions import AiSettingsError


class AiSettings(BaseModel):
    """Per-user AI configuration as stored in UserSettings.ai_settings."""

    model_config = ConfigDict(populate_by_name=True)

    api_key: str | None = Field(default=None, alias="apiKey")
    model: str | None = None
    system_prompt: str | None = Field(default=None, alias="systemPrompt")
    language: str | None = None

    def to_json(self) -> str:
        return json.dumps(self.model_dump(by_alias=True, exclude_none=True))


def parse_ai_settings(raw: str | dict | None) -> AiSettings:
    """
    Parse stored AI settings.

    Args:
        raw: JSON string or already-decoded mapping

    Returns:
        AiSettings instance

    Raises:
        AiSettingsError: If the value is not a JSON object of the expected shape
    """
    if raw is None or raw == "":
        return AiSettings()
    try:
        data = json.loads(raw) if isinstance(raw, str) else raw
    except json.JSONDecodeError as e:
        raise AiSettingsError(f"Invalid AI settings format: {e}") from e
    if not isinstance(data, dict):
        raise AiSettingsError("Invalid AI settings format: expected a JSON object")
    try:
        return AiSettings.model_validate(data)
    except ValidationError as e:
        raise AiSettingsError(f"Invalid AI settings format: {e}") from e


class AiSettingsResponse(BaseModel):
    """Schema for AI settings response (API key masked)."""

    has_api_key: bool
    model: str | None
    system_prompt: str | None
    language: str | None


class AiSettingsUpdate(BaseModel):
    """Schema for updating AI settings."""

    api_key: str | None = None
    model: str | None = None
    system_prompt: str | None = None
    language: str | None = None
