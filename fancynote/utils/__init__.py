"""Utility modules."""

from fancynote.utils.exceptions import (
    AiSettingsError,
    AuthenticationError,
    ConfigurationError,
    FancyNoteException,
    LLMError,
    MalformedResponseError,
    NotFoundError,
    QuotaExceededError,
    ServiceError,
    StorageError,
    TranscriptionError,
)

__all__ = [
    "AiSettingsError",
    "AuthenticationError",
    "ConfigurationError",
    "FancyNoteException",
    "LLMError",
    "MalformedResponseError",
    "NotFoundError",
    "QuotaExceededError",
    "ServiceError",
    "StorageError",
    "TranscriptionError",
]
