"""Custom exception classes."""

from fastapi import HTTPException, status


class FancyNoteException(Exception):
    """Base exception for FancyNote application."""

    pass


class AuthenticationError(FancyNoteException):
    """Raised when authentication fails."""

    def __init__(self, detail: str = "Could not validate credentials"):
        self.detail = detail
        super().__init__(detail)

    def to_http_exception(self) -> HTTPException:
        """Convert to FastAPI HTTPException."""
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=self.detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class NotFoundError(FancyNoteException):
    """Raised when a resource is not found."""

    def __init__(self, resource: str = "Resource", detail: str | None = None):
        self.detail = detail or f"{resource} not found"
        super().__init__(self.detail)

    def to_http_exception(self) -> HTTPException:
        """Convert to FastAPI HTTPException."""
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=self.detail,
        )


class ServiceError(FancyNoteException):
    """Raised when external service calls fail."""

    def __init__(self, detail: str = "External service error"):
        self.detail = detail
        super().__init__(detail)

    def to_http_exception(self) -> HTTPException:
        """Convert to FastAPI HTTPException."""
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=self.detail,
        )


class ConfigurationError(FancyNoteException):
    """Raised when a required configuration value is missing."""

    pass


class AiSettingsError(FancyNoteException):
    """Raised when a user's stored AI settings cannot be parsed."""

    pass


class StorageError(ServiceError):
    """Raised when the attachment store cannot complete an operation."""

    pass


class TranscriptionError(ServiceError):
    """Raised when the transcription provider fails."""

    pass


class LLMError(ServiceError):
    """Raised when a chat completion request fails."""

    def __init__(self, detail: str, model: str | None = None, status_code: int | None = None):
        self.model = model
        self.status_code = status_code
        super().__init__(detail)


class QuotaExceededError(LLMError):
    """Raised on HTTP 429 from the chat provider."""

    pass


class MalformedResponseError(LLMError):
    """Raised when a successful response carries no message content."""

    pass
