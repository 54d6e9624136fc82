"""Identity token handling for tokens issued by the managed auth provider."""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from fancynote.config import settings
from fancynote.schemas.auth import TokenData
from fancynote.utils.exceptions import AuthenticationError


def create_access_token(user_id: int, expires_delta: timedelta | None = None) -> str:
    """
    Create a JWT access token.

    Used for short-lived attachment links and in tests; regular session
    tokens come from the auth provider and share the same signing secret.

    Args:
        user_id: User ID to encode in the token
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT string
    """
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.access_token_expire_minutes
        )

    to_encode = {"sub": str(user_id), "exp": expire}
    encoded_jwt = jwt.encode(
        to_encode, settings.secret_key, algorithm=settings.algorithm
    )
    return encoded_jwt


def create_attachment_token(user_id: int) -> str:
    """Short-lived token embedded in attachment URLs handed to the LLM provider."""
    return create_access_token(
        user_id, timedelta(minutes=settings.attachment_token_expire_minutes)
    )


def decode_access_token(token: str) -> TokenData:
    """
    Decode and validate a JWT access token.

    Args:
        token: JWT string to decode

    Returns:
        TokenData containing user_id

    Raises:
        AuthenticationError: If token is invalid or expired
    """
    try:
        payload = jwt.decode(
            token, settings.secret_key, algorithms=[settings.algorithm]
        )
        user_id_str: str | None = payload.get("sub")
        if user_id_str is None:
            raise AuthenticationError("Invalid token payload")
        user_id = int(user_id_str)
        return TokenData(user_id=user_id)
    except JWTError as e:
        raise AuthenticationError(f"Token validation failed: {e}")
    except ValueError:
        raise AuthenticationError("Invalid user ID in token")
