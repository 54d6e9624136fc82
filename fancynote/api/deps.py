"""API dependencies for dependency injection."""

from collections.abc import Generator
from typing import Annotated, cast

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session, select

from fancynote.database import get_session
from fancynote.models.user import User, UserSettings
from fancynote.services.auth_service import decode_access_token
from fancynote.services.intake_service import NoteIntake
from fancynote.services.profile_service import ProfileService
from fancynote.services.storage_service import AttachmentStore, get_attachment_store
from fancynote.tasks.processing_tasks import EnrichmentPipeline
from fancynote.utils.exceptions import AuthenticationError

bearer_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """Get database session dependency."""
    yield from get_session()


SessionDep = Annotated[Session, Depends(get_db)]
BearerDep = Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)]


def user_from_token(session: Session, token: str | None) -> User | None:
    """
    Resolve a caller from an identity token.

    Tries the token as a JWT from the auth provider first, then as a
    long-lived API token stored on the user.
    """
    if not token:
        return None

    try:
        token_data = decode_access_token(token)
        if token_data.user_id is not None:
            user = session.get(User, token_data.user_id)
            if user:
                return user
    except AuthenticationError:
        pass

    statement = select(User).where(User.api_token == token)
    return session.exec(statement).first()


def _unauthorized(detail: str = "Not authenticated") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(session: SessionDep, credentials: BearerDep) -> User:
    """
    Get the current authenticated user from the Authorization header.

    Raises:
        HTTPException: If authentication fails
    """
    user = user_from_token(session, credentials.credentials if credentials else None)
    if user is None:
        raise _unauthorized()
    return user


CurrentUserDep = Annotated[User, Depends(get_current_user)]


def get_link_user(
    session: SessionDep,
    credentials: BearerDep,
    token: Annotated[str | None, Query()] = None,
) -> User:
    """
    Authenticate a link-style request (attachment URLs, event streams).

    The token comes from the ``token`` query parameter, falling back to the
    Authorization header.
    """
    user = user_from_token(session, token or (credentials.credentials if credentials else None))
    if user is None:
        raise _unauthorized("Invalid or missing access token")
    return user


LinkUserDep = Annotated[User, Depends(get_link_user)]


def get_user_settings(session: SessionDep, current_user: CurrentUserDep) -> UserSettings:
    """
    Get the current user's settings.

    Returns:
        UserSettings instance (creates default if none exists)
    """
    user_id = cast(int, current_user.id)
    return ProfileService(session).get_settings(user_id)


UserSettingsDep = Annotated[UserSettings, Depends(get_user_settings)]


def get_pipeline() -> EnrichmentPipeline:
    return EnrichmentPipeline()


PipelineDep = Annotated[EnrichmentPipeline, Depends(get_pipeline)]


def get_intake() -> NoteIntake:
    return NoteIntake()


IntakeDep = Annotated[NoteIntake, Depends(get_intake)]


def get_store() -> AttachmentStore:
    """A fresh, unconnected store; the caller connects and closes it."""
    return get_attachment_store()


StoreDep = Annotated[AttachmentStore, Depends(get_store)]
