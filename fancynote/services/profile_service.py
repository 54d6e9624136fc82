"""User profile access: AI settings and the credit ledger."""

import logging

from sqlmodel import Session, select

from fancynote.models.user import User, UserSettings
from fancynote.schemas.settings import AiSettings, AiSettingsUpdate, parse_ai_settings
from fancynote.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)


class ProfileService:
    """Service for per-user settings and credits."""

    def __init__(self, session: Session):
        self.session = session

    def get_settings(self, user_id: int) -> UserSettings:
        """Get the user's settings row, creating defaults if missing."""
        statement = select(UserSettings).where(UserSettings.user_id == user_id)
        user_settings = self.session.exec(statement).first()
        if not user_settings:
            user_settings = UserSettings(user_id=user_id)
            self.session.add(user_settings)
            self.session.commit()
            self.session.refresh(user_settings)
        return user_settings

    def get_ai_settings_raw(self, user_id: int) -> str:
        """
        Stored AI settings exactly as saved, unparsed.

        Raises:
            NotFoundError: If the user does not exist
        """
        if self.session.get(User, user_id) is None:
            raise NotFoundError("User")
        return self.get_settings(user_id).ai_settings

    def update_ai_settings(self, user_id: int, update: AiSettingsUpdate) -> AiSettings:
        """
        Merge the given fields into the stored AI settings.

        Raises:
            AiSettingsError: If the stored value is malformed
        """
        user_settings = self.get_settings(user_id)
        current = parse_ai_settings(user_settings.ai_settings)
        merged = current.model_copy(update=update.model_dump(exclude_unset=True))
        user_settings.ai_settings = merged.to_json()
        self.session.add(user_settings)
        self.session.commit()
        return merged

    def deduct_credit(self, user_id: int) -> int:
        """
        Take one credit from the user, never going below zero.

        Returns:
            New balance

        Raises:
            NotFoundError: If the user does not exist
        """
        user = self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User")
        user.project_credits = max(0, (user.project_credits or 0) - 1)
        self.session.add(user)
        self.session.commit()
        logger.info(f"User credits updated for user {user_id}. New balance: {user.project_credits}")
        return user.project_credits
