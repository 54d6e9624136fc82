"""Notification records for background job outcomes."""

from sqlmodel import Session, func, select

from fancynote.models.notification import Notification
from fancynote.utils.exceptions import NotFoundError


class NotificationService:
    """Service for creating and reading user notifications."""

    def __init__(self, session: Session):
        self.session = session

    def create(
        self, user_id: int, type: str, note_id: int, title: str, message: str
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=type,
            content={"noteId": note_id, "title": title, "message": message},
        )
        self.session.add(notification)
        self.session.commit()
        self.session.refresh(notification)
        return notification

    def list_notifications(
        self, user_id: int, unread_only: bool = False, limit: int = 50
    ) -> tuple[list[Notification], int]:
        """
        List notifications for a user, newest first.

        Returns:
            Tuple of (notifications, unread count)
        """
        statement = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            statement = statement.where(Notification.read == False)  # noqa: E712
        statement = statement.order_by(Notification.created_at.desc()).limit(limit)  # type: ignore
        notifications = list(self.session.exec(statement).all())

        unread = self.session.exec(
            select(func.count()).where(
                Notification.user_id == user_id,
                Notification.read == False,  # noqa: E712
            )
        ).one()
        return notifications, unread

    def mark_read(self, notification_id: int, user_id: int) -> Notification:
        """
        Raises:
            NotFoundError: If the notification is not the user's
        """
        notification = self.session.get(Notification, notification_id)
        if not notification or notification.user_id != user_id:
            raise NotFoundError("Notification")
        notification.read = True
        self.session.add(notification)
        self.session.commit()
        self.session.refresh(notification)
        return notification
