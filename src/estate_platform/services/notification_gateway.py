"""Delivery channels for emails and in-app notifications."""

import logging
from typing import Optional

from estate_platform.domain.models import Notification
from estate_platform.services import email_service

logger = logging.getLogger(__name__)


class NotificationGateway:
    """Interface the engine delivers outbound events through."""

    async def send_email(self, to: str, subject: str, html: str, text: Optional[str] = None) -> bool:
        raise NotImplementedError

    async def create_notification(
        self, user_id: str, title: str, message: str, meta: Optional[dict] = None
    ) -> None:
        raise NotImplementedError


class DefaultNotificationGateway(NotificationGateway):
    """SendGrid email plus rows in the notifications table.

    Notifications are written in their own session so a failure there cannot
    disturb the caller's already-committed transaction.
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def send_email(self, to, subject, html, text=None) -> bool:
        return await email_service.send_email(to, subject, html, text)

    async def create_notification(self, user_id, title, message, meta=None) -> None:
        async with self._session_factory() as session:
            session.add(Notification(user_id=user_id, title=title, message=message, meta=meta or {}))
            await session.commit()
        logger.info("Notification '%s' created for %s", title, user_id)
