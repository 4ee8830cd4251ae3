"""SendGrid email service.

Uses asyncio.to_thread to wrap the synchronous SendGrid client.
"""

import asyncio
import logging
from typing import Optional

import sendgrid
from sendgrid.helpers.mail import Content, Email, HtmlContent, Mail, To

logger = logging.getLogger(__name__)


def _get_config():
    """Get email config from app settings (lazy to avoid import-time issues)."""
    from estate_platform.app.config import get_settings
    s = get_settings()
    return s.sendgrid_api_key, s.mail_from, s.mail_from_name


def _get_client() -> sendgrid.SendGridAPIClient:
    """Return a configured SendGrid API client."""
    api_key, _, _ = _get_config()
    return sendgrid.SendGridAPIClient(api_key=api_key)


def _send_mail(mail: Mail) -> bool:
    """Synchronous send via SendGrid. Returns True on success."""
    client = _get_client()
    response = client.send(mail)
    if response.status_code in (200, 201, 202):
        return True
    logger.error(
        "SendGrid returned status %s: %s",
        response.status_code,
        response.body,
    )
    return False


async def send_email(to: str, subject: str, html: str, text: Optional[str] = None) -> bool:
    """Send a transactional email.

    Returns:
        True on success, False when SendGrid is not configured or rejects the message.

    Raises:
        Exception: transport errors from the SendGrid client propagate so the
            dispatch boundary can record them.
    """
    api_key, mail_from, mail_from_name = _get_config()
    if not api_key:
        logger.warning("SENDGRID_API_KEY not set, skipping email '%s' to %s", subject, to)
        return False

    mail = Mail(
        from_email=Email(mail_from, mail_from_name),
        to_emails=To(to),
        subject=subject,
        html_content=HtmlContent(html),
    )
    if text:
        mail.add_content(Content("text/plain", text))

    result = await asyncio.to_thread(_send_mail, mail)
    if result:
        logger.info("Email '%s' sent to %s", subject, to)
    return result
