"""Outbound side effects produced by state transitions.

Transitions return plain OutboundEmail / OutboundNotification values. They are
delivered only after the new state has been committed, and a failed delivery
never rolls that state back.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Union

from estate_platform.domain.errors import NotificationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutboundEmail:
    to: str
    subject: str
    html: str
    text: Optional[str] = None


@dataclass(frozen=True)
class OutboundNotification:
    user_id: str
    title: str
    message: str
    meta: dict = field(default_factory=dict)


OutboundEvent = Union[OutboundEmail, OutboundNotification]


@dataclass(frozen=True)
class DeliveryReport:
    event: OutboundEvent
    delivered: bool
    error: Optional[str] = None

    @property
    def channel(self) -> str:
        return "email" if isinstance(self.event, OutboundEmail) else "notification"


async def _deliver(gateway, event: OutboundEvent) -> bool:
    if isinstance(event, OutboundEmail):
        return await gateway.send_email(event.to, event.subject, event.html, event.text)
    await gateway.create_notification(event.user_id, event.title, event.message, event.meta)
    return True


async def dispatch_outbound(gateway, events: list[OutboundEvent]) -> list[DeliveryReport]:
    """Deliver each event best-effort and report what happened to it."""
    reports: list[DeliveryReport] = []
    for event in events:
        target = event.to if isinstance(event, OutboundEmail) else event.user_id
        channel = "email" if isinstance(event, OutboundEmail) else "notification"
        try:
            delivered = await _deliver(gateway, event)
        except Exception as exc:
            err = NotificationError(channel, target, exc)
            logger.exception("%s", err)
            reports.append(DeliveryReport(event=event, delivered=False, error=str(err)))
            continue

        if delivered is False:
            err = NotificationError(channel, target)
            logger.warning("%s", err)
            reports.append(DeliveryReport(event=event, delivered=False, error=str(err)))
        else:
            reports.append(DeliveryReport(event=event, delivered=True))
    return reports
