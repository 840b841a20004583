"""
User-facing notifications and transactional emails.

Never part of a financial transaction: callers invoke these only after their
unit of work has committed, wrapped in ``dispatch_safely``.
"""
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Awaitable, Optional, Protocol

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import Notification

logger = structlog.get_logger(__name__)

REVIEW_REMINDER_DELAY = timedelta(days=3)


class NotificationType(str, Enum):
    ORDER_RECEIVED = "ORDER_RECEIVED"
    ORDER_CONFIRMED = "ORDER_CONFIRMED"
    ORDER_PROCESSING = "ORDER_PROCESSING"
    ORDER_READY_FOR_PICKUP = "ORDER_READY_FOR_PICKUP"
    ORDER_SHIPPED = "ORDER_SHIPPED"
    ORDER_DELIVERED = "ORDER_DELIVERED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    ORDER_PAID = "ORDER_PAID"
    RECHARGE_REQUESTED = "RECHARGE_REQUESTED"
    RECHARGE_APPROVED = "RECHARGE_APPROVED"
    RECHARGE_REJECTED = "RECHARGE_REJECTED"


class EmailSender(Protocol):
    async def send(self, user_id: str, subject: str, template: str, context: dict,
                   send_after: Optional[datetime] = None) -> None: ...


class LoggingEmailSender:
    """Default sender: hands the message to the log pipeline for the mail relay."""

    async def send(self, user_id: str, subject: str, template: str, context: dict,
                   send_after: Optional[datetime] = None) -> None:
        logger.info(
            "email_queued",
            user_id=user_id,
            subject=subject,
            template=template,
            send_after=send_after.isoformat() if send_after else None,
        )


class NotificationDispatcher:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], email_sender: EmailSender):
        self._session_factory = session_factory
        self._email_sender = email_sender

    async def notify(self, user_id: str, type: NotificationType, title: str, message: str,
                     link: Optional[str] = None) -> None:
        async with self._session_factory() as db:
            db.add(Notification(user_id=user_id, type=type.value, title=title, message=message, link=link))
            await db.commit()
        logger.info("notification_created", user_id=user_id, type=type.value)

    async def send_email(self, user_id: str, subject: str, template: str, context: dict) -> None:
        await self._email_sender.send(user_id, subject, template, context)

    async def schedule_review_reminder(self, user_id: str, order_number: str) -> None:
        send_after = datetime.now(timezone.utc) + REVIEW_REMINDER_DELAY
        await self._email_sender.send(
            user_id,
            f"How was your purchase? - {order_number}",
            "review_reminder",
            {"order_number": order_number},
            send_after=send_after,
        )


async def dispatch_safely(call: Awaitable, **context) -> None:
    """Awaits a notification call; failures are logged and swallowed."""
    try:
        await call
    except Exception:
        logger.exception("notification_failed", **context)
