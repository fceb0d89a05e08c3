"""Reminder delivery channels.

Due reminders are routed by delivery type:
- email: sent over SMTP to the event owner's address
- notification: written to the notifier log and, when PUSH_WEBHOOK_URL is
  set, POSTed to that webhook as JSON

Delivery failures never propagate out of Notifier.notify: they are logged
and reported through the boolean return value.
"""

import asyncio
import smtplib
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Optional

import httpx

from config import settings
from database import DeliveryTypeEnum
from logger_config import setup_logger

logger = setup_logger(__name__, 'notifier.log')


class NotifyError(Exception):
    """Raised by a delivery channel when the transport fails."""


@dataclass(frozen=True)
class ReminderNotification:
    """Everything a channel needs to tell a user about an upcoming event."""

    event_id: str
    reminder_id: str
    event_name: str
    event_description: str
    event_instant: datetime
    recipient_address: Optional[str]
    delivery_type: DeliveryTypeEnum


class Notifier:
    """Dispatches due reminders to the channel named by their delivery type."""

    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: Optional[int] = None,
        smtp_username: Optional[str] = None,
        smtp_password: Optional[str] = None,
        smtp_use_tls: Optional[bool] = None,
        email_from: Optional[str] = None,
        webhook_url: Optional[str] = None,
        http_timeout: float = 10.0,
    ):
        self.smtp_host = smtp_host or settings.SMTP_HOST
        self.smtp_port = smtp_port or settings.SMTP_PORT
        self.smtp_username = smtp_username if smtp_username is not None else settings.SMTP_USERNAME
        self.smtp_password = smtp_password if smtp_password is not None else settings.SMTP_PASSWORD
        self.smtp_use_tls = settings.SMTP_USE_TLS if smtp_use_tls is None else smtp_use_tls
        self.email_from = email_from or settings.EMAIL_FROM
        self.webhook_url = webhook_url if webhook_url is not None else settings.PUSH_WEBHOOK_URL
        self.http_timeout = http_timeout

    async def notify(self, notification: ReminderNotification) -> bool:
        """Deliver one due reminder.

        Args:
            notification: The due reminder and its event details

        Returns:
            bool: True if the reminder was delivered
        """
        if notification.delivery_type is DeliveryTypeEnum.EMAIL:
            if not notification.recipient_address:
                logger.warning(
                    f"No email address for reminder {notification.reminder_id} "
                    f"on event {notification.event_id}, skipping"
                )
                return False
            try:
                await self.send_email(notification)
            except NotifyError as e:
                logger.error(f"Failed to send reminder email: {e}")
                return False
            logger.info(f"Reminder email sent for event: {notification.event_id}")
            return True

        return await self.send_in_app(notification)

    def build_email(self, notification: ReminderNotification) -> EmailMessage:
        instant = notification.event_instant
        message = EmailMessage()
        message["From"] = self.email_from
        message["To"] = notification.recipient_address
        message["Subject"] = f"Reminder: {notification.event_name}"
        message.set_content(
            f"Reminder for your event: {notification.event_name} scheduled for "
            f"{instant.strftime('%Y-%m-%d')} at {instant.strftime('%H:%M')}.\n\n"
            f"Description: {notification.event_description}"
        )
        return message

    async def send_email(self, notification: ReminderNotification) -> None:
        """Send the reminder email without blocking the event loop.

        Raises:
            NotifyError: If the mail relay cannot be reached or rejects the message
        """
        try:
            message = self.build_email(notification)
        except ValueError as e:
            # Header injection attempts (CR/LF in the event name) end up here
            raise NotifyError(f"Cannot build email for reminder {notification.reminder_id}: {e}") from e
        await asyncio.to_thread(self._deliver_smtp, message)

    def _deliver_smtp(self, message: EmailMessage) -> None:
        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.http_timeout) as smtp:
                if self.smtp_use_tls:
                    smtp.starttls()
                if self.smtp_username:
                    smtp.login(self.smtp_username, self.smtp_password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise NotifyError(f"{self.smtp_host}:{self.smtp_port}: {e}") from e

    async def send_in_app(self, notification: ReminderNotification) -> bool:
        """Log the reminder and forward it to the push webhook if configured."""
        logger.info(
            f"Reminder notification for event: {notification.event_name} "
            f"at {datetime.now(timezone.utc).isoformat()}"
        )

        if not self.webhook_url:
            return True

        payload = {
            "event_id": notification.event_id,
            "reminder_id": notification.reminder_id,
            "event_name": notification.event_name,
            "event_description": notification.event_description,
            "event_instant": notification.event_instant.isoformat(),
            "recipient_address": notification.recipient_address,
            "delivery_type": notification.delivery_type.value,
        }
        try:
            async with httpx.AsyncClient(timeout=self.http_timeout) as client:
                response = await client.post(self.webhook_url, json=payload)
            if response.status_code >= 400:
                logger.error(
                    f"Push webhook rejected reminder {notification.reminder_id}. "
                    f"Status: {response.status_code}, Response: {response.text}"
                )
        except httpx.TimeoutException:
            logger.error(f"Timeout while pushing reminder {notification.reminder_id}")
        except httpx.RequestError as e:
            logger.error(f"Network error while pushing reminder {notification.reminder_id}: {str(e)}")

        return True
