"""
Notification delivery for booking lifecycle intents.

The dispatcher runs after the booking change has been committed. Each
intent is sent through the provider for its channel, retried with
tenacity, and the outcome is appended to the booking's notifications log.
Delivery problems are logged and never raised to the caller.

Channels: SMS (Twilio or console), email (SMTP or console), push (stub)
and in-app (the stored record is the notification, pushed live to open
connections).
"""
import asyncio
import smtplib
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import sessionmaker
from tenacity import (
    AsyncRetrying,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from twilio.rest import Client

from mekacash.api.middleware.error_handler import ConflictException
from mekacash.lib.db import SessionLocal, get_db_context
from mekacash.lib.logging import get_logger
from mekacash.lib.settings import settings
from mekacash.models.booking_document import (
    DeliveryStatus,
    NotificationChannel,
    NotificationRecord,
    utcnow,
)
from mekacash.services.booking_repository import BookingRepository
from mekacash.services.notification_intents import NotificationIntent
from mekacash.services.realtime import (
    BOOKING_NOTIFICATION,
    ConnectionRegistry,
    get_connection_registry,
)


logger = get_logger(__name__)


class DeliveryError(Exception):
    """A provider reported that a notification was not delivered."""


class NotificationProvider(ABC):
    """
    Abstract base class for notification delivery providers.
    """

    @abstractmethod
    async def send(
        self,
        to: str,
        title: str,
        message: str,
        **kwargs
    ) -> bool:
        """
        Send notification via this provider.

        Args:
            to: Recipient address (phone number, email, device token or user id)
            title: Notification title / subject
            message: Message content to send
            **kwargs: Provider-specific parameters

        Returns:
            True if sent successfully, False otherwise
        """

    @property
    @abstractmethod
    def channel(self) -> NotificationChannel:
        """Return the channel this provider supports."""


class TwilioSMSProvider(NotificationProvider):
    """
    Twilio SMS provider for sending text messages.
    """

    def __init__(self):
        self.from_number = settings.twilio_from_number
        self.client = Client(settings.twilio_account_sid, settings.twilio_auth_token)
        logger.info("Twilio SMS provider initialized")

    @property
    def channel(self) -> NotificationChannel:
        return NotificationChannel.SMS

    async def send(self, to: str, title: str, message: str, **kwargs) -> bool:
        msg = await asyncio.to_thread(
            self.client.messages.create,
            body=f"{title}: {message}",
            from_=self.from_number,
            to=to,
        )
        logger.info(f"SMS sent via Twilio: {msg.sid}", extra={"to": to})
        return True


class ConsoleSMSProvider(NotificationProvider):
    """
    Console SMS provider for development/testing.
    Prints messages to console instead of sending.
    """

    @property
    def channel(self) -> NotificationChannel:
        return NotificationChannel.SMS

    async def send(self, to: str, title: str, message: str, **kwargs) -> bool:
        print("\n" + "=" * 60)
        print(f"SMS to {to}:")
        print(f"   {title}: {message}")
        print("=" * 60 + "\n")
        logger.info("SMS logged to console", extra={"to": to})
        return True


class SMTPEmailProvider(NotificationProvider):
    """Email provider using SMTP (STARTTLS on 587, SSL on 465)."""

    def __init__(self):
        if not settings.smtp_username or not settings.smtp_password:
            raise ValueError(
                "SMTP credentials not configured. "
                "Set SMTP_USERNAME and SMTP_PASSWORD environment variables."
            )
        self.smtp_host = settings.smtp_host
        self.smtp_port = settings.smtp_port
        self.smtp_username = settings.smtp_username
        self.smtp_password = settings.smtp_password
        self.from_email = settings.smtp_from_email or settings.smtp_username
        self.from_name = settings.smtp_from_name

    @property
    def channel(self) -> NotificationChannel:
        return NotificationChannel.EMAIL

    def _build_message(self, to: str, title: str, message: str) -> MIMEMultipart:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = f'MekaCash: {title}'
        msg['From'] = f'{self.from_name} <{self.from_email}>'
        msg['To'] = to

        html = f"""
<html>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
      <h2 style="color: #667eea;">{title}</h2>
      <p>{message}</p>
      <hr style="border: none; border-top: 1px solid #e5e7eb; margin: 20px 0;">
      <p style="color: #6b7280; font-size: 12px;">MekaCash</p>
    </div>
  </body>
</html>
        """
        msg.attach(MIMEText(message, 'plain'))
        msg.attach(MIMEText(html, 'html'))
        return msg

    def _send_sync(self, msg: MIMEMultipart) -> None:
        if self.smtp_port == 465:
            with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port) as server:
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
                server.starttls()
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)

    async def send(self, to: str, title: str, message: str, **kwargs) -> bool:
        await asyncio.to_thread(self._send_sync, self._build_message(to, title, message))
        logger.info("Email sent", extra={"to": to})
        return True


class ConsoleEmailProvider(NotificationProvider):
    """Prints emails to console when SMTP is not configured."""

    @property
    def channel(self) -> NotificationChannel:
        return NotificationChannel.EMAIL

    async def send(self, to: str, title: str, message: str, **kwargs) -> bool:
        print("\n" + "=" * 60)
        print(f"Email to {to}: {title}")
        print(f"   {message}")
        print("=" * 60 + "\n")
        logger.info("Email logged to console", extra={"to": to})
        return True


class PushNotificationProvider(NotificationProvider):
    """
    Push notification provider stub.
    TODO: Send through Firebase Cloud Messaging once device tokens are stored.
    """

    @property
    def channel(self) -> NotificationChannel:
        return NotificationChannel.PUSH

    async def send(self, to: str, title: str, message: str, **kwargs) -> bool:
        logger.info("Push notification stub called", extra={"to": to, "title": title})
        return True


class InAppProvider(NotificationProvider):
    """
    In-app notifications are read from the booking's notifications log.
    Recipients with an open connection also get the notification live.
    """

    def __init__(self, registry: Optional[ConnectionRegistry] = None):
        self.registry = registry or get_connection_registry()

    @property
    def channel(self) -> NotificationChannel:
        return NotificationChannel.IN_APP

    async def send(self, to: str, title: str, message: str, **kwargs) -> bool:
        live = await self.registry.send_to_user(
            to,
            BOOKING_NOTIFICATION,
            {
                "booking_id": kwargs.get("booking_id"),
                "title": title,
                "message": message,
                "payload": kwargs.get("payload") or {},
            },
        )
        logger.debug("In-app notification stored", extra={"to": to, "live_connections": live})
        return True


def default_providers() -> Dict[NotificationChannel, NotificationProvider]:
    """Build the provider for every channel from settings."""
    providers: Dict[NotificationChannel, NotificationProvider] = {}

    if settings.sms_provider == "twilio" and settings.twilio_account_sid:
        providers[NotificationChannel.SMS] = TwilioSMSProvider()
    else:
        providers[NotificationChannel.SMS] = ConsoleSMSProvider()
        logger.info("Using console SMS provider (dev mode)")

    if settings.smtp_username and settings.smtp_password:
        providers[NotificationChannel.EMAIL] = SMTPEmailProvider()
    else:
        providers[NotificationChannel.EMAIL] = ConsoleEmailProvider()

    providers[NotificationChannel.PUSH] = PushNotificationProvider()
    providers[NotificationChannel.IN_APP] = InAppProvider()
    return providers


class NotificationDispatcher:
    """
    Delivers notification intents and records the outcome on the booking.

    Handles:
    - Provider selection based on channel
    - Retries with exponential backoff
    - Writing a NotificationRecord to the booking's notifications log
    """

    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        providers: Optional[Dict[NotificationChannel, NotificationProvider]] = None,
        max_attempts: Optional[int] = None,
        wait=None,
        resolve_contact: Optional[Callable[[str, NotificationChannel], str]] = None,
    ):
        """
        Args:
            session_factory: Session factory used to write delivery outcomes
            providers: Provider per channel; defaults to default_providers()
            max_attempts: Delivery attempts per intent; defaults to settings
            wait: tenacity wait strategy between attempts
            resolve_contact: Maps (user id, channel) to an address; the user
                id itself is used when not given
        """
        self.session_factory = session_factory
        self._providers = providers if providers is not None else default_providers()
        self.max_attempts = max_attempts or settings.notification_max_attempts
        self.wait = wait or wait_exponential(multiplier=1, min=2, max=10)
        self.resolve_contact = resolve_contact or (lambda user_id, channel: user_id)

    def _get_provider(self, channel: NotificationChannel) -> Optional[NotificationProvider]:
        return self._providers.get(channel)

    async def dispatch(self, intents: List[NotificationIntent]) -> List[NotificationRecord]:
        """
        Deliver every intent and record each outcome.

        Returns:
            The NotificationRecord written for each intent, in order
        """
        records = []
        for intent in intents:
            record = await self._deliver(intent)
            # Sync session work runs off the event loop
            await asyncio.to_thread(self._record_outcome, intent, record)
            records.append(record)
        return records

    async def _deliver(self, intent: NotificationIntent) -> NotificationRecord:
        record = NotificationRecord(
            channel=intent.channel,
            title=intent.title,
            message=intent.message,
            recipient=intent.recipient_id,
            booking_id=intent.booking_id,
        )

        provider = self._get_provider(intent.channel)
        if provider is None:
            logger.error(
                f"No provider for channel: {intent.channel.value}",
                extra={"booking_id": intent.booking_id},
            )
            record.delivery_status = DeliveryStatus.FAILED
            return record

        to = self.resolve_contact(intent.recipient_id, intent.channel)

        async def send_once() -> bool:
            record.attempts += 1
            if not await provider.send(
                to,
                intent.title,
                intent.message,
                booking_id=intent.booking_id,
                payload=intent.payload,
            ):
                raise DeliveryError(f"{intent.channel.value} provider rejected notification")
            return True

        try:
            await AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=self.wait,
                retry=retry_if_exception_type(Exception),
                reraise=True,
            )(send_once)
        except Exception as e:
            record.delivery_status = DeliveryStatus.FAILED
            logger.warning(
                f"Notification delivery failed: {e}",
                extra={
                    "booking_id": intent.booking_id,
                    "recipient": intent.recipient_id,
                    "channel": intent.channel.value,
                    "attempts": record.attempts,
                },
            )
            return record

        record.delivery_status = DeliveryStatus.SENT
        record.sent_at = utcnow()
        logger.info(
            "Notification sent",
            extra={
                "booking_id": intent.booking_id,
                "recipient": intent.recipient_id,
                "channel": intent.channel.value,
            },
        )
        return record

    def _append_record(self, booking_id: str, record: NotificationRecord) -> None:
        with get_db_context(self.session_factory) as db:
            repository = BookingRepository(db)
            row = repository.get_record(booking_id)
            booking = row.to_domain()
            booking.notifications.append(record)
            repository.save(row, booking)

    def _record_outcome(self, intent: NotificationIntent, record: NotificationRecord) -> None:
        """Append the outcome to the booking, re-reading on version conflicts."""
        try:
            Retrying(
                stop=stop_after_attempt(3),
                retry=retry_if_exception_type(ConflictException),
                reraise=True,
            )(self._append_record, intent.booking_id, record)
        except Exception:
            logger.error(
                "Failed to record notification outcome",
                extra={"booking_id": intent.booking_id, "recipient": intent.recipient_id},
                exc_info=True,
            )


_dispatcher: Optional[NotificationDispatcher] = None


def get_notification_dispatcher() -> NotificationDispatcher:
    """Shared dispatcher used by the API; override in tests."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher()
        logger.info("NotificationDispatcher initialized")
    return _dispatcher
