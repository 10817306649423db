"""
Unit tests for notification providers and the dispatcher delivery loop.
"""
import threading
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from tenacity import wait_none

from mekacash.models.booking_document import DeliveryStatus, NotificationChannel
from mekacash.services.notification_intents import NotificationIntent
from mekacash.services.notification_service import (
    ConsoleEmailProvider,
    ConsoleSMSProvider,
    InAppProvider,
    NotificationDispatcher,
    PushNotificationProvider,
    SMTPEmailProvider,
    TwilioSMSProvider,
    default_providers,
)
from mekacash.services.realtime import BOOKING_NOTIFICATION, ConnectionRegistry


def _intent(channel=NotificationChannel.PUSH, recipient="cust-1"):
    return NotificationIntent(
        recipient_id=recipient,
        channel=channel,
        title="Booking confirmed",
        message="Booking MC1 is confirmed.",
        booking_id="MC1",
    )


def _provider(channel, send):
    provider = MagicMock()
    provider.channel = channel
    provider.send = send
    return provider


@pytest.mark.unit
@pytest.mark.asyncio
async def test_console_sms_provider():
    """Test console SMS provider sends successfully."""
    provider = ConsoleSMSProvider()

    assert provider.channel == NotificationChannel.SMS
    assert await provider.send(to="+15550100", title="Hi", message="Test SMS message") is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_console_email_provider():
    provider = ConsoleEmailProvider()

    assert provider.channel == NotificationChannel.EMAIL
    assert await provider.send(to="a@example.com", title="Hi", message="Body") is True


@pytest.mark.unit
@pytest.mark.asyncio
async def test_push_and_in_app_providers():
    assert await PushNotificationProvider().send("device-token-123", "Title", "Body") is True
    assert await InAppProvider(ConnectionRegistry()).send("cust-1", "Title", "Body") is True
    assert InAppProvider(ConnectionRegistry()).channel == NotificationChannel.IN_APP


@pytest.mark.unit
@pytest.mark.asyncio
async def test_in_app_provider_pushes_to_open_connections():
    registry = MagicMock(spec=ConnectionRegistry)
    registry.send_to_user = AsyncMock(return_value=1)

    sent = await InAppProvider(registry).send(
        "cust-1", "Booking confirmed", "See you soon", booking_id="MC1", payload={"status": "confirmed"}
    )

    assert sent is True
    registry.send_to_user.assert_awaited_once_with(
        "cust-1",
        BOOKING_NOTIFICATION,
        {
            "booking_id": "MC1",
            "title": "Booking confirmed",
            "message": "See you soon",
            "payload": {"status": "confirmed"},
        },
    )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_twilio_sms_provider_sends():
    with patch("mekacash.services.notification_service.Client") as mock_client_cls:
        mock_client = mock_client_cls.return_value
        mock_client.messages.create.return_value = MagicMock(sid="SM123")

        provider = TwilioSMSProvider()
        success = await provider.send("+15550100", "Booking confirmed", "See you at 14:30")

    assert success is True
    kwargs = mock_client.messages.create.call_args.kwargs
    assert kwargs["to"] == "+15550100"
    assert kwargs["body"] == "Booking confirmed: See you at 14:30"


@pytest.mark.unit
def test_smtp_provider_requires_credentials():
    with patch("mekacash.services.notification_service.settings") as mock_settings:
        mock_settings.smtp_username = ""
        mock_settings.smtp_password = ""

        with pytest.raises(ValueError):
            SMTPEmailProvider()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_smtp_provider_sends_with_starttls():
    with patch("mekacash.services.notification_service.settings") as mock_settings:
        mock_settings.smtp_host = "smtp.example.com"
        mock_settings.smtp_port = 587
        mock_settings.smtp_username = "bot@example.com"
        mock_settings.smtp_password = "secret"
        mock_settings.smtp_from_email = ""
        mock_settings.smtp_from_name = "MekaCash"
        provider = SMTPEmailProvider()

    with patch("mekacash.services.notification_service.smtplib.SMTP") as mock_smtp:
        server = mock_smtp.return_value.__enter__.return_value
        success = await provider.send("cust@example.com", "Booking confirmed", "See you soon")

    assert success is True
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("bot@example.com", "secret")
    sent = server.send_message.call_args.args[0]
    assert sent["To"] == "cust@example.com"
    assert sent["Subject"] == "MekaCash: Booking confirmed"


@pytest.mark.unit
def test_default_providers_cover_every_channel():
    providers = default_providers()

    assert set(providers) == set(NotificationChannel)
    assert isinstance(providers[NotificationChannel.SMS], ConsoleSMSProvider)


@pytest.mark.unit
class TestDispatcherDelivery:
    """Delivery and retry behaviour; recording the outcome is stubbed out."""

    def _dispatcher(self, providers, **kwargs):
        dispatcher = NotificationDispatcher(
            session_factory=MagicMock(),
            providers=providers,
            max_attempts=3,
            wait=wait_none(),
            **kwargs,
        )
        dispatcher._record_outcome = MagicMock()
        return dispatcher

    @pytest.mark.asyncio
    async def test_successful_delivery(self):
        send = AsyncMock(return_value=True)
        dispatcher = self._dispatcher({NotificationChannel.PUSH: _provider(NotificationChannel.PUSH, send)})

        records = await dispatcher.dispatch([_intent()])

        assert records[0].delivery_status == DeliveryStatus.SENT
        assert records[0].attempts == 1
        assert records[0].sent_at is not None
        send.assert_awaited_once()
        dispatcher._record_outcome.assert_called_once()

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        send = AsyncMock(side_effect=[False, RuntimeError("timeout"), True])
        dispatcher = self._dispatcher({NotificationChannel.PUSH: _provider(NotificationChannel.PUSH, send)})

        records = await dispatcher.dispatch([_intent()])

        assert records[0].delivery_status == DeliveryStatus.SENT
        assert records[0].attempts == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        send = AsyncMock(return_value=False)
        dispatcher = self._dispatcher({NotificationChannel.PUSH: _provider(NotificationChannel.PUSH, send)})

        records = await dispatcher.dispatch([_intent()])

        assert records[0].delivery_status == DeliveryStatus.FAILED
        assert records[0].attempts == 3
        assert records[0].sent_at is None

    @pytest.mark.asyncio
    async def test_missing_provider_marks_failed(self):
        dispatcher = self._dispatcher({})

        records = await dispatcher.dispatch([_intent(channel=NotificationChannel.SMS)])

        assert records[0].delivery_status == DeliveryStatus.FAILED
        assert records[0].attempts == 0

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_others(self):
        send = AsyncMock(side_effect=lambda to, title, message, **kwargs: to != "prov-1")
        dispatcher = self._dispatcher({NotificationChannel.PUSH: _provider(NotificationChannel.PUSH, send)})

        records = await dispatcher.dispatch([_intent(recipient="prov-1"), _intent(recipient="cust-1")])

        assert [r.delivery_status for r in records] == [DeliveryStatus.FAILED, DeliveryStatus.SENT]

    @pytest.mark.asyncio
    async def test_resolve_contact(self):
        send = AsyncMock(return_value=True)
        dispatcher = self._dispatcher(
            {NotificationChannel.SMS: _provider(NotificationChannel.SMS, send)},
            resolve_contact=lambda user_id, channel: "+15550199",
        )

        records = await dispatcher.dispatch([_intent(channel=NotificationChannel.SMS)])

        assert send.await_args.args[0] == "+15550199"
        assert records[0].recipient == "cust-1"

    @pytest.mark.asyncio
    async def test_outcome_recorded_off_the_event_loop(self):
        send = AsyncMock(return_value=True)
        dispatcher = self._dispatcher({NotificationChannel.PUSH: _provider(NotificationChannel.PUSH, send)})
        recorded_on = []
        dispatcher._record_outcome = MagicMock(side_effect=lambda intent, record: recorded_on.append(threading.get_ident()))

        await dispatcher.dispatch([_intent()])

        assert len(recorded_on) == 1
        assert recorded_on[0] != threading.get_ident()
