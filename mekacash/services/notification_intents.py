"""
Notification intents produced by booking lifecycle operations.

An intent describes a notification to send; it is not sent here. Intents
are handed to the NotificationDispatcher only after the booking change is
committed, and a failed delivery never undoes that change.
"""
from datetime import datetime
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, Field

from mekacash.lib.settings import settings
from mekacash.models.booking_document import Booking, NotificationChannel, utcnow


# (title, message) templates; formatted with the booking's public snapshot
SUBJECT_TEMPLATES: dict[str, tuple[str, str]] = {
    "pending": (
        "Booking received",
        "Booking {booking_id} has been received and is awaiting confirmation.",
    ),
    "confirmed": (
        "Booking confirmed",
        "Booking {booking_id} for {scheduled_date} at {scheduled_time} is confirmed.",
    ),
    "assigned": (
        "Runner assigned",
        "A runner has been assigned to booking {booking_id}.",
    ),
    "in-progress": (
        "Booking in progress",
        "Work on booking {booking_id} has started.",
    ),
    "completed": (
        "Booking completed",
        "Booking {booking_id} is complete. Total: {total_amount} {currency}.",
    ),
    "cancelled": (
        "Booking cancelled",
        "Booking {booking_id} has been cancelled.",
    ),
    "failed": (
        "Booking failed",
        "Booking {booking_id} could not be completed.",
    ),
    "disputed": (
        "Booking disputed",
        "Booking {booking_id} has been marked as disputed.",
    ),
    "dispute_raised": (
        "Dispute opened",
        "A dispute has been opened on booking {booking_id}.",
    ),
    "dispute_resolved": (
        "Dispute resolved",
        "The dispute on booking {booking_id} has been resolved.",
    ),
    "new_message": (
        "New message",
        "You have a new message about booking {booking_id}.",
    ),
}


class NotificationIntent(BaseModel):
    """A notification the dispatcher should deliver to one participant."""

    recipient_id: str
    channel: NotificationChannel
    title: str
    message: str
    booking_id: str
    created_at: datetime = Field(default_factory=utcnow)
    payload: dict[str, Any] = Field(default_factory=dict)


def default_channel() -> NotificationChannel:
    return NotificationChannel(settings.notification_channel)


def render_subject(template_key: str, snapshot: dict[str, Any]) -> tuple[str, str]:
    title, message = SUBJECT_TEMPLATES[template_key]
    return title, message.format(**snapshot)


def build_intents(
    booking: Booking,
    template_key: str,
    exclude: Optional[Iterable[str]] = None,
    channel: Optional[NotificationChannel] = None,
) -> List[NotificationIntent]:
    """
    Build one intent per distinct participant of the booking.

    Args:
        booking: Booking after the change was applied
        template_key: Key into SUBJECT_TEMPLATES
        exclude: Participant ids that should not be notified
        channel: Delivery channel; defaults to settings.notification_channel
    """
    excluded = set(exclude or ())
    snapshot = booking.public_snapshot()
    title, message = render_subject(template_key, snapshot)
    channel = channel or default_channel()

    return [
        NotificationIntent(
            recipient_id=recipient,
            channel=channel,
            title=title,
            message=message,
            booking_id=booking.booking_id,
            payload=dict(snapshot),
        )
        for recipient in booking.participants()
        if recipient not in excluded
    ]
