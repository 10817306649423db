"""
Booking lifecycle - status changes, cancellation, disputes, messages and reviews.

Every function here mutates a Booking in memory and returns the
notification intents the change produced. Nothing is persisted or sent;
BookingService wraps these calls in a read-mutate-persist cycle.

Status changes are permissive by default: any status may follow any other.
Enable LifecycleFlags.strict_transitions to enforce ALLOWED_TRANSITIONS.
"""
from datetime import date, datetime
from numbers import Real
from typing import Any, List, Optional

from mekacash.api.middleware.error_handler import (
    AlreadyCancelledException,
    DisputeAlreadyOpenException,
    InvalidRatingException,
    InvalidRefundException,
    InvalidStatusException,
    InvalidTransitionException,
    MissingActorException,
    NoCancellationException,
    NoOpenDisputeException,
    ValidationException,
)
from mekacash.lib.config_flags import get_lifecycle_flags, is_transition_allowed
from mekacash.lib.logging import get_logger
from mekacash.lib.settings import settings
from mekacash.models.booking_document import (
    Booking,
    BookingMetadata,
    BookingStatus,
    Cancellation,
    Discount,
    Dispute,
    Location,
    Message,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Pricing,
    RefundStatus,
    Review,
    ServiceDetails,
    StatusEntry,
    StatusLog,
    Surcharge,
    generate_booking_id,
    utcnow,
)
from mekacash.services.notification_intents import NotificationIntent, build_intents


logger = get_logger(__name__)


def parse_status(value: Any) -> BookingStatus:
    """Coerce a raw value to BookingStatus or raise InvalidStatusException."""
    if isinstance(value, BookingStatus):
        return value
    try:
        return BookingStatus(value)
    except (ValueError, TypeError):
        raise InvalidStatusException(value)


def _require_actor(actor: Optional[str], operation: str) -> str:
    if not actor:
        raise MissingActorException(operation)
    return actor


def _next_timestamp(booking: Booking) -> datetime:
    """Current time, never earlier than the last history entry."""
    now = utcnow()
    if booking.status.history and booking.status.history[-1].timestamp > now:
        return booking.status.history[-1].timestamp
    return now


def _append_status(
    booking: Booking,
    status: BookingStatus,
    actor: str,
    note: Optional[str],
) -> StatusEntry:
    entry = StatusEntry(
        status=status,
        timestamp=_next_timestamp(booking),
        actor=actor,
        note=note,
    )
    previous = booking.status.current
    booking.status.history.append(entry)
    booking.status.current = status
    booking.updated_at = entry.timestamp

    # Start and end times are set once
    if status == BookingStatus.IN_PROGRESS and booking.actual_start_time is None:
        booking.actual_start_time = entry.timestamp
    if (
        previous == BookingStatus.IN_PROGRESS
        and status != BookingStatus.IN_PROGRESS
        and booking.actual_end_time is None
    ):
        booking.actual_end_time = entry.timestamp
    return entry


def create_booking(
    requester: str,
    provider: str,
    scheduled_date: date,
    scheduled_time: str,
    estimated_duration: int,
    base_price: float,
    payment_method: PaymentMethod,
    surcharges: Optional[List[Surcharge]] = None,
    discounts: Optional[List[Discount]] = None,
    tax: float = 0.0,
    currency: Optional[str] = None,
    service_id: Optional[str] = None,
    runner: Optional[str] = None,
    pickup_location: Optional[Location] = None,
    delivery_location: Optional[Location] = None,
    service_details: Optional[ServiceDetails] = None,
    metadata: Optional[BookingMetadata] = None,
    note: Optional[str] = None,
) -> Booking:
    """
    Create a pending booking with its price snapshot and first history entry.

    The booking id is generated here, once; it is never reassigned.
    """
    _require_actor(requester, "create_booking")
    surcharges = surcharges or []
    discounts = discounts or []

    pricing = Pricing(
        base_price=base_price,
        surcharges=surcharges,
        discounts=discounts,
        tax=tax,
        total_amount=Pricing.compute_total(base_price, surcharges, discounts, tax),
        currency=currency or settings.default_currency,
    )
    now = utcnow()
    booking = Booking(
        booking_id=generate_booking_id(settings.booking_id_prefix),
        requester=requester,
        provider=provider,
        runner=runner,
        service_id=service_id,
        scheduled_date=scheduled_date,
        scheduled_time=scheduled_time,
        estimated_duration=estimated_duration,
        pickup_location=pickup_location,
        delivery_location=delivery_location,
        service_details=service_details or ServiceDetails(),
        pricing=pricing,
        payment=Payment(method=payment_method),
        status=StatusLog(
            current=BookingStatus.PENDING,
            history=[StatusEntry(status=BookingStatus.PENDING, timestamp=now, actor=requester, note=note)],
        ),
        metadata=metadata or BookingMetadata(),
        created_at=now,
        updated_at=now,
    )

    logger.info(
        "Booking created",
        extra={
            "booking_id": booking.booking_id,
            "requester": requester,
            "provider": provider,
            "total_amount": pricing.total_amount,
        },
    )
    return booking


def transition(
    booking: Booking,
    new_status: Any,
    actor: Optional[str],
    note: Optional[str] = None,
) -> List[NotificationIntent]:
    """
    Move a booking to a new status and record it in the history.

    Args:
        booking: Booking to change
        new_status: Target status (BookingStatus or its string value)
        actor: Participant making the change; authorization is checked upstream
        note: Optional note stored on the history entry

    Returns:
        One notification intent per participant

    Raises:
        InvalidStatusException: Unknown status; the booking is left untouched
        MissingActorException: No actor given
        InvalidTransitionException: Strict transitions enabled and the move is not allowed
    """
    status = parse_status(new_status)
    actor = _require_actor(actor, "transition")
    previous = booking.status.current

    if get_lifecycle_flags().strict_transitions and not is_transition_allowed(previous.value, status.value):
        raise InvalidTransitionException(previous.value, status.value)

    _append_status(booking, status, actor, note)

    logger.info(
        "Booking status changed",
        extra={
            "booking_id": booking.booking_id,
            "from_status": previous.value,
            "to_status": status.value,
            "actor": actor,
        },
    )
    return build_intents(booking, status.value)


def assign_runner(
    booking: Booking,
    runner: str,
    actor: Optional[str],
    note: Optional[str] = None,
) -> List[NotificationIntent]:
    """Attach a runner and move the booking to `assigned`."""
    if not runner:
        raise ValidationException("Runner id is required", errors={"runner": runner})
    booking.runner = runner
    return transition(booking, BookingStatus.ASSIGNED, actor, note)


def cancel(
    booking: Booking,
    cancelled_by: Optional[str],
    reason: Optional[str],
    refund_amount: Optional[float] = 0,
) -> List[NotificationIntent]:
    """
    Cancel a booking.

    A refund of zero is recorded as already completed; a positive refund
    starts as pending. Passing refund_amount=None refunds the full total
    when the payment has been settled, and nothing otherwise.

    While the booking stays cancelled the first cancellation wins. Repeating
    it returns no intents and leaves the record unchanged, or raises
    AlreadyCancelledException when LifecycleFlags.idempotent_cancel is off.
    A booking moved to `cancelled` by a plain status change gets its record
    here without a second history entry. A booking reopened after a
    cancellation is moved back to `cancelled`, but its first record is kept
    since only the refund status of a cancellation may change.
    """
    actor = _require_actor(cancelled_by, "cancel")
    already_cancelled = booking.status.current == BookingStatus.CANCELLED

    if already_cancelled and not get_lifecycle_flags().idempotent_cancel:
        raise AlreadyCancelledException(booking.booking_id)
    if already_cancelled and booking.cancellation is not None:
        logger.info(
            "Booking already cancelled, ignoring repeat cancel",
            extra={"booking_id": booking.booking_id, "actor": actor},
        )
        return []

    if refund_amount is None:
        refund_amount = booking.pricing.total_amount if booking.payment.status == PaymentStatus.PAID else 0.0
    if refund_amount < 0:
        raise InvalidRefundException(refund_amount)

    if already_cancelled:
        cancelled_at = booking.status.history[-1].timestamp
    else:
        cancelled_at = _append_status(booking, BookingStatus.CANCELLED, actor, reason).timestamp
    if booking.cancellation is None:
        booking.cancellation = Cancellation(
            cancelled_by=actor,
            cancelled_at=cancelled_at,
            reason=reason,
            refund_amount=refund_amount,
            refund_status=RefundStatus.PENDING if refund_amount > 0 else RefundStatus.COMPLETED,
        )

    logger.info(
        "Booking cancelled",
        extra={
            "booking_id": booking.booking_id,
            "actor": actor,
            "refund_amount": refund_amount,
        },
    )
    if already_cancelled:
        # Participants were notified by the status change itself
        return []
    return build_intents(booking, "cancelled")


def update_refund_status(booking: Booking, refund_status: RefundStatus) -> Cancellation:
    """Update the refund progress, the only mutable part of a cancellation."""
    if booking.cancellation is None:
        raise NoCancellationException(booking.booking_id)
    booking.cancellation.refund_status = RefundStatus(refund_status)
    booking.updated_at = utcnow()
    return booking.cancellation


def add_message(booking: Booking, sender: Optional[str], text: str) -> List[NotificationIntent]:
    """
    Append a message to the booking thread.

    Returns intents for the other participants only when
    LifecycleFlags.notify_on_message is enabled.
    """
    sender = _require_actor(sender, "add_message")
    if not text or not text.strip():
        raise ValidationException("Message text cannot be empty", errors={"text": "empty"})

    now = utcnow()
    booking.messages.append(Message(sender=sender, text=text, timestamp=now, is_read=False))
    booking.updated_at = now

    if get_lifecycle_flags().notify_on_message:
        return build_intents(booking, "new_message", exclude=[sender])
    return []


def add_review(
    booking: Booking,
    rating: Any,
    comment: Optional[str] = None,
    is_public: bool = True,
) -> Review:
    """
    Set the booking review. A booking has at most one review; submitting
    again replaces the previous one.

    Raises:
        InvalidRatingException: rating is not a number in [1, 5]
    """
    if isinstance(rating, bool) or not isinstance(rating, Real) or not 1 <= rating <= 5:
        raise InvalidRatingException(rating)

    now = utcnow()
    booking.review = Review(rating=float(rating), comment=comment, submitted_at=now, is_public=is_public)
    booking.updated_at = now

    logger.info(
        "Review submitted",
        extra={"booking_id": booking.booking_id, "rating": rating},
    )
    return booking.review


def raise_dispute(
    booking: Booking,
    raised_by: Optional[str],
    reason: str,
    evidence: Optional[List[str]] = None,
) -> List[NotificationIntent]:
    """
    Open a dispute. The booking status is left as it is, so a completed
    booking can be completed and disputed at the same time.
    """
    actor = _require_actor(raised_by, "raise_dispute")
    if booking.dispute is not None and not booking.dispute.is_resolved:
        raise DisputeAlreadyOpenException(booking.booking_id)

    now = utcnow()
    booking.dispute = Dispute(
        reason=reason,
        evidence=list(evidence or []),
        raised_by=actor,
        raised_at=now,
    )
    booking.updated_at = now

    logger.info(
        "Dispute raised",
        extra={"booking_id": booking.booking_id, "actor": actor},
    )
    return build_intents(booking, "dispute_raised")


def resolve_dispute(
    booking: Booking,
    resolved_by: Optional[str],
    resolution: str,
) -> List[NotificationIntent]:
    """Record the outcome of the open dispute without changing the status."""
    actor = _require_actor(resolved_by, "resolve_dispute")
    if booking.dispute is None or booking.dispute.is_resolved:
        raise NoOpenDisputeException(booking.booking_id)

    now = utcnow()
    booking.dispute.resolution = resolution
    booking.dispute.resolved_by = actor
    booking.dispute.resolved_at = now
    booking.updated_at = now

    logger.info(
        "Dispute resolved",
        extra={"booking_id": booking.booking_id, "actor": actor},
    )
    return build_intents(booking, "dispute_resolved")
