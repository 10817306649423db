"""
Booking service - runs lifecycle operations against stored bookings.

Each call loads the booking, applies one lifecycle function, writes the
document back and commits. Any error rolls the session back so the
status and its history entry are stored together or not at all. The
returned intents are only handed out after the commit.
"""
from contextlib import contextmanager
from datetime import date
from typing import Any, Generator, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from mekacash.lib.logging import get_logger
from mekacash.models.booking_document import (
    Booking,
    BookingStatus,
    Cancellation,
    RefundStatus,
    Review,
    RouteEntry,
)
from mekacash.models.services import Service
from mekacash.services import booking_lifecycle, tracking
from mekacash.services.booking_repository import BookingRepository
from mekacash.services.notification_intents import NotificationIntent, build_intents
from mekacash.services.rating_service import apply_completion_time, apply_rating, replace_rating


logger = get_logger(__name__)

BookingResult = Tuple[Booking, List[NotificationIntent]]


class BookingService:
    """Read-mutate-persist wrapper around services.booking_lifecycle."""

    def __init__(self, db: Session):
        self.db = db
        self.repository = BookingRepository(db)

    @contextmanager
    def _edit(self, booking_id: str) -> Generator[Booking, None, None]:
        try:
            record = self.repository.get_record(booking_id)
            booking = record.to_domain()
            yield booking
            self.repository.save(record, booking)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _find_service(self, service_id: Optional[str]) -> Optional[Service]:
        if not service_id:
            return None
        try:
            key = UUID(service_id)
        except ValueError:
            logger.warning("Booking references a non-UUID service id", extra={"service_id": service_id})
            return None
        return self.db.get(Service, key)

    def create_booking(self, **fields: Any) -> BookingResult:
        """Create and store a pending booking. Accepts booking_lifecycle.create_booking arguments."""
        booking = booking_lifecycle.create_booking(**fields)
        try:
            self.repository.add(booking)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return booking, build_intents(booking, BookingStatus.PENDING.value)

    def get_booking(self, booking_id: str) -> Booking:
        return self.repository.get(booking_id)

    def list_bookings(
        self,
        user_id: str,
        role: str = "customer",
        status: Optional[BookingStatus] = None,
    ) -> List[Booking]:
        if role == "provider":
            return self.repository.list_for_provider(user_id, status)
        if role == "runner":
            return self.repository.list_for_runner(user_id, status)
        return self.repository.list_for_requester(user_id, status)

    def list_scheduled_on(self, day: date) -> List[Booking]:
        return self.repository.list_scheduled_on(day)

    def transition(
        self,
        booking_id: str,
        new_status: Any,
        actor: Optional[str],
        note: Optional[str] = None,
    ) -> BookingResult:
        with self._edit(booking_id) as booking:
            end_was_open = booking.actual_end_time is None
            intents = booking_lifecycle.transition(booking, new_status, actor, note)
            # Fold each booking once, on the completion that closed its work period
            finished_now = end_was_open and booking.actual_end_time is not None
            if finished_now and booking.current_status == BookingStatus.COMPLETED:
                service = self._find_service(booking.service_id)
                if service is not None:
                    apply_completion_time(service, booking.actual_duration_minutes)
        return booking, intents

    def assign_runner(
        self,
        booking_id: str,
        runner: str,
        actor: Optional[str],
        note: Optional[str] = None,
    ) -> BookingResult:
        with self._edit(booking_id) as booking:
            intents = booking_lifecycle.assign_runner(booking, runner, actor, note)
        return booking, intents

    def cancel(
        self,
        booking_id: str,
        cancelled_by: Optional[str],
        reason: Optional[str],
        refund_amount: Optional[float] = 0,
    ) -> BookingResult:
        with self._edit(booking_id) as booking:
            intents = booking_lifecycle.cancel(booking, cancelled_by, reason, refund_amount)
        return booking, intents

    def update_refund_status(self, booking_id: str, refund_status: RefundStatus) -> Tuple[Booking, Cancellation]:
        with self._edit(booking_id) as booking:
            cancellation = booking_lifecycle.update_refund_status(booking, refund_status)
        return booking, cancellation

    def add_message(self, booking_id: str, sender: Optional[str], text: str) -> BookingResult:
        with self._edit(booking_id) as booking:
            intents = booking_lifecycle.add_message(booking, sender, text)
        return booking, intents

    def add_review(
        self,
        booking_id: str,
        rating: Any,
        comment: Optional[str] = None,
        is_public: bool = True,
    ) -> Tuple[Booking, Review]:
        """
        Store the review and fold its rating into the booked service, in one commit.

        A replacement review swaps the earlier rating out of the aggregate.
        """
        with self._edit(booking_id) as booking:
            previous = booking.review
            review = booking_lifecycle.add_review(booking, rating, comment, is_public)
            service = self._find_service(booking.service_id)
            if service is not None and previous is not None:
                replace_rating(service, previous.rating, review.rating)
            elif service is not None:
                apply_rating(service, review.rating)
        return booking, review

    def record_location(
        self,
        booking_id: str,
        latitude: float,
        longitude: float,
        address: Optional[str] = None,
        speed: Optional[float] = None,
        heading: Optional[float] = None,
    ) -> Tuple[Booking, RouteEntry]:
        with self._edit(booking_id) as booking:
            entry = tracking.record_location(booking, latitude, longitude, address, speed, heading)
        return booking, entry

    def mark_arrived(self, booking_id: str) -> Booking:
        with self._edit(booking_id) as booking:
            tracking.mark_arrived(booking)
        return booking

    def raise_dispute(
        self,
        booking_id: str,
        raised_by: Optional[str],
        reason: str,
        evidence: Optional[List[str]] = None,
    ) -> BookingResult:
        with self._edit(booking_id) as booking:
            intents = booking_lifecycle.raise_dispute(booking, raised_by, reason, evidence)
        return booking, intents

    def resolve_dispute(self, booking_id: str, resolved_by: Optional[str], resolution: str) -> BookingResult:
        with self._edit(booking_id) as booking:
            intents = booking_lifecycle.resolve_dispute(booking, resolved_by, resolution)
        return booking, intents
