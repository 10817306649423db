"""
Booking persistence.

Each booking is one row whose `document` column holds the aggregate, so a
status change and its history entry are written in a single UPDATE. The
row's version column turns a write based on a stale read into a
ConflictException.
"""
from datetime import date
from typing import List, Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from mekacash.api.middleware.error_handler import ConflictException, NotFoundException
from mekacash.lib.logging import get_logger
from mekacash.models.booking_document import Booking, BookingStatus
from mekacash.models.bookings import BookingRecord


logger = get_logger(__name__)


class BookingRepository:
    """Load and store booking aggregates."""

    def __init__(self, db: Session):
        self.db = db

    def add(self, booking: Booking) -> BookingRecord:
        record = BookingRecord.from_domain(booking)
        self.db.add(record)
        self.db.flush()
        return record

    def get_record(self, booking_id: str) -> BookingRecord:
        """
        Load the row for a booking.

        Raises:
            NotFoundException: No booking with this id
        """
        stmt = (
            select(BookingRecord)
            .where(BookingRecord.booking_id == booking_id)
            .execution_options(populate_existing=True)
        )
        record = self.db.execute(stmt).scalar_one_or_none()
        if record is None:
            raise NotFoundException("Booking", booking_id)
        return record

    def get(self, booking_id: str) -> Booking:
        return self.get_record(booking_id).to_domain()

    def save(self, record: BookingRecord, booking: Booking) -> BookingRecord:
        """
        Write the aggregate back to its row.

        Raises:
            ConflictException: The row changed since `record` was loaded
        """
        record.apply(booking)
        try:
            self.db.flush()
        except StaleDataError as e:
            logger.warning(
                "Concurrent booking update detected",
                extra={"booking_id": booking.booking_id, "version": record.version},
            )
            raise ConflictException(
                f"Booking '{booking.booking_id}' was modified concurrently",
                details={"booking_id": booking.booking_id},
            ) from e
        return record

    def _list(self, column, user_id: str, status: Optional[Union[BookingStatus, str]]) -> List[Booking]:
        stmt = select(BookingRecord).where(column == user_id)
        if status:
            stmt = stmt.where(BookingRecord.status == BookingStatus(status).value)
        stmt = stmt.order_by(BookingRecord.created_at.desc())
        return [record.to_domain() for record in self.db.execute(stmt).scalars().all()]

    def list_for_requester(self, user_id: str, status: Optional[Union[BookingStatus, str]] = None) -> List[Booking]:
        """Bookings made by a user, newest first."""
        return self._list(BookingRecord.requester_id, user_id, status)

    def list_for_provider(self, user_id: str, status: Optional[Union[BookingStatus, str]] = None) -> List[Booking]:
        """Bookings served by a provider, newest first."""
        return self._list(BookingRecord.provider_id, user_id, status)

    def list_for_runner(self, user_id: str, status: Optional[Union[BookingStatus, str]] = None) -> List[Booking]:
        return self._list(BookingRecord.runner_id, user_id, status)

    def list_scheduled_on(self, day: date) -> List[Booking]:
        """Bookings scheduled for a given day."""
        stmt = (
            select(BookingRecord)
            .where(BookingRecord.scheduled_date == day)
            .order_by(BookingRecord.created_at.desc())
        )
        return [record.to_domain() for record in self.db.execute(stmt).scalars().all()]
