"""
Booking table - one row per booking holding the aggregate document.
"""
from datetime import date, datetime, timezone
from typing import Optional
from uuid import uuid4, UUID

from sqlalchemy import String, Integer, Date, DateTime, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from mekacash.lib.db import Base
from mekacash.models.booking_document import Booking


class BookingRecord(Base):
    """
    Persisted booking.

    The full aggregate lives in `document`; the scalar columns mirror the
    fields bookings are queried by. `version` is checked on every UPDATE so
    a stale writer fails instead of overwriting a newer document.
    """
    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )
    booking_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)

    # Participants (external user ids)
    requester_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    provider_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    runner_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    service_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    # Query columns
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    payment_status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    document: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __mapper_args__ = {"version_id_col": version}

    @classmethod
    def from_domain(cls, booking: Booking) -> "BookingRecord":
        record = cls(booking_id=booking.booking_id, created_at=booking.created_at)
        record.apply(booking)
        return record

    def apply(self, booking: Booking) -> None:
        """Copy the aggregate into this row."""
        self.requester_id = booking.requester
        self.provider_id = booking.provider
        self.runner_id = booking.runner
        self.service_id = booking.service_id
        self.status = booking.status.current.value
        self.payment_status = booking.payment.status.value
        self.scheduled_date = booking.scheduled_date
        self.document = booking.model_dump(mode="json")

    def to_domain(self) -> Booking:
        return Booking.model_validate(self.document)

    def __repr__(self) -> str:
        return f"<BookingRecord(booking_id={self.booking_id}, status={self.status}, version={self.version})>"
