"""
Service model - bookable services and their rating aggregates.
"""
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, Numeric, Integer, Float, Boolean, JSON, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from mekacash.lib.db import Base


class ServiceCategory(str, enum.Enum):
    """Service category enumeration."""
    CLEANING = "cleaning"
    DELIVERY = "delivery"
    ERRANDS = "errands"
    REPAIR = "repair"
    BEAUTY = "beauty"
    OTHER = "other"


def empty_distribution() -> dict[str, int]:
    return {str(star): 0 for star in range(1, 6)}


class Service(Base):
    """
    Service entity - bookable services.
    Rating fields are folded incrementally from booking reviews.
    """
    __tablename__ = "services"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )

    # Service details
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    category: Mapped[ServiceCategory] = mapped_column(
        SQLEnum(ServiceCategory, name="service_category"),
        nullable=False,
        index=True,
    )
    provider_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    # Pricing and duration
    base_price: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    # Status
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Ratings
    rating_average: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    rating_total: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rating_distribution: Mapped[dict] = mapped_column(
        JSON,
        default=empty_distribution,
        nullable=False,
        comment="Count of reviews per star bucket '1'..'5'",
    )

    # Stats
    total_bookings: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    average_completion_time: Mapped[float] = mapped_column(
        Float,
        default=0.0,
        nullable=False,
        comment="Minutes",
    )

    @property
    def rating_percentage(self) -> float:
        if not self.rating_total:
            return 0.0
        return self.rating_average / 5 * 100

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name={self.name}, rating={self.rating_average})>"
