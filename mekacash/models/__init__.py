"""
SQLAlchemy models package.
Import all models here to ensure they're registered with Base.metadata.
"""
from mekacash.models.bookings import BookingRecord
from mekacash.models.services import Service, ServiceCategory

__all__ = [
    "BookingRecord",
    "Service",
    "ServiceCategory",
]
