"""
Location tracking for bookings in the field.
"""
from datetime import datetime
from typing import Optional

from mekacash.api.middleware.error_handler import InvalidCoordinatesException
from mekacash.lib.logging import get_logger
from mekacash.models.booking_document import (
    Booking,
    Coordinates,
    LocationSnapshot,
    RouteEntry,
    utcnow,
)


logger = get_logger(__name__)


def record_location(
    booking: Booking,
    latitude: float,
    longitude: float,
    address: Optional[str] = None,
    speed: Optional[float] = None,
    heading: Optional[float] = None,
) -> RouteEntry:
    """
    Update the current location and append one route entry.

    Route entries are only ever appended. Arrival estimates are not
    derived here.

    Raises:
        InvalidCoordinatesException: latitude outside [-90, 90] or longitude outside [-180, 180]
    """
    if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
        raise InvalidCoordinatesException(latitude, longitude)

    now = utcnow()
    coordinates = Coordinates(latitude=latitude, longitude=longitude)
    booking.tracking.current_location = LocationSnapshot(
        coordinates=coordinates,
        timestamp=now,
        address=address,
    )
    entry = RouteEntry(coordinates=coordinates, timestamp=now, speed=speed, heading=heading)
    booking.tracking.route.append(entry)
    booking.updated_at = now

    logger.debug(
        "Location recorded",
        extra={"booking_id": booking.booking_id, "route_length": len(booking.tracking.route)},
    )
    return entry


def mark_arrived(booking: Booking) -> datetime:
    """Set the actual arrival time the first time it is called."""
    if booking.tracking.actual_arrival is None:
        booking.tracking.actual_arrival = utcnow()
        booking.updated_at = booking.tracking.actual_arrival
        logger.info("Arrival recorded", extra={"booking_id": booking.booking_id})
    return booking.tracking.actual_arrival
