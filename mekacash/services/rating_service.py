"""
Service rating aggregation.

Folds booking reviews into the service's running average and star
histogram, and completed bookings into its average completion time.
"""
import math

from mekacash.lib.logging import get_logger
from mekacash.models.services import Service, empty_distribution


logger = get_logger(__name__)


def apply_rating(service: Service, rating: float) -> Service:
    """
    Add one rating to the service aggregate.

    new_average = (old_average * old_count + rating) / (old_count + 1)
    The histogram bucket is floor(rating), so 4.5 counts towards "4".
    """
    old_total = service.rating_total or 0
    old_average = service.rating_average or 0.0

    service.rating_total = old_total + 1
    service.rating_average = (old_average * old_total + rating) / service.rating_total

    # Assign a new dict so the JSON column is flagged as changed
    distribution = dict(service.rating_distribution or empty_distribution())
    bucket = str(math.floor(rating))
    if bucket in distribution:
        distribution[bucket] += 1
    service.rating_distribution = distribution

    logger.info(
        "Service rating updated",
        extra={
            "service_id": str(service.id),
            "rating_average": service.rating_average,
            "rating_total": service.rating_total,
        },
    )
    return service


def apply_completion_time(service: Service, minutes: float) -> Service:
    """Fold one completed booking's duration into the average completion time."""
    old_total = service.total_bookings or 0
    old_average = service.average_completion_time or 0.0

    service.average_completion_time = (old_average * old_total + minutes) / (old_total + 1)
    service.total_bookings = old_total + 1
    return service


def replace_rating(service: Service, old_rating: float, new_rating: float) -> Service:
    """
    Swap one booking's earlier rating for its replacement.

    The rating count stays the same:
    new_average = (old_average * count - old_rating + new_rating) / count
    """
    total = service.rating_total or 0
    if total == 0:
        # The earlier rating was never folded in
        return apply_rating(service, new_rating)

    old_average = service.rating_average or 0.0
    service.rating_average = (old_average * total - old_rating + new_rating) / total

    distribution = dict(service.rating_distribution or empty_distribution())
    old_bucket = str(math.floor(old_rating))
    new_bucket = str(math.floor(new_rating))
    if distribution.get(old_bucket, 0) > 0:
        distribution[old_bucket] -= 1
    if new_bucket in distribution:
        distribution[new_bucket] += 1
    service.rating_distribution = distribution

    logger.info(
        "Service rating replaced",
        extra={
            "service_id": str(service.id),
            "rating_average": service.rating_average,
            "rating_total": service.rating_total,
        },
    )
    return service
