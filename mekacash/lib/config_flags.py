"""
Configuration flags for the booking lifecycle.

Provides runtime-overridable toggles for:
- Strict status workflow (adjacency table) versus permissive transitions
- Notification intents on new messages
- Idempotent versus rejecting repeated cancellation
"""
from typing import Optional
from pydantic import BaseModel, Field

from mekacash.lib.logging import get_logger


logger = get_logger(__name__)


# Permitted next statuses when strict transitions are enabled
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"confirmed", "cancelled", "failed"}),
    "confirmed": frozenset({"assigned", "in-progress", "cancelled", "failed"}),
    "assigned": frozenset({"in-progress", "cancelled", "failed"}),
    "in-progress": frozenset({"completed", "failed", "cancelled", "disputed"}),
    "completed": frozenset({"disputed"}),
    "cancelled": frozenset({"disputed"}),
    "failed": frozenset({"disputed"}),
    "disputed": frozenset({"completed", "cancelled", "failed"}),
}


class LifecycleFlags(BaseModel):
    """Feature flags for booking lifecycle behaviour."""

    strict_transitions: bool = Field(
        default=False,
        description="Reject status changes not listed in ALLOWED_TRANSITIONS"
    )
    notify_on_message: bool = Field(
        default=False,
        description="Emit notification intents to other participants on new messages"
    )
    idempotent_cancel: bool = Field(
        default=True,
        description="Repeated cancel is a no-op; when False it raises AlreadyCancelled"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "strict_transitions": False,
                "notify_on_message": False,
                "idempotent_cancel": True,
            }
        }
    }


_lifecycle_flags: Optional[LifecycleFlags] = None


def get_lifecycle_flags() -> LifecycleFlags:
    """Get lifecycle flags configuration."""
    global _lifecycle_flags
    if _lifecycle_flags is None:
        _lifecycle_flags = LifecycleFlags()
        logger.info("Initialized default lifecycle flags")
    return _lifecycle_flags


def set_lifecycle_flags(flags: LifecycleFlags) -> None:
    """Override lifecycle flags configuration."""
    global _lifecycle_flags
    _lifecycle_flags = flags
    logger.info("Updated lifecycle flags", extra={
        "strict_transitions": flags.strict_transitions,
        "notify_on_message": flags.notify_on_message,
        "idempotent_cancel": flags.idempotent_cancel,
    })


def is_transition_allowed(current: str, new: str) -> bool:
    """Check a status change against the strict workflow table."""
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


def reset_all_configs() -> None:
    """Reset all configurations to defaults (useful for testing)."""
    global _lifecycle_flags
    _lifecycle_flags = None
    logger.info("Reset all configurations to defaults")
