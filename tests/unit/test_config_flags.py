"""
Unit tests for lifecycle configuration flags.
"""
import pytest

from mekacash.lib.config_flags import (
    ALLOWED_TRANSITIONS,
    LifecycleFlags,
    get_lifecycle_flags,
    is_transition_allowed,
    reset_all_configs,
    set_lifecycle_flags,
)
from mekacash.models.booking_document import BookingStatus


@pytest.mark.unit
class TestLifecycleFlags:
    """Test lifecycle flag defaults and overrides."""

    def test_defaults(self):
        flags = get_lifecycle_flags()

        assert flags.strict_transitions is False
        assert flags.notify_on_message is False
        assert flags.idempotent_cancel is True

    def test_override(self):
        set_lifecycle_flags(LifecycleFlags(strict_transitions=True, notify_on_message=True))

        flags = get_lifecycle_flags()
        assert flags.strict_transitions is True
        assert flags.notify_on_message is True

    def test_reset(self):
        set_lifecycle_flags(LifecycleFlags(idempotent_cancel=False))

        reset_all_configs()

        assert get_lifecycle_flags().idempotent_cancel is True


@pytest.mark.unit
class TestAllowedTransitions:

    def test_table_covers_every_status(self):
        assert set(ALLOWED_TRANSITIONS) == {s.value for s in BookingStatus}
        for targets in ALLOWED_TRANSITIONS.values():
            assert targets <= {s.value for s in BookingStatus}

    def test_main_path_allowed(self):
        assert is_transition_allowed("pending", "confirmed")
        assert is_transition_allowed("confirmed", "assigned")
        assert is_transition_allowed("assigned", "in-progress")
        assert is_transition_allowed("in-progress", "completed")

    def test_skips_rejected(self):
        assert not is_transition_allowed("pending", "completed")
        assert not is_transition_allowed("completed", "pending")

    def test_unknown_current_status(self):
        assert not is_transition_allowed("archived", "pending")
