"""
Unit tests for the JSON log formatter.
"""
import json
import logging

import pytest

from mekacash.lib.logging import JSONFormatter, get_correlation_id, set_correlation_id


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("mekacash.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
def test_formats_extra_fields_as_json():
    output = json.loads(JSONFormatter().format(_record("Booking created", booking_id="MC1", total_amount=12.5)))

    assert output["message"] == "Booking created"
    assert output["level"] == "INFO"
    assert output["booking_id"] == "MC1"
    assert output["total_amount"] == 12.5


@pytest.mark.unit
def test_includes_correlation_id():
    set_correlation_id("req-123")
    try:
        output = json.loads(JSONFormatter().format(_record("hello")))
    finally:
        set_correlation_id(None)

    assert output["correlation_id"] == "req-123"
    assert get_correlation_id() is None


@pytest.mark.unit
def test_non_serializable_values_are_stringified():
    output = json.loads(JSONFormatter().format(_record("hello", details={"when": object()})))

    assert isinstance(output["details"]["when"], str)
