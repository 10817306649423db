"""
Tests for error handler middleware and booking exceptions.
"""
import pytest
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from pydantic import BaseModel, Field

from mekacash.api.middleware.error_handler import (
    AlreadyCancelledException,
    AppException,
    ConflictException,
    DisputeAlreadyOpenException,
    InvalidCoordinatesException,
    InvalidRatingException,
    InvalidStatusException,
    InvalidTransitionException,
    MissingActorException,
    NoCancellationException,
    NoOpenDisputeException,
    NotFoundException,
    app_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)


@pytest.mark.unit
def test_not_found_exception():
    """Test NotFoundException creation."""
    exc = NotFoundException("Booking", "MC123456ABCDE")

    assert exc.message == "Booking with id 'MC123456ABCDE' not found"
    assert exc.status_code == 404
    assert exc.details["resource"] == "Booking"


@pytest.mark.unit
def test_invalid_status_exception():
    exc = InvalidStatusException("teleported")

    assert exc.status_code == 400
    assert exc.details == {"status": "teleported"}


@pytest.mark.unit
def test_missing_actor_exception():
    exc = MissingActorException("cancel")

    assert exc.status_code == 400
    assert "cancel" in exc.message


@pytest.mark.unit
def test_validation_style_exceptions():
    rating = InvalidRatingException(7)
    coordinates = InvalidCoordinatesException(95, 10)

    assert rating.status_code == 422
    assert rating.details["errors"] == {"rating": "7"}
    assert coordinates.status_code == 422
    assert coordinates.details["errors"]["latitude"] == "95"


@pytest.mark.unit
@pytest.mark.parametrize(
    "exc",
    [
        InvalidTransitionException("pending", "completed"),
        AlreadyCancelledException("MC1"),
        DisputeAlreadyOpenException("MC1"),
        NoOpenDisputeException("MC1"),
        NoCancellationException("MC1"),
    ],
)
def test_state_conflicts_are_409(exc):
    assert isinstance(exc, ConflictException)
    assert exc.status_code == 409


@pytest.mark.integration
def test_app_exception_handler_in_route():
    """Test custom exception handler in actual route."""
    app = FastAPI()
    app.add_exception_handler(AppException, app_exception_handler)

    @app.get("/test-error")
    async def test_error(request: Request):
        request.state.correlation_id = "corr-42"
        raise DisputeAlreadyOpenException("MC999999ZZZZZ")

    client = TestClient(app)
    response = client.get("/test-error")

    assert response.status_code == 409
    data = response.json()
    assert "already has an open dispute" in data["error"]
    assert data["correlation_id"] == "corr-42"
    assert data["details"] == {"booking_id": "MC999999ZZZZZ"}


@pytest.mark.integration
def test_validation_error_handler():
    """Test Pydantic validation error handler."""
    app = FastAPI()
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    class ReviewBody(BaseModel):
        rating: float = Field(..., ge=1, le=5)

    @app.post("/test-validation")
    async def test_validation(data: ReviewBody):
        return {"ok": True}

    client = TestClient(app)
    response = client.post("/test-validation", json={"rating": 9})

    assert response.status_code == 422
    data = response.json()
    assert data["error"] == "Validation error"
    assert data["details"]["errors"][0]["loc"] == ["body", "rating"]


@pytest.mark.integration
def test_unhandled_exception_handler():
    """Test handler for unhandled exceptions."""
    app = FastAPI()
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get("/test-unhandled")
    async def test_unhandled():
        raise ValueError("Unexpected error")

    client = TestClient(app, raise_server_exceptions=False)
    response = client.get("/test-unhandled")

    assert response.status_code == 500
    assert response.json()["error"] == "Internal server error"
