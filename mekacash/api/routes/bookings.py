"""
Bookings API routes.

Mutating endpoints commit the booking first and then queue the resulting
notification intents as a background task, so the response never waits
on delivery. New messages and runner locations are relayed the same way
to participants with an open realtime connection.
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from pydantic import BaseModel, Field

from mekacash.api.dependencies import (
    Actor,
    get_booking_service,
    get_connection_registry,
    get_current_actor,
    get_notification_dispatcher,
)
from mekacash.api.middleware.error_handler import ForbiddenException
from mekacash.lib.logging import get_logger
from mekacash.models.booking_document import (
    Booking,
    BookingMetadata,
    BookingStatus,
    Cancellation,
    Discount,
    Location,
    PaymentMethod,
    RefundStatus,
    Review,
    RouteEntry,
    ServiceDetails,
    Surcharge,
)
from mekacash.services.booking_service import BookingService
from mekacash.services.notification_intents import NotificationIntent
from mekacash.services.notification_service import NotificationDispatcher
from mekacash.services.realtime import (
    NEW_MESSAGE,
    RUNNER_LOCATION_UPDATED,
    ConnectionRegistry,
    location_event,
    message_event,
)


logger = get_logger(__name__)
router = APIRouter(prefix="/bookings", tags=["bookings"])


# Request schemas
class CreateBookingRequest(BaseModel):
    """New booking; the caller becomes the requester."""
    provider_id: str
    service_id: Optional[str] = None
    runner_id: Optional[str] = None
    scheduled_date: date
    scheduled_time: str = Field(..., examples=["14:30"])
    estimated_duration: int = Field(..., gt=0, description="Minutes")
    base_price: float = Field(..., ge=0)
    surcharges: List[Surcharge] = Field(default_factory=list)
    discounts: List[Discount] = Field(default_factory=list)
    tax: float = Field(default=0.0, ge=0)
    currency: Optional[str] = None
    payment_method: PaymentMethod
    pickup_location: Optional[Location] = None
    delivery_location: Optional[Location] = None
    service_details: Optional[ServiceDetails] = None
    metadata: Optional[BookingMetadata] = None
    note: Optional[str] = None


class StatusChangeRequest(BaseModel):
    # Plain string so unknown values reach the lifecycle and fail as InvalidStatus
    status: str
    note: Optional[str] = None


class AssignRunnerRequest(BaseModel):
    runner_id: str
    note: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None
    refund_amount: Optional[float] = Field(
        default=0,
        description="Amount to refund; null refunds the full total when already paid",
    )


class RefundStatusRequest(BaseModel):
    refund_status: RefundStatus


class MessageRequest(BaseModel):
    text: str


class ReviewRequest(BaseModel):
    rating: float
    comment: Optional[str] = None
    is_public: bool = True


class LocationRequest(BaseModel):
    latitude: float
    longitude: float
    address: Optional[str] = None
    speed: Optional[float] = None
    heading: Optional[float] = None


class DisputeRequest(BaseModel):
    reason: str
    evidence: List[str] = Field(default_factory=list)


class ResolveDisputeRequest(BaseModel):
    resolution: str


# Response schemas
class BookingActionResponse(BaseModel):
    booking: Booking
    notifications_queued: int = 0


class CancellationResponse(BaseModel):
    booking_id: str
    cancellation: Cancellation


class ReviewResponse(BaseModel):
    booking_id: str
    review: Review


class TrackingResponse(BaseModel):
    booking_id: str
    entry: RouteEntry
    route_length: int


def _ensure_participant(booking: Booking, actor: Actor) -> None:
    if not actor.is_admin and actor.user_id not in booking.participants():
        raise ForbiddenException("Not a participant of this booking")


def _queue(
    background_tasks: BackgroundTasks,
    dispatcher: NotificationDispatcher,
    intents: List[NotificationIntent],
) -> int:
    if intents:
        background_tasks.add_task(dispatcher.dispatch, intents)
    return len(intents)


@router.post("", response_model=BookingActionResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    request: CreateBookingRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> BookingActionResponse:
    """Create a pending booking for the caller."""
    booking, intents = service.create_booking(
        requester=actor.user_id,
        provider=request.provider_id,
        runner=request.runner_id,
        service_id=request.service_id,
        scheduled_date=request.scheduled_date,
        scheduled_time=request.scheduled_time,
        estimated_duration=request.estimated_duration,
        base_price=request.base_price,
        surcharges=request.surcharges,
        discounts=request.discounts,
        tax=request.tax,
        currency=request.currency,
        payment_method=request.payment_method,
        pickup_location=request.pickup_location,
        delivery_location=request.delivery_location,
        service_details=request.service_details,
        metadata=request.metadata,
        note=request.note,
    )
    queued = _queue(background_tasks, dispatcher, intents)
    return BookingActionResponse(booking=booking, notifications_queued=queued)


@router.get("", response_model=List[Booking])
def list_my_bookings(
    role: str = Query("customer", pattern="^(customer|provider|runner)$"),
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> List[Booking]:
    """List the caller's bookings, newest first."""
    return service.list_bookings(actor.user_id, role=role, status=status_filter)


@router.get("/scheduled", response_model=List[Booking])
def list_scheduled(
    day: Optional[date] = Query(None, description="Defaults to today"),
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> List[Booking]:
    """Bookings scheduled on a day (admin only)."""
    if not actor.is_admin:
        raise ForbiddenException("Admin access required")
    return service.list_scheduled_on(day or date.today())


@router.get("/{booking_id}", response_model=Booking)
def get_booking(
    booking_id: str,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> Booking:
    booking = service.get_booking(booking_id)
    _ensure_participant(booking, actor)
    return booking


@router.post("/{booking_id}/status", response_model=BookingActionResponse)
def change_status(
    booking_id: str,
    request: StatusChangeRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> BookingActionResponse:
    """Move a booking to a new status."""
    _ensure_participant(service.get_booking(booking_id), actor)
    booking, intents = service.transition(booking_id, request.status, actor.user_id, request.note)
    queued = _queue(background_tasks, dispatcher, intents)
    return BookingActionResponse(booking=booking, notifications_queued=queued)


@router.post("/{booking_id}/runner", response_model=BookingActionResponse)
def assign_runner(
    booking_id: str,
    request: AssignRunnerRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> BookingActionResponse:
    _ensure_participant(service.get_booking(booking_id), actor)
    booking, intents = service.assign_runner(booking_id, request.runner_id, actor.user_id, request.note)
    queued = _queue(background_tasks, dispatcher, intents)
    return BookingActionResponse(booking=booking, notifications_queued=queued)


@router.post("/{booking_id}/cancel", response_model=BookingActionResponse)
def cancel_booking(
    booking_id: str,
    request: CancelRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> BookingActionResponse:
    """Cancel a booking. Repeating the call returns the booking unchanged."""
    _ensure_participant(service.get_booking(booking_id), actor)
    booking, intents = service.cancel(booking_id, actor.user_id, request.reason, request.refund_amount)
    queued = _queue(background_tasks, dispatcher, intents)
    return BookingActionResponse(booking=booking, notifications_queued=queued)


@router.patch("/{booking_id}/cancellation/refund", response_model=CancellationResponse)
def update_refund_status(
    booking_id: str,
    request: RefundStatusRequest,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> CancellationResponse:
    """Record refund progress (admin only)."""
    if not actor.is_admin:
        raise ForbiddenException("Admin access required")
    booking, cancellation = service.update_refund_status(booking_id, request.refund_status)
    return CancellationResponse(booking_id=booking.booking_id, cancellation=cancellation)


@router.post("/{booking_id}/messages", response_model=BookingActionResponse, status_code=status.HTTP_201_CREATED)
def add_message(
    booking_id: str,
    request: MessageRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    registry: ConnectionRegistry = Depends(get_connection_registry),
) -> BookingActionResponse:
    _ensure_participant(service.get_booking(booking_id), actor)
    booking, intents = service.add_message(booking_id, actor.user_id, request.text)
    others = [p for p in booking.participants() if p != actor.user_id]
    background_tasks.add_task(registry.broadcast, others, NEW_MESSAGE, message_event(booking, booking.messages[-1]))
    queued = _queue(background_tasks, dispatcher, intents)
    return BookingActionResponse(booking=booking, notifications_queued=queued)


@router.post("/{booking_id}/review", response_model=ReviewResponse)
def add_review(
    booking_id: str,
    request: ReviewRequest,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> ReviewResponse:
    """Submit or replace the booking review (requester only)."""
    current = service.get_booking(booking_id)
    if actor.user_id != current.requester and not actor.is_admin:
        raise ForbiddenException("Only the requester can review a booking")
    booking, review = service.add_review(booking_id, request.rating, request.comment, request.is_public)
    return ReviewResponse(booking_id=booking.booking_id, review=review)


@router.post("/{booking_id}/tracking", response_model=TrackingResponse)
def record_location(
    booking_id: str,
    request: LocationRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
    registry: ConnectionRegistry = Depends(get_connection_registry),
) -> TrackingResponse:
    """Record the current location and relay it to the requester."""
    _ensure_participant(service.get_booking(booking_id), actor)
    booking, entry = service.record_location(
        booking_id,
        request.latitude,
        request.longitude,
        request.address,
        request.speed,
        request.heading,
    )
    background_tasks.add_task(
        registry.send_to_user,
        booking.requester,
        RUNNER_LOCATION_UPDATED,
        location_event(booking, entry),
    )
    return TrackingResponse(
        booking_id=booking.booking_id,
        entry=entry,
        route_length=len(booking.tracking.route),
    )


@router.post("/{booking_id}/tracking/arrival", response_model=Booking)
def mark_arrived(
    booking_id: str,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> Booking:
    _ensure_participant(service.get_booking(booking_id), actor)
    return service.mark_arrived(booking_id)


@router.post("/{booking_id}/dispute", response_model=BookingActionResponse)
def raise_dispute(
    booking_id: str,
    request: DisputeRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> BookingActionResponse:
    _ensure_participant(service.get_booking(booking_id), actor)
    booking, intents = service.raise_dispute(booking_id, actor.user_id, request.reason, request.evidence)
    queued = _queue(background_tasks, dispatcher, intents)
    return BookingActionResponse(booking=booking, notifications_queued=queued)


@router.post("/{booking_id}/dispute/resolve", response_model=BookingActionResponse)
def resolve_dispute(
    booking_id: str,
    request: ResolveDisputeRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> BookingActionResponse:
    """Resolve the open dispute (admin only)."""
    if not actor.is_admin:
        raise ForbiddenException("Admin access required")
    booking, intents = service.resolve_dispute(booking_id, actor.user_id, request.resolution)
    queued = _queue(background_tasks, dispatcher, intents)
    return BookingActionResponse(booking=booking, notifications_queued=queued)
