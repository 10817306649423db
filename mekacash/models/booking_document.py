"""
Booking aggregate - the document persisted for every booking.

The whole aggregate (status log, cancellation, dispute, review, messages,
tracking and notification log) is stored as one JSON document so that a
status change and its history entry are always written together.
"""
import enum
import secrets
import string
import time
from datetime import date, datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class BookingStatus(str, enum.Enum):
    """
    Booking status values.
    Main path: pending → confirmed → assigned → in-progress → completed,
    with cancelled, failed and disputed as side branches.
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    DISPUTED = "disputed"


TERMINAL_STATUSES = frozenset({
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
    BookingStatus.FAILED,
})


class PaymentMethod(str, enum.Enum):
    CARD = "card"
    CASH = "cash"
    WALLET = "wallet"
    PAYPAL = "paypal"
    APPLE_PAY = "apple-pay"
    GOOGLE_PAY = "google-pay"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially-refunded"


class RefundStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    COMPLETED = "completed"
    FAILED = "failed"


class NotificationChannel(str, enum.Enum):
    SMS = "sms"
    EMAIL = "email"
    PUSH = "push"
    IN_APP = "in-app"


class DeliveryStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class BookingSource(str, enum.Enum):
    WEB = "web"
    MOBILE_APP = "mobile-app"
    PHONE = "phone"
    PARTNER = "partner"


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_booking_id(prefix: str = "MC") -> str:
    """
    Generate a booking identifier.

    Format: prefix + last 6 digits of the epoch millisecond clock +
    5 uppercase base-36 characters, e.g. ``MC482913K7Q2Z``.
    """
    millis = str(int(time.time() * 1000))
    alphabet = string.digits + string.ascii_uppercase
    suffix = "".join(secrets.choice(alphabet) for _ in range(5))
    return f"{prefix}{millis[-6:]}{suffix}"


# Locations and service details
class Coordinates(BaseModel):
    latitude: float
    longitude: float


class Location(BaseModel):
    address: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    instructions: Optional[str] = None


class ServiceItem(BaseModel):
    name: str
    quantity: int = 1
    price: float = 0.0
    description: Optional[str] = None


class ServiceDetails(BaseModel):
    quantity: int = 1
    custom_requirements: Optional[str] = None
    special_instructions: Optional[str] = None
    items: List[ServiceItem] = Field(default_factory=list)


# Pricing and payment
class Surcharge(BaseModel):
    name: str
    amount: float
    reason: Optional[str] = None


class Discount(BaseModel):
    name: str
    amount: float
    type: DiscountType = DiscountType.FIXED

    def value_for(self, base_price: float) -> float:
        if self.type == DiscountType.PERCENTAGE:
            return round(base_price * self.amount / 100, 2)
        return self.amount


class Pricing(BaseModel):
    """Price snapshot captured at creation; never changed afterwards."""

    model_config = ConfigDict(frozen=True)

    base_price: float
    surcharges: List[Surcharge] = Field(default_factory=list)
    discounts: List[Discount] = Field(default_factory=list)
    tax: float = 0.0
    total_amount: float
    currency: str = "USD"

    @property
    def total_surcharges(self) -> float:
        return sum(s.amount for s in self.surcharges)

    @property
    def total_discounts(self) -> float:
        return sum(d.value_for(self.base_price) for d in self.discounts)

    @staticmethod
    def compute_total(
        base_price: float,
        surcharges: List[Surcharge],
        discounts: List[Discount],
        tax: float = 0.0,
    ) -> float:
        total = (
            base_price
            + sum(s.amount for s in surcharges)
            - sum(d.value_for(base_price) for d in discounts)
            + tax
        )
        return round(max(total, 0.0), 2)


class Payment(BaseModel):
    """Owned by the payment settlement service; the lifecycle only reads it."""

    method: PaymentMethod
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: Optional[str] = None
    payment_date: Optional[datetime] = None
    refund_amount: float = 0.0
    refund_date: Optional[datetime] = None


# Status log
class StatusEntry(BaseModel):
    status: BookingStatus
    timestamp: datetime
    actor: Optional[str] = None
    note: Optional[str] = None


class StatusLog(BaseModel):
    current: BookingStatus = BookingStatus.PENDING
    history: List[StatusEntry] = Field(default_factory=list)


# Side records
class Cancellation(BaseModel):
    is_cancelled: bool = True
    cancelled_by: str
    cancelled_at: datetime
    reason: Optional[str] = None
    refund_amount: float = 0.0
    refund_status: RefundStatus = RefundStatus.PENDING


class Dispute(BaseModel):
    is_disputed: bool = True
    reason: str
    evidence: List[str] = Field(default_factory=list)
    raised_by: str
    raised_at: datetime
    resolution: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None


class Review(BaseModel):
    rating: float
    comment: Optional[str] = None
    submitted_at: datetime
    is_public: bool = True


class Message(BaseModel):
    sender: str
    text: str
    timestamp: datetime
    is_read: bool = False


# Tracking
class LocationSnapshot(BaseModel):
    coordinates: Coordinates
    timestamp: datetime
    address: Optional[str] = None


class RouteEntry(BaseModel):
    coordinates: Coordinates
    timestamp: datetime
    speed: Optional[float] = None
    heading: Optional[float] = None


class Tracking(BaseModel):
    current_location: Optional[LocationSnapshot] = None
    route: List[RouteEntry] = Field(default_factory=list)
    estimated_arrival: Optional[datetime] = None
    actual_arrival: Optional[datetime] = None


class NotificationRecord(BaseModel):
    """Delivery outcome written back by the notification dispatcher."""

    channel: NotificationChannel
    title: str
    message: str
    recipient: str
    booking_id: Optional[str] = None
    sent_at: Optional[datetime] = None
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING
    attempts: int = 0
    is_read: bool = False


class BookingMetadata(BaseModel):
    platform: Optional[str] = None
    app_version: Optional[str] = None
    booking_source: BookingSource = BookingSource.MOBILE_APP
    referral_code: Optional[str] = None
    campaign: Optional[str] = None


class Booking(BaseModel):
    """
    Booking aggregate root.

    Requester, provider and runner are references to external user ids.
    Status changes go through services.booking_lifecycle only, which keeps
    history[-1].status equal to status.current.
    """

    booking_id: str
    requester: str
    provider: str
    runner: Optional[str] = None
    service_id: Optional[str] = None

    scheduled_date: date
    scheduled_time: str
    estimated_duration: int = Field(..., gt=0, description="Minutes")
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None

    pickup_location: Optional[Location] = None
    delivery_location: Optional[Location] = None
    service_details: ServiceDetails = Field(default_factory=ServiceDetails)

    pricing: Pricing
    payment: Payment

    status: StatusLog = Field(default_factory=StatusLog)
    cancellation: Optional[Cancellation] = None
    dispute: Optional[Dispute] = None
    review: Optional[Review] = None
    messages: List[Message] = Field(default_factory=list)
    tracking: Tracking = Field(default_factory=Tracking)
    notifications: List[NotificationRecord] = Field(default_factory=list)
    metadata: BookingMetadata = Field(default_factory=BookingMetadata)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def current_status(self) -> BookingStatus:
        return self.status.current

    @property
    def is_terminal(self) -> bool:
        return self.status.current in TERMINAL_STATUSES

    def participants(self) -> List[str]:
        """Distinct participant ids: requester, provider, then runner if assigned."""
        seen: List[str] = []
        for user_id in (self.requester, self.provider, self.runner):
            if user_id and user_id not in seen:
                seen.append(user_id)
        return seen

    @property
    def actual_duration_minutes(self) -> Optional[float]:
        if not self.actual_start_time or not self.actual_end_time:
            return None
        return (self.actual_end_time - self.actual_start_time).total_seconds() / 60

    def status_duration_minutes(self, now: Optional[datetime] = None) -> Optional[float]:
        """Minutes spent in the current status."""
        if not self.status.history:
            return None
        now = now or utcnow()
        return (now - self.status.history[-1].timestamp).total_seconds() / 60

    def public_snapshot(self) -> dict[str, Any]:
        """Fields safe to include in notifications sent to any participant."""
        return {
            "booking_id": self.booking_id,
            "status": self.status.current.value,
            "scheduled_date": self.scheduled_date.isoformat(),
            "scheduled_time": self.scheduled_time,
            "total_amount": self.pricing.total_amount,
            "currency": self.pricing.currency,
        }
