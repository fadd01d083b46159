"""
Booking request/response schemas.

`BookingCreate` carries every input rule for new bookings; pydantic reports
all failing fields in one pass, which `parse_booking_input` turns into a
single ValidationError.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from pest_booking.lib.errors import ValidationError
from pest_booking.models.bookings import (
    BookingStatus,
    PropertySize,
    ServiceType,
    TimeSlot,
)
from pest_booking.models.cancellation_requests import CancellationStatus


PHONE_PATTERN = r"^\+?[\d\s()-]{8,20}$"
POSTAL_CODE_PATTERN = r"^\d{4}$"
EMAIL_PATTERN = r"^[\w\.+-]+@[\w\.-]+\.\w+$"

# Column widths of customer_phone and customer_email
PHONE_MAX_LENGTH = 20
EMAIL_MAX_LENGTH = 255


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ===== Requests =====

class BookingAddress(BaseModel):
    """Service address. Postal codes are 4-digit."""
    model_config = ConfigDict(str_strip_whitespace=True)

    street: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., pattern=POSTAL_CODE_PATTERN)


class BookingCreate(BaseModel):
    """New booking submitted from the public form or the customer dashboard."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=2, max_length=255, examples=["Jane Citizen"])
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=EMAIL_MAX_LENGTH, examples=["jane@example.com"])
    phone: str = Field(..., pattern=PHONE_PATTERN, max_length=PHONE_MAX_LENGTH, examples=["0412 345 678"])
    service_type: ServiceType
    property_size: PropertySize = PropertySize.MEDIUM
    scheduled_at: datetime = Field(..., description="Requested service date/time, must be in the future")
    time_slot: Optional[TimeSlot] = None
    address: BookingAddress
    notes: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("scheduled_at")
    @classmethod
    def must_be_in_future(cls, value: datetime) -> datetime:
        value = as_utc(value)
        if value <= datetime.now(timezone.utc):
            raise ValueError("Scheduled date must be in the future")
        return value


def parse_booking_input(data: Any) -> BookingCreate:
    """
    Validate raw booking input.

    Raises:
        ValidationError: listing every failed field
    """
    if isinstance(data, BookingCreate):
        return data
    try:
        return BookingCreate.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic(exc.errors()) from exc


class BookingStatusUpdate(BaseModel):
    """Status change request."""
    status: BookingStatus
    note: Optional[str] = Field(default=None, max_length=2000, description="Note shown to the customer")
    completion_notes: Optional[str] = Field(default=None, max_length=4000)


class BookingDetailsUpdate(BaseModel):
    """
    Back-office edits. Only fields present in the payload are applied;
    an explicit null technician_id unassigns the technician.
    """
    technician_id: Optional[UUID] = None
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    admin_note: Optional[str] = Field(default=None, max_length=2000)


class CancellationRequestCreate(BaseModel):
    """Customer cancellation request."""
    reason: Optional[str] = Field(default=None, max_length=1000, examples=["moving house"])


class CancellationDecision(BaseModel):
    """Admin decision on a cancellation request."""
    approve: bool
    note: Optional[str] = Field(default=None, max_length=2000)


class FeedbackCreate(BaseModel):
    """Customer rating for a completed booking."""
    rating: int = Field(..., ge=1, le=5)
    feedback: Optional[str] = Field(default=None, max_length=2000)


# ===== Responses =====

class BookingSummary(BaseModel):
    """Public projection returned to unauthenticated callers."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    service_type: ServiceType
    scheduled_at: datetime
    status: BookingStatus


class CancellationRequestResponse(BaseModel):
    """Cancellation request as seen by customers and the back office."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    requested_by: Optional[UUID] = None
    reason: Optional[str] = None
    status: CancellationStatus
    previous_booking_status: BookingStatus
    processed_by: Optional[UUID] = None
    processed_at: Optional[datetime] = None
    admin_note: Optional[str] = None
    created_at: datetime


class BookingResponse(BaseModel):
    """Full booking record for authenticated callers inside its scope."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_id: Optional[UUID] = None
    customer_name: str
    customer_email: str
    customer_phone: str
    service_type: ServiceType
    property_size: PropertySize
    scheduled_at: datetime
    time_slot: Optional[TimeSlot] = None
    location: str
    notes: Optional[str] = None
    status: BookingStatus
    technician_id: Optional[UUID] = None
    price: Optional[Decimal] = None
    admin_note: Optional[str] = None
    completion_notes: Optional[str] = None
    customer_rating: Optional[int] = None
    customer_feedback: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime


class BookingDetailResponse(BookingResponse):
    """Booking with its cancellation request history (newest first)."""
    cancellation_requests: List[CancellationRequestResponse] = Field(default_factory=list)


class BookingListResponse(BaseModel):
    """Paginated booking list."""
    bookings: List[BookingResponse]
    total: int
    page: int
    page_size: int
    has_next: bool


class CancellationAck(BaseModel):
    """Acknowledgement for a new cancellation request."""
    message: str = "Cancellation request submitted"
    request: CancellationRequestResponse
    booking_status: BookingStatus


class CancellationOutcome(BaseModel):
    """Result of an admin decision."""
    request: CancellationRequestResponse
    booking_status: BookingStatus


class BookingStats(BaseModel):
    """Back-office booking statistics."""
    total: int
    by_status: Dict[str, int]
    by_service_type: Dict[str, int]
    by_property_size: Dict[str, int]
    pending_cancellations: int


class BookingExport(BaseModel):
    """Full data export for backup."""
    exported_at: datetime
    bookings: List[BookingResponse]
    cancellation_requests: List[CancellationRequestResponse]
