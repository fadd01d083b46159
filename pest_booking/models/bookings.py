"""
Booking model - scheduled pest-control service requests.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, TYPE_CHECKING
from uuid import uuid4, UUID
import enum

from sqlalchemy import (
    String,
    Text,
    Numeric,
    Integer,
    DateTime,
    ForeignKey,
    CheckConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pest_booking.lib.db import Base, enum_type

if TYPE_CHECKING:
    from pest_booking.models.cancellation_requests import CancellationRequest


class ServiceType(str, enum.Enum):
    """Bookable service types."""
    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"
    TERMITE = "termite"
    RODENT = "rodent"
    INSECT = "insect"
    ECO_FRIENDLY = "eco-friendly"


class PropertySize(str, enum.Enum):
    """Property size enumeration."""
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    COMMERCIAL = "commercial"


class TimeSlot(str, enum.Enum):
    """Preferred arrival window."""
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


class BookingStatus(str, enum.Enum):
    """
    Booking status state machine.

    pending → confirmed → assigned → in-progress → completed,
    any non-terminal → cancellation_requested → canceled.
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLATION_REQUESTED = "cancellation_requested"
    CANCELED = "canceled"


class Booking(Base):
    """
    Booking entity. Never deleted: canceled bookings are kept for history and export.
    """
    __tablename__ = "bookings"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )

    # Customer (customer_id is empty for public submissions)
    customer_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    customer_phone: Mapped[str] = mapped_column(String(20), nullable=False)

    # Service
    service_type: Mapped[ServiceType] = mapped_column(
        enum_type(ServiceType, "service_type"),
        nullable=False,
        index=True,
    )
    property_size: Mapped[PropertySize] = mapped_column(
        enum_type(PropertySize, "property_size"),
        nullable=False,
        default=PropertySize.MEDIUM,
    )
    scheduled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    time_slot: Mapped[Optional[TimeSlot]] = mapped_column(
        enum_type(TimeSlot, "time_slot"),
        nullable=True,
    )

    # Address
    address_street: Mapped[str] = mapped_column(String(255), nullable=False)
    address_city: Mapped[str] = mapped_column(String(100), nullable=False)
    address_state: Mapped[str] = mapped_column(String(100), nullable=False)
    address_postal_code: Mapped[str] = mapped_column(String(4), nullable=False, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Workflow
    status: Mapped[BookingStatus] = mapped_column(
        enum_type(BookingStatus, "booking_status"),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True,
    )
    technician_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    admin_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completion_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Feedback
    customer_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    customer_feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Optimistic lock counter, bumped on every UPDATE
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    cancellation_requests: Mapped[List["CancellationRequest"]] = relationship(
        back_populates="booking",
        order_by="CancellationRequest.created_at.desc()",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "price IS NULL OR price >= 0",
            name="booking_price_non_negative",
        ),
        CheckConstraint(
            "customer_rating IS NULL OR (customer_rating >= 1 AND customer_rating <= 5)",
            name="booking_rating_range",
        ),
    )

    @property
    def location(self) -> str:
        """Single-line address used in emails and list views."""
        return (
            f"{self.address_street}, {self.address_city}, "
            f"{self.address_state} {self.address_postal_code}"
        )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, status={self.status}, customer_email={self.customer_email})>"
