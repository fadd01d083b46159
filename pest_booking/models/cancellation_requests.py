"""
CancellationRequest model - customer requests to cancel a booking, decided by an admin.
"""
from datetime import datetime, timezone
from typing import Optional, TYPE_CHECKING
from uuid import uuid4, UUID
import enum

from sqlalchemy import Text, DateTime, ForeignKey, Index, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pest_booking.lib.db import Base, enum_type
from pest_booking.models.bookings import BookingStatus

if TYPE_CHECKING:
    from pest_booking.models.bookings import Booking


class CancellationStatus(str, enum.Enum):
    """Cancellation request status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CancellationRequest(Base):
    """
    Cancellation request entity. Kept permanently as history.

    At most one pending request per booking, enforced by a partial unique index.
    """
    __tablename__ = "cancellation_requests"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )

    booking_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    requested_by: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[CancellationStatus] = mapped_column(
        enum_type(CancellationStatus, "cancellation_status"),
        nullable=False,
        default=CancellationStatus.PENDING,
        index=True,
    )
    # Booking status when the request was made; history only, never written back
    previous_booking_status: Mapped[BookingStatus] = mapped_column(
        enum_type(BookingStatus, "booking_status"),
        nullable=False,
    )

    # Decision
    processed_by: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    admin_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    booking: Mapped["Booking"] = relationship(back_populates="cancellation_requests")

    __table_args__ = (
        Index(
            "uq_cancellation_requests_one_pending",
            "booking_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<CancellationRequest(id={self.id}, booking_id={self.booking_id}, status={self.status})>"
