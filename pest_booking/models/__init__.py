"""
SQLAlchemy models package.
Import all models here to ensure they're registered with Base.metadata.
"""
from pest_booking.models.users import User, UserRole
from pest_booking.models.bookings import (
    Booking,
    BookingStatus,
    PropertySize,
    ServiceType,
    TimeSlot,
)
from pest_booking.models.cancellation_requests import CancellationRequest, CancellationStatus
from pest_booking.models.contacts import Contact, ContactStatus

__all__ = [
    "User",
    "UserRole",
    "Booking",
    "BookingStatus",
    "PropertySize",
    "ServiceType",
    "TimeSlot",
    "CancellationRequest",
    "CancellationStatus",
    "Contact",
    "ContactStatus",
]
