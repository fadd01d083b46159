"""
Contact enquiry schemas.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pest_booking.models.contacts import ContactStatus
from pest_booking.schemas.bookings import (
    EMAIL_MAX_LENGTH,
    EMAIL_PATTERN,
    PHONE_MAX_LENGTH,
    PHONE_PATTERN,
)


class ContactCreate(BaseModel):
    """Public contact form submission."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=2, max_length=255)
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=EMAIL_MAX_LENGTH)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN, max_length=PHONE_MAX_LENGTH)
    message: str = Field(..., min_length=10, max_length=5000)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.lower()


class ContactAssign(BaseModel):
    staff_id: UUID


class ContactStatusUpdate(BaseModel):
    status: ContactStatus


class ContactResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str
    phone: Optional[str] = None
    message: str
    status: ContactStatus
    assigned_to: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


class ContactListResponse(BaseModel):
    contacts: List[ContactResponse]
    total: int
