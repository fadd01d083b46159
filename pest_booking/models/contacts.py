"""
Contact model - enquiries submitted through the public contact form.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, Text, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pest_booking.lib.db import Base, enum_type


class ContactStatus(str, enum.Enum):
    """Contact enquiry follow-up status."""
    NEW = "new"
    CONTACTED = "contacted"
    RESOLVED = "resolved"


class Contact(Base):
    """
    Contact enquiry. Staff members only see enquiries assigned to them.
    """
    __tablename__ = "contacts"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[ContactStatus] = mapped_column(
        enum_type(ContactStatus, "contact_status"),
        nullable=False,
        default=ContactStatus.NEW,
        index=True,
    )
    assigned_to: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

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

    def __repr__(self) -> str:
        return f"<Contact(id={self.id}, email={self.email}, status={self.status})>"
