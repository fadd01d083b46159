"""
User model - identities known to the back office (customers, technicians, staff, admins).

Accounts are owned by the identity service; this service only reads them to
resolve the caller and to validate assignment targets.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4
import enum

from sqlalchemy import String, Boolean, DateTime, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from pest_booking.lib.db import Base, enum_type


class UserRole(str, enum.Enum):
    """User role enumeration."""
    CUSTOMER = "customer"
    TECHNICIAN = "technician"
    STAFF = "staff"
    ADMIN = "admin"


class User(Base):
    """
    User entity - represents all system users.
    """
    __tablename__ = "users"

    # Primary key
    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )

    # Contact info
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Profile
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        enum_type(UserRole, "user_role"),
        nullable=False,
        default=UserRole.CUSTOMER,
        index=True,
    )

    # Status
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

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

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
