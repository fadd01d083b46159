"""
Role-scoped visibility for bookings and contacts.

`booking_scope` is a pure function of the actor. The resulting `BookingScope`
is backend-neutral: it can be evaluated against a loaded Booking with
`allows()`, and the SQLAlchemy store translates it to a WHERE clause.
"""
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from pest_booking.lib.errors import AuthorizationError
from pest_booking.models.bookings import Booking
from pest_booking.models.contacts import Contact
from pest_booking.models.users import UserRole


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as resolved from the bearer token."""
    id: UUID
    role: UserRole
    email: Optional[str] = None


@dataclass(frozen=True)
class BookingScope:
    """
    Visibility predicate over bookings.

    unrestricted: every booking is visible
    technician_id: bookings assigned to this technician
    customer_id / customer_email: bookings owned by id OR submitted with this email
    An empty scope (all fields unset) matches nothing.
    """
    unrestricted: bool = False
    technician_id: Optional[UUID] = None
    customer_id: Optional[UUID] = None
    customer_email: Optional[str] = None

    def allows(self, booking: Booking) -> bool:
        if self.unrestricted:
            return True
        if self.technician_id is not None:
            return booking.technician_id == self.technician_id
        if self.customer_id is not None and booking.customer_id == self.customer_id:
            return True
        if self.customer_email and booking.customer_email:
            return booking.customer_email.lower() == self.customer_email.lower()
        return False


def booking_scope(actor: Actor) -> BookingScope:
    if actor.role in (UserRole.ADMIN, UserRole.STAFF):
        return BookingScope(unrestricted=True)
    if actor.role == UserRole.TECHNICIAN:
        return BookingScope(technician_id=actor.id)
    if actor.role == UserRole.CUSTOMER:
        return BookingScope(customer_id=actor.id, customer_email=actor.email)
    return BookingScope()


@dataclass(frozen=True)
class ContactScope:
    """Admins see every enquiry; staff only those assigned to them."""
    unrestricted: bool = False
    assigned_to: Optional[UUID] = None

    def allows(self, contact: Contact) -> bool:
        if self.unrestricted:
            return True
        return self.assigned_to is not None and contact.assigned_to == self.assigned_to


def contact_scope(actor: Actor) -> ContactScope:
    """
    Raises:
        AuthorizationError: technicians and customers have no access to enquiries
    """
    if actor.role == UserRole.ADMIN:
        return ContactScope(unrestricted=True)
    if actor.role == UserRole.STAFF:
        return ContactScope(assigned_to=actor.id)
    raise AuthorizationError("Contact enquiries are only available to staff and admins")
