"""Contact enquiry service.

Public submissions are stored and acknowledged by email. Admins assign
enquiries to staff members, who then only see the enquiries assigned to them.
"""
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pest_booking.lib.errors import (
    AuthorizationError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from pest_booking.lib.logging import get_logger
from pest_booking.models.contacts import Contact, ContactStatus
from pest_booking.models.users import User, UserRole
from pest_booking.schemas.contacts import ContactCreate
from pest_booking.services.notification_service import (
    Notifier,
    contact_assigned_message,
    contact_received_messages,
    get_notifier,
    notify_all,
    notify_safely,
)
from pest_booking.services.scope import Actor, contact_scope


logger = get_logger(__name__)


class ContactService:
    """Contact form submissions and their follow-up."""

    def __init__(self, session: Session, notifier: Optional[Notifier] = None):
        self.session = session
        self.notifier = notifier or get_notifier()

    def _commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(f"Commit failed: {exc}", exc_info=True)
            raise StorageError() from exc

    def _get_visible(self, contact_id: UUID, actor: Actor) -> Contact:
        scope = contact_scope(actor)
        contact = self.session.get(Contact, contact_id)
        if contact is None or not scope.allows(contact):
            raise NotFoundError("Contact", contact_id)
        return contact

    async def create_contact(self, data: ContactCreate) -> Contact:
        contact = Contact(
            name=data.name,
            email=data.email,
            phone=data.phone,
            message=data.message,
            status=ContactStatus.NEW,
        )
        self.session.add(contact)
        self._commit()
        logger.info(f"Contact enquiry received: {contact.id}", extra={"contact_id": str(contact.id)})

        await notify_all(self.notifier, contact_received_messages(contact))
        return contact

    def list_contacts(self, actor: Actor, status: Optional[ContactStatus] = None) -> List[Contact]:
        """Enquiries visible to the caller, newest first."""
        scope = contact_scope(actor)
        stmt = select(Contact)
        if not scope.unrestricted:
            stmt = stmt.where(Contact.assigned_to == scope.assigned_to)
        if status is not None:
            stmt = stmt.where(Contact.status == status)
        stmt = stmt.order_by(Contact.created_at.desc())
        return list(self.session.execute(stmt).scalars().all())

    async def assign_contact(self, contact_id: UUID, actor: Actor, staff_id: UUID) -> Contact:
        """Admin hands an enquiry to a staff member (or another admin)."""
        if actor.role != UserRole.ADMIN:
            raise AuthorizationError("Only admins can assign enquiries")
        contact = self._get_visible(contact_id, actor)

        assignee = self.session.get(User, staff_id)
        if (
            assignee is None
            or not assignee.is_active
            or assignee.role not in (UserRole.STAFF, UserRole.ADMIN)
        ):
            raise ValidationError.for_field("staff_id", "Must reference an active staff member")

        contact.assigned_to = assignee.id
        self._commit()
        logger.info(
            f"Contact {contact.id} assigned to {assignee.id}",
            extra={"contact_id": str(contact.id), "assigned_to": str(assignee.id)},
        )

        await notify_safely(self.notifier, contact_assigned_message(contact, assignee.email))
        return contact

    def update_status(self, contact_id: UUID, actor: Actor, status: ContactStatus) -> Contact:
        contact = self._get_visible(contact_id, actor)
        contact.status = status
        self._commit()
        return contact
