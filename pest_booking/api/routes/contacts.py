"""
Contact enquiry routes.
"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from pest_booking.api.dependencies import get_contact_service, get_current_actor, require_roles
from pest_booking.models.contacts import ContactStatus
from pest_booking.models.users import UserRole
from pest_booking.schemas.contacts import (
    ContactAssign,
    ContactCreate,
    ContactListResponse,
    ContactResponse,
    ContactStatusUpdate,
)
from pest_booking.services.contact_service import ContactService
from pest_booking.services.scope import Actor


router = APIRouter(prefix="/contacts", tags=["contacts"])


@router.post("", response_model=ContactResponse, status_code=status.HTTP_201_CREATED)
async def submit_contact(
    payload: ContactCreate,
    service: ContactService = Depends(get_contact_service),
) -> ContactResponse:
    """Public contact form."""
    contact = await service.create_contact(payload)
    return ContactResponse.model_validate(contact)


@router.get("", response_model=ContactListResponse)
def list_contacts(
    status_filter: Optional[ContactStatus] = Query(None, alias="status"),
    actor: Actor = Depends(get_current_actor),
    service: ContactService = Depends(get_contact_service),
) -> ContactListResponse:
    """Admins see every enquiry; staff only those assigned to them."""
    contacts = service.list_contacts(actor, status=status_filter)
    return ContactListResponse(
        contacts=[ContactResponse.model_validate(c) for c in contacts],
        total=len(contacts),
    )


@router.put("/{contact_id}/assign", response_model=ContactResponse)
async def assign_contact(
    contact_id: UUID,
    payload: ContactAssign,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
    service: ContactService = Depends(get_contact_service),
) -> ContactResponse:
    contact = await service.assign_contact(contact_id, actor, payload.staff_id)
    return ContactResponse.model_validate(contact)


@router.put("/{contact_id}/status", response_model=ContactResponse)
def update_contact_status(
    contact_id: UUID,
    payload: ContactStatusUpdate,
    actor: Actor = Depends(get_current_actor),
    service: ContactService = Depends(get_contact_service),
) -> ContactResponse:
    contact = service.update_status(contact_id, actor, payload.status)
    return ContactResponse.model_validate(contact)
