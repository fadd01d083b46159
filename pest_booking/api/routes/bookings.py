"""
Booking API routes.

Public and customer booking submission, scoped reads, status changes,
back-office edits, cancellation requests and feedback.
"""
from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from pest_booking.api.dependencies import (
    get_booking_service,
    get_current_actor,
    get_optional_actor,
    require_roles,
)
from pest_booking.models.bookings import BookingStatus
from pest_booking.models.users import UserRole
from pest_booking.schemas.bookings import (
    BookingCreate,
    BookingDetailResponse,
    BookingDetailsUpdate,
    BookingListResponse,
    BookingResponse,
    BookingStatusUpdate,
    BookingSummary,
    CancellationAck,
    CancellationRequestCreate,
    CancellationRequestResponse,
    FeedbackCreate,
)
from pest_booking.services.booking_service import BookingService
from pest_booking.services.scope import Actor
from pest_booking.services.stores import BookingFilters


router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingSummary, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    actor: Optional[Actor] = Depends(get_optional_actor),
    service: BookingService = Depends(get_booking_service),
) -> BookingSummary:
    """
    Submit a booking request.

    Open to the public; a signed-in customer's booking is linked to their account.
    Returns only the public summary (id, service_type, scheduled_at, status).
    """
    return await service.create_booking(payload, actor)


@router.get("", response_model=BookingListResponse)
def list_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status", description="Filter by status"),
    date_from: Optional[date] = Query(None, description="Scheduled on or after this day"),
    date_to: Optional[date] = Query(None, description="Scheduled on or before this day"),
    search: Optional[str] = Query(None, max_length=100, description="Name, email, phone, street, city or postcode"),
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> BookingListResponse:
    """
    List bookings visible to the caller, newest first.

    Admins and staff see every booking, technicians their assigned bookings,
    customers their own.
    """
    filters = BookingFilters(status=status_filter, date_from=date_from, date_to=date_to, search=search)
    result = service.list_bookings(actor, filters, page=page, page_size=page_size)
    return BookingListResponse(
        bookings=[BookingResponse.model_validate(b) for b in result["bookings"]],
        total=result["total"],
        page=result["page"],
        page_size=result["page_size"],
        has_next=result["has_next"],
    )


# Declared before /{booking_id} so "schedule" is not parsed as an id
@router.get("/schedule", response_model=List[BookingResponse])
def get_schedule(
    start: Optional[date] = Query(None, description="First day of the window (default today)"),
    days: int = Query(7, ge=1, le=62),
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> List[BookingResponse]:
    """Upcoming confirmed, assigned and in-progress bookings, soonest first."""
    bookings = service.get_schedule(actor, start=start, days=days)
    return [BookingResponse.model_validate(b) for b in bookings]


@router.get("/{booking_id}", response_model=BookingDetailResponse)
def get_booking(
    booking_id: UUID,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> BookingDetailResponse:
    """Booking detail with its cancellation requests. Out-of-scope bookings are 404."""
    return BookingDetailResponse.model_validate(service.get_booking(booking_id, actor))


@router.put("/{booking_id}/status", response_model=BookingResponse)
async def update_status(
    booking_id: UUID,
    payload: BookingStatusUpdate,
    actor: Actor = Depends(require_roles(UserRole.ADMIN, UserRole.STAFF, UserRole.TECHNICIAN)),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Change booking status. Technicians may only update bookings assigned to them."""
    booking = await service.set_status(
        booking_id,
        payload.status,
        actor,
        note=payload.note,
        completion_notes=payload.completion_notes,
    )
    return BookingResponse.model_validate(booking)


@router.patch("/{booking_id}", response_model=BookingResponse)
async def update_details(
    booking_id: UUID,
    payload: BookingDetailsUpdate,
    actor: Actor = Depends(require_roles(UserRole.ADMIN, UserRole.STAFF)),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Assign a technician, set the price or the admin note."""
    booking = await service.update_booking_details(booking_id, actor, payload)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=CancellationAck)
async def request_cancellation(
    booking_id: UUID,
    payload: CancellationRequestCreate,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> CancellationAck:
    """Customer asks to cancel one of their bookings; an admin decides."""
    request = await service.request_cancellation(booking_id, actor, reason=payload.reason)
    return CancellationAck(
        request=CancellationRequestResponse.model_validate(request),
        booking_status=BookingStatus.CANCELLATION_REQUESTED,
    )


@router.post("/{booking_id}/feedback", response_model=BookingResponse)
async def submit_feedback(
    booking_id: UUID,
    payload: FeedbackCreate,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Rate a completed booking (1-5)."""
    booking = await service.submit_feedback(booking_id, actor, payload.rating, payload.feedback)
    return BookingResponse.model_validate(booking)
