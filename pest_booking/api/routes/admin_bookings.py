"""
Admin booking routes: cancellation queue and decisions, statistics, export.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from pest_booking.api.dependencies import get_booking_service, require_roles
from pest_booking.models.users import UserRole
from pest_booking.schemas.bookings import (
    BookingExport,
    BookingResponse,
    BookingStats,
    CancellationDecision,
    CancellationOutcome,
    CancellationRequestResponse,
)
from pest_booking.services.booking_service import BookingService
from pest_booking.services.scope import Actor


router = APIRouter(prefix="/admin", tags=["admin"])

back_office = require_roles(UserRole.ADMIN, UserRole.STAFF)
admin_only = require_roles(UserRole.ADMIN)


@router.get("/cancellation-requests", response_model=List[CancellationRequestResponse])
def list_pending_cancellations(
    actor: Actor = Depends(back_office),
    service: BookingService = Depends(get_booking_service),
) -> List[CancellationRequestResponse]:
    """Pending cancellation requests, oldest first."""
    return [
        CancellationRequestResponse.model_validate(r)
        for r in service.list_pending_cancellations(actor)
    ]


@router.get("/cancellation-history", response_model=List[CancellationRequestResponse])
def list_cancellation_history(
    limit: Optional[int] = Query(None, ge=1, le=500),
    actor: Actor = Depends(back_office),
    service: BookingService = Depends(get_booking_service),
) -> List[CancellationRequestResponse]:
    """Processed cancellation requests, most recent decision first."""
    return [
        CancellationRequestResponse.model_validate(r)
        for r in service.list_cancellation_history(actor, limit=limit)
    ]


@router.put("/cancellation/{request_id}", response_model=CancellationOutcome)
async def process_cancellation(
    request_id: UUID,
    payload: CancellationDecision,
    actor: Actor = Depends(admin_only),
    service: BookingService = Depends(get_booking_service),
) -> CancellationOutcome:
    """Approve (booking is canceled) or reject (request closed, booking status unchanged)."""
    request = await service.process_cancellation_request(
        request_id, actor, approve=payload.approve, note=payload.note
    )
    return CancellationOutcome(
        request=CancellationRequestResponse.model_validate(request),
        booking_status=request.booking.status,
    )


@router.get("/bookings/stats", response_model=BookingStats)
def booking_stats(
    actor: Actor = Depends(back_office),
    service: BookingService = Depends(get_booking_service),
) -> BookingStats:
    return BookingStats(**service.get_stats(actor))


@router.get("/export", response_model=BookingExport)
def export_data(
    actor: Actor = Depends(admin_only),
    service: BookingService = Depends(get_booking_service),
) -> BookingExport:
    """Full JSON export of bookings and cancellation requests."""
    data = service.export(actor)
    return BookingExport(
        exported_at=data["exported_at"],
        bookings=[BookingResponse.model_validate(b) for b in data["bookings"]],
        cancellation_requests=[
            CancellationRequestResponse.model_validate(r) for r in data["cancellation_requests"]
        ],
    )
