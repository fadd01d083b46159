"""Booking workflow service.

Sole authority for mutating Booking.status:
1. Create bookings (validated, status=pending)
2. Status transitions with role checks and cancellation-request cascade
3. Customer cancellation requests and admin decisions
4. Role-scoped reads (list, detail, schedule) and back-office views

Every mutating operation commits once; notifications are sent after the
commit and never affect its outcome.
"""
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from pest_booking.lib.errors import (
    AlreadyProcessedError,
    AppException,
    AuthorizationError,
    ConflictError,
    DuplicateRequestError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from pest_booking.lib.logging import get_logger
from pest_booking.lib.metrics import get_metrics_collector
from pest_booking.lib.settings import settings
from pest_booking.models.bookings import Booking, BookingStatus
from pest_booking.models.cancellation_requests import CancellationRequest, CancellationStatus
from pest_booking.models.users import User, UserRole
from pest_booking.schemas.bookings import (
    BookingCreate,
    BookingDetailsUpdate,
    BookingSummary,
    parse_booking_input,
)
from pest_booking.services.notification_service import (
    Notifier,
    booking_created_messages,
    cancellation_decided_message,
    cancellation_requested_messages,
    get_notifier,
    notify_all,
    notify_safely,
    status_changed_message,
)
from pest_booking.services.scope import Actor, booking_scope
from pest_booking.services.stores import (
    BookingFilters,
    BookingStore,
    CancellationStore,
    SqlAlchemyBookingStore,
    SqlAlchemyCancellationStore,
    day_start,
)


logger = get_logger(__name__)


TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELED})

# Forward progression; skipping steps is allowed, going back is not
PROGRESSION = {
    BookingStatus.PENDING: 0,
    BookingStatus.CONFIRMED: 1,
    BookingStatus.ASSIGNED: 2,
    BookingStatus.IN_PROGRESS: 3,
    BookingStatus.COMPLETED: 4,
}

SCHEDULE_STATUSES = (
    BookingStatus.CONFIRMED,
    BookingStatus.ASSIGNED,
    BookingStatus.IN_PROGRESS,
)


def check_transition(current: BookingStatus, new: BookingStatus) -> None:
    """
    Validate a status change requested through `set_status`.

    Raises:
        InvalidTransitionError: no-op, leaving a terminal status, targeting a
            status owned by creation/cancellation workflow, or moving backwards
    """
    if new == current:
        raise InvalidTransitionError(
            current.value, new.value, f"Booking is already '{current.value}'"
        )
    if current in TERMINAL_STATUSES:
        raise InvalidTransitionError(
            current.value, new.value, f"Booking is '{current.value}' and can no longer change status"
        )
    if new == BookingStatus.PENDING:
        raise InvalidTransitionError(
            current.value, new.value, "A booking cannot be returned to 'pending'"
        )
    if new == BookingStatus.CANCELLATION_REQUESTED:
        raise InvalidTransitionError(
            current.value, new.value, "Cancellation must be requested by the customer"
        )
    if new == BookingStatus.CANCELED or current == BookingStatus.CANCELLATION_REQUESTED:
        return
    if PROGRESSION[new] < PROGRESSION[current]:
        raise InvalidTransitionError(current.value, new.value)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BookingService:
    """Booking lifecycle and cancellation workflow.

    Stores and notifier are injected; the defaults are the SQLAlchemy stores
    bound to `session` and the provider selected in settings.
    """

    def __init__(
        self,
        session: Session,
        notifier: Optional[Notifier] = None,
        bookings: Optional[BookingStore] = None,
        cancellations: Optional[CancellationStore] = None,
    ):
        self.session = session
        self.notifier = notifier or get_notifier()
        self.bookings = bookings or SqlAlchemyBookingStore(session)
        self.cancellations = cancellations or SqlAlchemyCancellationStore(session)
        self.metrics = get_metrics_collector()

    # ===== Transaction helpers =====

    def _commit(self, on_integrity_error: Optional[AppException] = None) -> None:
        """Commit the unit of work, or roll it back and raise a domain error."""
        try:
            self.session.commit()
        except StaleDataError as exc:
            self.session.rollback()
            logger.warning(f"Stale booking write rejected: {exc}")
            raise ConflictError() from exc
        except IntegrityError as exc:
            self.session.rollback()
            if on_integrity_error is not None:
                raise on_integrity_error from exc
            logger.error(f"Integrity error on commit: {exc}", exc_info=True)
            raise StorageError() from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(f"Commit failed: {exc}", exc_info=True)
            raise StorageError() from exc

    def _resolve_request(
        self,
        request: CancellationRequest,
        outcome: CancellationStatus,
        actor: Actor,
        note: Optional[str],
    ) -> None:
        request.status = outcome
        request.processed_by = actor.id
        request.processed_at = _now()
        request.admin_note = note

    def _apply_status(
        self,
        booking: Booking,
        new_status: BookingStatus,
        actor: Actor,
        note: Optional[str] = None,
        pending: Optional[CancellationRequest] = None,
    ) -> None:
        """Write the new status and resolve the pending request, if any, in the same unit of work."""
        if pending is not None:
            outcome = (
                CancellationStatus.APPROVED
                if new_status == BookingStatus.CANCELED
                else CancellationStatus.REJECTED
            )
            self._resolve_request(pending, outcome, actor, note)
        booking.status = new_status
        if note:
            booking.admin_note = note

    def _load_visible(self, booking_id: UUID, actor: Actor, lock: bool = False) -> Booking:
        booking = self.bookings.get(booking_id, lock=lock)
        if booking is None or not booking_scope(actor).allows(booking):
            raise NotFoundError("Booking", booking_id)
        return booking

    @staticmethod
    def _require_roles(actor: Actor, *roles: UserRole, message: str = "Insufficient permissions") -> None:
        if actor.role not in roles:
            raise AuthorizationError(message)

    # ===== Creation =====

    async def create_booking(
        self,
        data: Union[BookingCreate, Dict[str, Any]],
        actor: Optional[Actor] = None,
    ) -> BookingSummary:
        """Validate and persist a new booking.

        Args:
            data: Raw form input or an already-parsed BookingCreate
            actor: Authenticated customer, or None for public submissions

        Returns:
            Public projection (id, service_type, scheduled_at, status)

        Raises:
            ValidationError: listing every invalid field; nothing is persisted
        """
        payload = parse_booking_input(data)

        booking = Booking(
            customer_id=actor.id if actor and actor.role == UserRole.CUSTOMER else None,
            customer_name=payload.name,
            customer_email=payload.email,
            customer_phone=payload.phone,
            service_type=payload.service_type,
            property_size=payload.property_size,
            scheduled_at=payload.scheduled_at,
            time_slot=payload.time_slot,
            address_street=payload.address.street,
            address_city=payload.address.city,
            address_state=payload.address.state,
            address_postal_code=payload.address.postal_code,
            notes=payload.notes,
            status=BookingStatus.PENDING,
        )
        self.bookings.add(booking)
        self._commit()

        self.metrics.increment_bookings_created(service_type=booking.service_type.value)
        logger.info(
            f"Booking created: {booking.id}",
            extra={"booking_id": str(booking.id), "service_type": booking.service_type.value},
        )

        await notify_all(self.notifier, booking_created_messages(booking))
        return BookingSummary.model_validate(booking)

    # ===== Status transitions =====

    async def set_status(
        self,
        booking_id: UUID,
        new_status: Union[BookingStatus, str],
        actor: Actor,
        note: Optional[str] = None,
        completion_notes: Optional[str] = None,
    ) -> Booking:
        """Change a booking's status.

        Raises:
            AuthorizationError: customer caller, technician not assigned,
                status outside the technician policy, or a technician touching
                a booking with a pending cancellation request
            NotFoundError: booking does not exist
            InvalidTransitionError: no-op or illegal transition
            ConflictError: booking changed concurrently
            StorageError: commit failed (nothing applied)
        """
        new_status = BookingStatus(new_status)
        self._require_roles(
            actor, UserRole.ADMIN, UserRole.STAFF, UserRole.TECHNICIAN,
            message="Customers cannot change booking status",
        )

        booking = self.bookings.get(booking_id, lock=True)
        if booking is None:
            raise NotFoundError("Booking", booking_id)

        pending = self.cancellations.pending_for_booking(booking.id, lock=True)

        if actor.role == UserRole.TECHNICIAN:
            if booking.technician_id != actor.id:
                raise AuthorizationError("Technicians can only update bookings assigned to them")
            if new_status.value not in settings.technician_allowed_statuses:
                raise AuthorizationError(
                    f"Technicians cannot set status '{new_status.value}'"
                )
            # Only the back office may resolve a customer's cancellation request
            if pending is not None or booking.status == BookingStatus.CANCELLATION_REQUESTED:
                raise AuthorizationError(
                    "Booking has a pending cancellation request awaiting an admin decision"
                )

        old_status = booking.status
        check_transition(old_status, new_status)

        self._apply_status(booking, new_status, actor, note, pending)
        if completion_notes is not None:
            booking.completion_notes = completion_notes
        self._commit()

        self.metrics.increment_transitions(from_status=old_status.value, to_status=new_status.value)
        if pending is not None:
            self.metrics.increment_cancellation_requests(outcome=pending.status.value)
        logger.info(
            f"Booking {booking.id} status {old_status.value} -> {new_status.value}",
            extra={
                "booking_id": str(booking.id),
                "from_status": old_status.value,
                "to_status": new_status.value,
                "actor_id": str(actor.id),
                "actor_role": actor.role.value,
                "resolved_request_id": str(pending.id) if pending else None,
            },
        )

        await notify_safely(self.notifier, status_changed_message(booking, old_status, note))
        return booking

    # ===== Cancellation workflow =====

    async def request_cancellation(
        self,
        booking_id: UUID,
        actor: Actor,
        reason: Optional[str] = None,
    ) -> CancellationRequest:
        """Customer asks to cancel their booking.

        Raises:
            AuthorizationError: caller is not a customer
            NotFoundError: booking missing or not owned by the caller
            InvalidStateError: booking already completed or canceled
            DuplicateRequestError: a pending request already exists
        """
        self._require_roles(actor, UserRole.CUSTOMER, message="Only customers can request cancellation")
        booking = self._load_visible(booking_id, actor, lock=True)

        if booking.status in TERMINAL_STATUSES:
            raise InvalidStateError(
                f"Cannot request cancellation of a '{booking.status.value}' booking",
                details={"status": booking.status.value},
            )
        if self.cancellations.pending_for_booking(booking.id) is not None:
            raise DuplicateRequestError()

        request = CancellationRequest(
            booking_id=booking.id,
            requested_by=actor.id,
            reason=reason,
            status=CancellationStatus.PENDING,
            previous_booking_status=booking.status,
        )
        self.cancellations.add(request)
        booking.cancellation_requests.insert(0, request)
        old_status = booking.status
        booking.status = BookingStatus.CANCELLATION_REQUESTED
        self._commit(on_integrity_error=DuplicateRequestError())

        self.metrics.increment_transitions(
            from_status=old_status.value, to_status=BookingStatus.CANCELLATION_REQUESTED.value
        )
        self.metrics.increment_cancellation_requests(outcome="requested")
        logger.info(
            f"Cancellation requested for booking {booking.id}",
            extra={"booking_id": str(booking.id), "request_id": str(request.id)},
        )

        await notify_all(self.notifier, cancellation_requested_messages(booking, request))
        return request

    async def process_cancellation_request(
        self,
        request_id: UUID,
        actor: Actor,
        approve: bool,
        note: Optional[str] = None,
    ) -> CancellationRequest:
        """Admin approves or rejects a pending cancellation request.

        Approval cancels the booking. Rejection resolves only the request;
        the booking keeps its status until the back office moves it on with
        `set_status`.

        Raises:
            AuthorizationError: caller is not an admin
            NotFoundError: request missing
            AlreadyProcessedError: request is no longer pending
            InvalidStateError: booking already completed
        """
        self._require_roles(actor, UserRole.ADMIN, message="Only admins can process cancellation requests")

        request = self.cancellations.get(request_id, lock=True)
        if request is None:
            raise NotFoundError("Cancellation request", request_id)
        if request.status != CancellationStatus.PENDING:
            raise AlreadyProcessedError()

        booking = self.bookings.get(request.booking_id, lock=True)
        if booking is None:
            raise NotFoundError("Booking", request.booking_id)
        if booking.status == BookingStatus.COMPLETED:
            raise InvalidStateError(
                "Cannot process cancellation of a completed booking",
                details={"status": booking.status.value},
            )

        old_status = booking.status
        if approve:
            self._apply_status(booking, BookingStatus.CANCELED, actor, note, pending=request)
        else:
            self._resolve_request(request, CancellationStatus.REJECTED, actor, note)
        self._commit()

        if booking.status != old_status:
            self.metrics.increment_transitions(from_status=old_status.value, to_status=booking.status.value)
        self.metrics.increment_cancellation_requests(outcome=request.status.value)
        logger.info(
            f"Cancellation request {request.id} {request.status.value}",
            extra={
                "request_id": str(request.id),
                "booking_id": str(booking.id),
                "booking_status": booking.status.value,
                "actor_id": str(actor.id),
            },
        )

        await notify_safely(self.notifier, cancellation_decided_message(booking, request))
        return request

    # ===== Back-office edits =====

    async def update_booking_details(
        self,
        booking_id: UUID,
        actor: Actor,
        changes: BookingDetailsUpdate,
    ) -> Booking:
        """Assign a technician, set the price or the admin note.

        Only fields present in `changes` are applied.
        """
        self._require_roles(actor, UserRole.ADMIN, UserRole.STAFF, message="Only staff and admins can edit bookings")
        booking = self.bookings.get(booking_id, lock=True)
        if booking is None:
            raise NotFoundError("Booking", booking_id)

        fields = changes.model_fields_set
        if "technician_id" in fields and changes.technician_id != booking.technician_id:
            if booking.status in TERMINAL_STATUSES:
                raise InvalidStateError(
                    f"Cannot change the technician of a '{booking.status.value}' booking",
                    details={"status": booking.status.value},
                )
            if changes.technician_id is not None:
                self._require_technician(changes.technician_id)
            booking.technician_id = changes.technician_id
        if "price" in fields:
            booking.price = changes.price
        if "admin_note" in fields:
            booking.admin_note = changes.admin_note

        self._commit()
        logger.info(
            f"Booking {booking.id} details updated",
            extra={"booking_id": str(booking.id), "fields": sorted(fields), "actor_id": str(actor.id)},
        )
        return booking

    def _require_technician(self, user_id: UUID) -> User:
        user = self.session.execute(select(User).where(User.id == user_id)).scalar_one_or_none()
        if user is None or user.role != UserRole.TECHNICIAN or not user.is_active:
            raise ValidationError.for_field("technician_id", "Must reference an active technician")
        return user

    async def submit_feedback(
        self,
        booking_id: UUID,
        actor: Actor,
        rating: int,
        feedback: Optional[str] = None,
    ) -> Booking:
        """Owning customer rates a completed booking, once."""
        self._require_roles(actor, UserRole.CUSTOMER, message="Only customers can leave feedback")
        booking = self._load_visible(booking_id, actor, lock=True)

        if booking.status != BookingStatus.COMPLETED:
            raise InvalidStateError(
                "Feedback can only be left for completed bookings",
                details={"status": booking.status.value},
            )
        if booking.customer_rating is not None:
            raise InvalidStateError("Feedback has already been submitted for this booking")
        if not 1 <= rating <= 5:
            raise ValidationError.for_field("rating", "Rating must be between 1 and 5")

        booking.customer_rating = rating
        booking.customer_feedback = feedback
        self._commit()
        logger.info(f"Feedback recorded for booking {booking.id}", extra={"booking_id": str(booking.id), "rating": rating})
        return booking

    # ===== Reads =====

    def get_booking(self, booking_id: UUID, actor: Actor) -> Booking:
        """Booking by id; bookings outside the caller's scope are reported as not found."""
        return self._load_visible(booking_id, actor)

    def list_bookings(
        self,
        actor: Actor,
        filters: Optional[BookingFilters] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Dict[str, Any]:
        if page < 1:
            raise ValidationError.for_field("page", "Page must be 1 or greater")
        page_size = page_size or settings.default_page_size
        if page_size < 1:
            raise ValidationError.for_field("page_size", "Page size must be 1 or greater")
        page_size = min(page_size, settings.max_page_size)

        bookings, total = self.bookings.list(
            booking_scope(actor),
            filters or BookingFilters(),
            offset=(page - 1) * page_size,
            limit=page_size,
        )
        return {
            "bookings": bookings,
            "total": total,
            "page": page,
            "page_size": page_size,
            "has_next": page * page_size < total,
        }

    def get_schedule(
        self,
        actor: Actor,
        start: Optional[date] = None,
        days: int = 7,
    ) -> List[Booking]:
        """Upcoming active bookings visible to the caller, soonest first."""
        if days < 1:
            raise ValidationError.for_field("days", "Days must be 1 or greater")
        start = start or _now().date()
        window_start = day_start(start)
        window_end = window_start + timedelta(days=days)
        return self.bookings.schedule(booking_scope(actor), window_start, window_end, SCHEDULE_STATUSES)

    def list_pending_cancellations(self, actor: Actor) -> List[CancellationRequest]:
        self._require_roles(actor, UserRole.ADMIN, UserRole.STAFF)
        return self.cancellations.list_pending()

    def list_cancellation_history(self, actor: Actor, limit: Optional[int] = None) -> List[CancellationRequest]:
        self._require_roles(actor, UserRole.ADMIN, UserRole.STAFF)
        return self.cancellations.list_processed(limit or settings.cancellation_history_limit)

    def get_stats(self, actor: Actor) -> Dict[str, Any]:
        """Counts for the back-office dashboard."""
        self._require_roles(actor, UserRole.ADMIN, UserRole.STAFF)
        by_status = self.bookings.count_by("status")
        return {
            "total": sum(by_status.values()),
            "by_status": {status.value: by_status.get(status.value, 0) for status in BookingStatus},
            "by_service_type": self.bookings.count_by("service_type"),
            "by_property_size": self.bookings.count_by("property_size"),
            "pending_cancellations": self.cancellations.count_pending(),
        }

    def export(self, actor: Actor) -> Dict[str, Any]:
        """Every booking and cancellation request, for backup."""
        self._require_roles(actor, UserRole.ADMIN, message="Only admins can export data")
        bookings = self.bookings.all()
        requests = self.cancellations.all()
        logger.info(
            "Data export generated",
            extra={"actor_id": str(actor.id), "bookings": len(bookings), "cancellation_requests": len(requests)},
        )
        return {
            "exported_at": _now(),
            "bookings": bookings,
            "cancellation_requests": requests,
        }
