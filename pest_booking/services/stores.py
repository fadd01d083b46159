"""
Repository interfaces for bookings and cancellation requests, plus the
SQLAlchemy implementation used in production and tests.

Services depend on the abstract stores only; the transaction boundary
(commit/rollback) stays with the service that owns the session.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import false, func, or_, select, true
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from pest_booking.models.bookings import Booking, BookingStatus
from pest_booking.models.cancellation_requests import CancellationRequest, CancellationStatus
from pest_booking.services.scope import BookingScope


@dataclass(frozen=True)
class BookingFilters:
    """Optional list filters. Dates are inclusive calendar days in UTC."""
    status: Optional[BookingStatus] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    search: Optional[str] = None


def day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


class BookingStore(ABC):
    """Booking persistence."""

    @abstractmethod
    def add(self, booking: Booking) -> Booking:
        ...

    @abstractmethod
    def get(self, booking_id: UUID, lock: bool = False) -> Optional[Booking]:
        """Load by id without any visibility filtering."""

    @abstractmethod
    def list(
        self,
        scope: BookingScope,
        filters: BookingFilters,
        offset: int,
        limit: int,
    ) -> Tuple[List[Booking], int]:
        """Return one page of visible bookings (newest first) and the total count."""

    @abstractmethod
    def schedule(
        self,
        scope: BookingScope,
        start: datetime,
        end: datetime,
        statuses: Sequence[BookingStatus],
    ) -> List[Booking]:
        """Visible bookings in [start, end) with one of `statuses`, soonest first."""

    @abstractmethod
    def count_by(self, column_name: str) -> Dict[str, int]:
        ...

    @abstractmethod
    def all(self) -> List[Booking]:
        ...


class CancellationStore(ABC):
    """Cancellation request persistence."""

    @abstractmethod
    def add(self, request: CancellationRequest) -> CancellationRequest:
        ...

    @abstractmethod
    def get(self, request_id: UUID, lock: bool = False) -> Optional[CancellationRequest]:
        ...

    @abstractmethod
    def pending_for_booking(self, booking_id: UUID, lock: bool = False) -> Optional[CancellationRequest]:
        ...

    @abstractmethod
    def list_pending(self) -> List[CancellationRequest]:
        """Pending requests, oldest first."""

    @abstractmethod
    def list_processed(self, limit: int) -> List[CancellationRequest]:
        """Approved/rejected requests, most recently processed first."""

    @abstractmethod
    def count_pending(self) -> int:
        ...

    @abstractmethod
    def all(self) -> List[CancellationRequest]:
        ...


def scope_clause(scope: BookingScope) -> ColumnElement[bool]:
    """Translate a BookingScope into a WHERE clause over `bookings`."""
    if scope.unrestricted:
        return true()
    if scope.technician_id is not None:
        return Booking.technician_id == scope.technician_id
    conditions = []
    if scope.customer_id is not None:
        conditions.append(Booking.customer_id == scope.customer_id)
    if scope.customer_email:
        conditions.append(func.lower(Booking.customer_email) == scope.customer_email.lower())
    if not conditions:
        return false()
    return or_(*conditions)


def _search_clause(term: str) -> ColumnElement[bool]:
    pattern = f"%{term.strip()}%"
    return or_(
        Booking.customer_name.ilike(pattern),
        Booking.customer_email.ilike(pattern),
        Booking.customer_phone.ilike(pattern),
        Booking.address_street.ilike(pattern),
        Booking.address_city.ilike(pattern),
        Booking.address_postal_code.ilike(pattern),
    )


class SqlAlchemyBookingStore(BookingStore):
    """Booking store backed by a SQLAlchemy session."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, booking: Booking) -> Booking:
        self.session.add(booking)
        return booking

    def get(self, booking_id: UUID, lock: bool = False) -> Optional[Booking]:
        stmt = select(Booking).where(Booking.id == booking_id)
        if lock:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def list(
        self,
        scope: BookingScope,
        filters: BookingFilters,
        offset: int,
        limit: int,
    ) -> Tuple[List[Booking], int]:
        stmt = select(Booking).where(scope_clause(scope))

        if filters.status is not None:
            stmt = stmt.where(Booking.status == filters.status)
        if filters.date_from is not None:
            stmt = stmt.where(Booking.scheduled_at >= day_start(filters.date_from))
        if filters.date_to is not None:
            stmt = stmt.where(Booking.scheduled_at < day_start(filters.date_to + timedelta(days=1)))
        if filters.search and filters.search.strip():
            stmt = stmt.where(_search_clause(filters.search))

        total = self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()

        stmt = stmt.order_by(Booking.created_at.desc(), Booking.id).offset(offset).limit(limit)
        bookings = list(self.session.execute(stmt).scalars().all())
        return bookings, total

    def schedule(
        self,
        scope: BookingScope,
        start: datetime,
        end: datetime,
        statuses: Sequence[BookingStatus],
    ) -> List[Booking]:
        stmt = (
            select(Booking)
            .where(scope_clause(scope))
            .where(Booking.status.in_(list(statuses)))
            .where(Booking.scheduled_at >= start)
            .where(Booking.scheduled_at < end)
            .order_by(Booking.scheduled_at.asc())
        )
        return list(self.session.execute(stmt).scalars().all())

    def count_by(self, column_name: str) -> Dict[str, int]:
        column = getattr(Booking, column_name)
        rows = self.session.execute(
            select(column, func.count()).group_by(column)
        ).all()
        return {
            (key.value if hasattr(key, "value") else str(key)): count
            for key, count in rows
        }

    def all(self) -> List[Booking]:
        stmt = select(Booking).order_by(Booking.created_at.asc())
        return list(self.session.execute(stmt).scalars().all())


class SqlAlchemyCancellationStore(CancellationStore):
    """Cancellation request store backed by a SQLAlchemy session."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, request: CancellationRequest) -> CancellationRequest:
        self.session.add(request)
        return request

    def get(self, request_id: UUID, lock: bool = False) -> Optional[CancellationRequest]:
        stmt = select(CancellationRequest).where(CancellationRequest.id == request_id)
        if lock:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalar_one_or_none()

    def pending_for_booking(self, booking_id: UUID, lock: bool = False) -> Optional[CancellationRequest]:
        stmt = select(CancellationRequest).where(
            CancellationRequest.booking_id == booking_id,
            CancellationRequest.status == CancellationStatus.PENDING,
        )
        if lock:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalars().first()

    def list_pending(self) -> List[CancellationRequest]:
        stmt = (
            select(CancellationRequest)
            .where(CancellationRequest.status == CancellationStatus.PENDING)
            .order_by(CancellationRequest.created_at.asc())
        )
        return list(self.session.execute(stmt).scalars().all())

    def list_processed(self, limit: int) -> List[CancellationRequest]:
        stmt = (
            select(CancellationRequest)
            .where(CancellationRequest.status != CancellationStatus.PENDING)
            .order_by(CancellationRequest.processed_at.desc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars().all())

    def count_pending(self) -> int:
        stmt = select(func.count()).select_from(CancellationRequest).where(
            CancellationRequest.status == CancellationStatus.PENDING
        )
        return self.session.execute(stmt).scalar_one()

    def all(self) -> List[CancellationRequest]:
        stmt = select(CancellationRequest).order_by(CancellationRequest.created_at.asc())
        return list(self.session.execute(stmt).scalars().all())
