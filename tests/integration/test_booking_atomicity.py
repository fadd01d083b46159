"""
Integration tests for transaction boundaries: failed commits leave no
partial state, stale writes are rejected, and the one-pending-request
rule holds at the database level.
"""
import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from pest_booking.lib.errors import ConflictError, DuplicateRequestError, StorageError
from pest_booking.models.bookings import Booking, BookingStatus
from pest_booking.models.cancellation_requests import CancellationRequest, CancellationStatus


def failing_commit(error):
    def commit():
        raise error
    return commit


@pytest.mark.integration
async def test_failed_commit_rolls_back_status_and_cascade(booking_service, actors, booking_factory, db_session, notifier, monkeypatch):
    booking = booking_factory(status=BookingStatus.CONFIRMED)
    request = await booking_service.request_cancellation(booking.id, actors.customer)
    notifier.sent.clear()

    monkeypatch.setattr(
        db_session, "commit", failing_commit(OperationalError("COMMIT", {}, Exception("disk I/O error")))
    )
    with pytest.raises(StorageError):
        await booking_service.set_status(booking.id, BookingStatus.CANCELED, actors.admin)
    monkeypatch.undo()

    db_session.expire_all()
    assert db_session.get(Booking, booking.id).status == BookingStatus.CANCELLATION_REQUESTED
    assert db_session.get(CancellationRequest, request.id).status == CancellationStatus.PENDING
    # Nothing is announced for a change that did not happen
    assert notifier.sent == []


@pytest.mark.integration
async def test_failed_commit_on_decision_leaves_request_pending(booking_service, actors, booking_factory, db_session, monkeypatch):
    booking = booking_factory(status=BookingStatus.CONFIRMED)
    request = await booking_service.request_cancellation(booking.id, actors.customer)

    monkeypatch.setattr(
        db_session, "commit", failing_commit(OperationalError("COMMIT", {}, Exception("connection lost")))
    )
    with pytest.raises(StorageError):
        await booking_service.process_cancellation_request(request.id, actors.admin, approve=True)
    monkeypatch.undo()

    db_session.expire_all()
    assert db_session.get(Booking, booking.id).status == BookingStatus.CANCELLATION_REQUESTED
    assert db_session.get(CancellationRequest, request.id).status == CancellationStatus.PENDING


@pytest.mark.integration
async def test_stale_write_maps_to_conflict(booking_service, actors, booking_factory, db_session, monkeypatch):
    booking = booking_factory()

    monkeypatch.setattr(
        db_session, "commit", failing_commit(StaleDataError("UPDATE statement on table 'bookings' expected to update 1 row(s); 0 were matched."))
    )
    with pytest.raises(ConflictError) as exc_info:
        await booking_service.set_status(booking.id, BookingStatus.CONFIRMED, actors.admin)
    monkeypatch.undo()

    assert exc_info.value.status_code == 409
    db_session.expire_all()
    assert db_session.get(Booking, booking.id).status == BookingStatus.PENDING


@pytest.mark.integration
async def test_unique_violation_on_request_maps_to_duplicate(booking_service, actors, booking_factory, db_session, monkeypatch):
    """A concurrent request that slipped past the pending check is still rejected."""
    booking = booking_factory(status=BookingStatus.CONFIRMED)

    monkeypatch.setattr(
        db_session, "commit", failing_commit(IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")))
    )
    with pytest.raises(DuplicateRequestError):
        await booking_service.request_cancellation(booking.id, actors.customer)
    monkeypatch.undo()

    db_session.expire_all()
    assert db_session.get(Booking, booking.id).status == BookingStatus.CONFIRMED


@pytest.mark.integration
def test_database_allows_one_pending_request_per_booking(booking_factory, actors, db_session):
    booking = booking_factory(status=BookingStatus.CONFIRMED)

    for _ in range(2):
        db_session.add(
            CancellationRequest(
                booking_id=booking.id,
                requested_by=actors.customer.id,
                status=CancellationStatus.PENDING,
                previous_booking_status=BookingStatus.CONFIRMED,
            )
        )
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()


@pytest.mark.integration
def test_database_keeps_processed_history(booking_factory, actors, db_session):
    booking = booking_factory(status=BookingStatus.CONFIRMED)

    for status in (CancellationStatus.REJECTED, CancellationStatus.REJECTED, CancellationStatus.PENDING):
        db_session.add(
            CancellationRequest(
                booking_id=booking.id,
                requested_by=actors.customer.id,
                status=status,
                previous_booking_status=BookingStatus.CONFIRMED,
            )
        )
    db_session.commit()


@pytest.mark.integration
def test_version_increments_on_every_update(booking_factory, db_session):
    booking = booking_factory()
    assert booking.version == 1

    booking.status = BookingStatus.CONFIRMED
    db_session.commit()

    assert booking.version == 2
