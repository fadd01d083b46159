"""Unit tests for the booking status transition table."""
import pytest

from pest_booking.lib.errors import InvalidTransitionError
from pest_booking.models.bookings import BookingStatus
from pest_booking.services.booking_service import check_transition


S = BookingStatus


@pytest.mark.unit
@pytest.mark.parametrize("status", list(BookingStatus))
def test_same_status_is_rejected(status):
    with pytest.raises(InvalidTransitionError) as exc_info:
        check_transition(status, status)
    assert exc_info.value.details["requested_status"] == status.value


@pytest.mark.unit
@pytest.mark.parametrize(
    "current, new",
    [
        (S.PENDING, S.CONFIRMED),
        (S.PENDING, S.ASSIGNED),
        (S.CONFIRMED, S.ASSIGNED),
        (S.CONFIRMED, S.IN_PROGRESS),
        (S.ASSIGNED, S.IN_PROGRESS),
        (S.IN_PROGRESS, S.COMPLETED),
        (S.PENDING, S.CANCELED),
        (S.IN_PROGRESS, S.CANCELED),
        (S.CANCELLATION_REQUESTED, S.CONFIRMED),
        (S.CANCELLATION_REQUESTED, S.CANCELED),
        (S.CANCELLATION_REQUESTED, S.COMPLETED),
    ],
)
def test_allowed_transitions(current, new):
    check_transition(current, new)


@pytest.mark.unit
@pytest.mark.parametrize(
    "current, new",
    [
        (S.CONFIRMED, S.PENDING),
        (S.ASSIGNED, S.CONFIRMED),
        (S.IN_PROGRESS, S.ASSIGNED),
        (S.COMPLETED, S.IN_PROGRESS),
        (S.COMPLETED, S.CANCELED),
        (S.CANCELED, S.CONFIRMED),
        (S.CANCELED, S.PENDING),
        (S.CONFIRMED, S.CANCELLATION_REQUESTED),
        (S.CANCELLATION_REQUESTED, S.PENDING),
    ],
)
def test_rejected_transitions(current, new):
    with pytest.raises(InvalidTransitionError):
        check_transition(current, new)
