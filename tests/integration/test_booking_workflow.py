"""
Integration tests for the booking lifecycle and cancellation workflow,
run against the service layer and the in-memory database.
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from pest_booking.lib.errors import (
    AlreadyProcessedError,
    AuthorizationError,
    DuplicateRequestError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from pest_booking.lib.metrics import get_metrics_collector
from pest_booking.models.bookings import Booking, BookingStatus
from pest_booking.models.cancellation_requests import CancellationRequest, CancellationStatus
from pest_booking.services.notification_service import Audience, NotificationKind


def count_requests(db_session, booking_id) -> int:
    return db_session.execute(
        select(func.count()).select_from(CancellationRequest).where(
            CancellationRequest.booking_id == booking_id
        )
    ).scalar_one()


@pytest.mark.integration
class TestBookingScenarios:
    """End-to-end walk through the booking lifecycle."""

    async def test_scenario_a_create_and_confirm(self, booking_service, actors, notifier, db_session, booking_payload):
        summary = await booking_service.create_booking(booking_payload(), actors.customer)

        assert summary.status == BookingStatus.PENDING
        assert summary.service_type.value == "termite"
        booking = db_session.get(Booking, summary.id)
        assert booking.customer_id == actors.customer.id

        notifier.sent.clear()
        updated = await booking_service.set_status(summary.id, BookingStatus.CONFIRMED, actors.admin)

        assert updated.status == BookingStatus.CONFIRMED
        status_messages = notifier.of_kind(NotificationKind.STATUS_CHANGED)
        assert len(status_messages) == 1
        assert status_messages[0].recipient == "casey@example.com"

    async def test_scenario_b_request_cancellation(self, booking_service, actors, notifier, booking_factory, db_session):
        booking = booking_factory(status=BookingStatus.CONFIRMED)

        request = await booking_service.request_cancellation(booking.id, actors.customer, reason="moving house")

        db_session.expire_all()
        assert db_session.get(Booking, booking.id).status == BookingStatus.CANCELLATION_REQUESTED
        assert request.status == CancellationStatus.PENDING
        assert request.reason == "moving house"
        assert request.previous_booking_status == BookingStatus.CONFIRMED
        assert count_requests(db_session, booking.id) == 1

        sent = notifier.of_kind(NotificationKind.CANCELLATION_REQUESTED)
        assert sorted(n.audience for n in sent) == [Audience.ADMIN, Audience.CUSTOMER]

    async def test_scenario_c_approve_then_reprocess(self, booking_service, actors, notifier, booking_factory, db_session):
        booking = booking_factory(status=BookingStatus.CONFIRMED)
        request = await booking_service.request_cancellation(booking.id, actors.customer, reason="moving house")

        processed = await booking_service.process_cancellation_request(request.id, actors.admin, approve=True)

        db_session.expire_all()
        assert processed.status == CancellationStatus.APPROVED
        assert processed.processed_by == actors.admin.id
        assert processed.processed_at is not None
        assert db_session.get(Booking, booking.id).status == BookingStatus.CANCELED

        decisions = notifier.of_kind(NotificationKind.CANCELLATION_DECIDED)
        assert len(decisions) == 1
        assert decisions[0].recipient == booking.customer_email

        with pytest.raises(AlreadyProcessedError):
            await booking_service.process_cancellation_request(request.id, actors.admin, approve=False)

    async def test_scenario_d_duplicate_request(self, booking_service, actors, booking_factory, db_session):
        booking = booking_factory(status=BookingStatus.CONFIRMED)
        await booking_service.request_cancellation(booking.id, actors.customer, reason="moving house")

        with pytest.raises(DuplicateRequestError):
            await booking_service.request_cancellation(booking.id, actors.customer, reason="really")

        assert count_requests(db_session, booking.id) == 1

    async def test_scenario_e_reports_every_invalid_field(self, booking_service, booking_payload, db_session):
        with pytest.raises(ValidationError) as exc_info:
            await booking_service.create_booking(
                booking_payload(property_size="huge", phone="12"),
            )

        assert set(exc_info.value.fields) == {"property_size", "phone"}
        assert db_session.execute(select(func.count()).select_from(Booking)).scalar_one() == 0


@pytest.mark.integration
class TestCreateBooking:

    async def test_past_date_never_persists(self, booking_service, booking_payload, db_session):
        past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()

        with pytest.raises(ValidationError):
            await booking_service.create_booking(booking_payload(scheduled_at=past))

        assert db_session.execute(select(func.count()).select_from(Booking)).scalar_one() == 0

    async def test_public_submission_is_not_linked(self, booking_service, booking_payload, db_session, notifier):
        summary = await booking_service.create_booking(booking_payload())

        booking = db_session.get(Booking, summary.id)
        assert booking.customer_id is None
        assert booking.version == 1
        created = notifier.of_kind(NotificationKind.BOOKING_CREATED)
        assert sorted(n.audience for n in created) == [Audience.ADMIN, Audience.CUSTOMER]
        assert get_metrics_collector().get_counter_value(
            "bookings_created_total", {"service_type": "termite"}
        ) == 1


@pytest.mark.integration
class TestSetStatus:

    async def test_same_status_leaves_record_unchanged(self, booking_service, actors, booking_factory, db_session):
        booking = booking_factory(status=BookingStatus.CONFIRMED)
        version = booking.version

        with pytest.raises(InvalidTransitionError):
            await booking_service.set_status(booking.id, BookingStatus.CONFIRMED, actors.admin)

        db_session.expire_all()
        reloaded = db_session.get(Booking, booking.id)
        assert reloaded.status == BookingStatus.CONFIRMED
        assert reloaded.version == version

    async def test_customer_cannot_change_status(self, booking_service, actors, booking_factory):
        booking = booking_factory()

        with pytest.raises(AuthorizationError):
            await booking_service.set_status(booking.id, BookingStatus.CONFIRMED, actors.customer)

    async def test_technician_not_assigned_is_forbidden(self, booking_service, actors, booking_factory):
        booking = booking_factory(status=BookingStatus.ASSIGNED, technician_id=actors.other_technician.id)

        with pytest.raises(AuthorizationError):
            await booking_service.set_status(booking.id, BookingStatus.IN_PROGRESS, actors.technician)

    async def test_technician_limited_to_field_statuses(self, booking_service, actors, booking_factory):
        booking = booking_factory(status=BookingStatus.PENDING, technician_id=actors.technician.id)

        with pytest.raises(AuthorizationError):
            await booking_service.set_status(booking.id, BookingStatus.CONFIRMED, actors.technician)

    async def test_technician_completes_assigned_booking(self, booking_service, actors, booking_factory):
        booking = booking_factory(status=BookingStatus.ASSIGNED, technician_id=actors.technician.id)

        await booking_service.set_status(booking.id, BookingStatus.IN_PROGRESS, actors.technician)
        done = await booking_service.set_status(
            booking.id, BookingStatus.COMPLETED, actors.technician, completion_notes="Baits laid in roof void"
        )

        assert done.status == BookingStatus.COMPLETED
        assert done.completion_notes == "Baits laid in roof void"

    async def test_technician_policy_is_configurable(self, booking_service, actors, booking_factory, monkeypatch):
        from pest_booking.lib.settings import settings

        monkeypatch.setattr(settings, "technician_allowed_statuses", ["confirmed", "in-progress", "completed"])
        booking = booking_factory(status=BookingStatus.PENDING, technician_id=actors.technician.id)

        updated = await booking_service.set_status(booking.id, BookingStatus.CONFIRMED, actors.technician)
        assert updated.status == BookingStatus.CONFIRMED

    async def test_technician_cannot_resolve_pending_request(self, booking_service, actors, booking_factory, db_session):
        booking = booking_factory(status=BookingStatus.ASSIGNED, technician_id=actors.technician.id)
        request = await booking_service.request_cancellation(booking.id, actors.customer)

        with pytest.raises(AuthorizationError):
            await booking_service.set_status(booking.id, BookingStatus.IN_PROGRESS, actors.technician)

        db_session.expire_all()
        assert db_session.get(Booking, booking.id).status == BookingStatus.CANCELLATION_REQUESTED
        untouched = db_session.get(CancellationRequest, request.id)
        assert untouched.status == CancellationStatus.PENDING
        assert untouched.processed_by is None

    async def test_missing_booking(self, booking_service, actors):
        from uuid import uuid4

        with pytest.raises(NotFoundError):
            await booking_service.set_status(uuid4(), BookingStatus.CONFIRMED, actors.admin)

    async def test_confirm_rejects_pending_request(self, booking_service, actors, booking_factory, db_session):
        booking = booking_factory(status=BookingStatus.PENDING)
        request = await booking_service.request_cancellation(booking.id, actors.customer)

        await booking_service.set_status(booking.id, BookingStatus.CONFIRMED, actors.staff, note="Kept as booked")

        db_session.expire_all()
        assert db_session.get(Booking, booking.id).status == BookingStatus.CONFIRMED
        resolved = db_session.get(CancellationRequest, request.id)
        assert resolved.status == CancellationStatus.REJECTED
        assert resolved.processed_by == actors.staff.id
        assert resolved.admin_note == "Kept as booked"

    async def test_cancel_approves_pending_request(self, booking_service, actors, booking_factory, db_session):
        booking = booking_factory(status=BookingStatus.CONFIRMED)
        request = await booking_service.request_cancellation(booking.id, actors.customer)

        await booking_service.set_status(booking.id, BookingStatus.CANCELED, actors.admin)

        db_session.expire_all()
        assert db_session.get(Booking, booking.id).status == BookingStatus.CANCELED
        assert db_session.get(CancellationRequest, request.id).status == CancellationStatus.APPROVED

    async def test_notification_failure_does_not_fail_transition(self, db_session, actors, booking_factory, failing_notifier):
        from pest_booking.services.booking_service import BookingService

        service = BookingService(db_session, notifier=failing_notifier)
        booking = booking_factory()

        updated = await service.set_status(booking.id, BookingStatus.CONFIRMED, actors.admin)

        db_session.expire_all()
        assert db_session.get(Booking, booking.id).status == BookingStatus.CONFIRMED
        assert updated.status == BookingStatus.CONFIRMED
        assert get_metrics_collector().get_counter_value(
            "notifications_total", {"kind": "status_changed", "status": "failed"}
        ) == 1

    async def test_transition_metrics(self, booking_service, actors, booking_factory):
        booking = booking_factory()

        await booking_service.set_status(booking.id, BookingStatus.CONFIRMED, actors.admin)

        assert get_metrics_collector().get_counter_value(
            "booking_transitions_total", {"from_status": "pending", "to_status": "confirmed"}
        ) == 1


@pytest.mark.integration
class TestCancellationWorkflow:

    async def test_reject_leaves_booking_status_untouched(self, booking_service, actors, booking_factory, db_session, notifier):
        booking = booking_factory(status=BookingStatus.ASSIGNED, technician_id=actors.technician.id)
        request = await booking_service.request_cancellation(booking.id, actors.customer)

        processed = await booking_service.process_cancellation_request(
            request.id, actors.admin, approve=False, note="Service is tomorrow"
        )

        db_session.expire_all()
        assert processed.status == CancellationStatus.REJECTED
        assert processed.admin_note == "Service is tomorrow"
        assert db_session.get(Booking, booking.id).status == BookingStatus.CANCELLATION_REQUESTED
        assert processed.previous_booking_status == BookingStatus.ASSIGNED
        decision = notifier.of_kind(NotificationKind.CANCELLATION_DECIDED)[0]
        assert "declined" in decision.subject

    async def test_new_request_allowed_after_rejection(self, booking_service, actors, booking_factory, db_session):
        booking = booking_factory(status=BookingStatus.CONFIRMED)
        first = await booking_service.request_cancellation(booking.id, actors.customer)
        await booking_service.process_cancellation_request(first.id, actors.admin, approve=False)

        second = await booking_service.request_cancellation(booking.id, actors.customer)

        assert second.id != first.id
        assert count_requests(db_session, booking.id) == 2

    @pytest.mark.parametrize("status", [BookingStatus.COMPLETED, BookingStatus.CANCELED])
    async def test_terminal_booking_cannot_be_cancelled(self, booking_service, actors, booking_factory, status):
        booking = booking_factory(status=status)

        with pytest.raises(InvalidStateError):
            await booking_service.request_cancellation(booking.id, actors.customer)

    async def test_other_customers_booking_is_hidden(self, booking_service, actors, booking_factory):
        booking = booking_factory(status=BookingStatus.CONFIRMED)

        with pytest.raises(NotFoundError):
            await booking_service.request_cancellation(booking.id, actors.other_customer)

    async def test_only_customers_request_cancellation(self, booking_service, actors, booking_factory):
        booking = booking_factory(status=BookingStatus.CONFIRMED)

        with pytest.raises(AuthorizationError):
            await booking_service.request_cancellation(booking.id, actors.admin)

    async def test_only_admins_process(self, booking_service, actors, booking_factory):
        booking = booking_factory(status=BookingStatus.CONFIRMED)
        request = await booking_service.request_cancellation(booking.id, actors.customer)

        with pytest.raises(AuthorizationError):
            await booking_service.process_cancellation_request(request.id, actors.staff, approve=True)

    async def test_completed_booking_request_cannot_be_processed(self, booking_service, actors, booking_factory, db_session):
        booking = booking_factory(status=BookingStatus.CONFIRMED)
        request = CancellationRequest(
            booking_id=booking.id,
            requested_by=actors.customer.id,
            previous_booking_status=BookingStatus.CONFIRMED,
        )
        db_session.add(request)
        booking.status = BookingStatus.COMPLETED
        db_session.commit()

        with pytest.raises(InvalidStateError):
            await booking_service.process_cancellation_request(request.id, actors.admin, approve=True)

        db_session.expire_all()
        assert db_session.get(CancellationRequest, request.id).status == CancellationStatus.PENDING

    async def test_email_match_grants_ownership(self, booking_service, actors, booking_factory):
        """A public booking made with the customer's email belongs to them."""
        booking = booking_factory(customer_id=None, customer_email="CASEY@example.com", status=BookingStatus.CONFIRMED)

        request = await booking_service.request_cancellation(booking.id, actors.customer)

        assert request.booking_id == booking.id


@pytest.mark.integration
class TestBackOfficeEdits:

    async def test_assign_technician_and_price(self, booking_service, actors, booking_factory):
        from decimal import Decimal
        from pest_booking.schemas.bookings import BookingDetailsUpdate

        booking = booking_factory(status=BookingStatus.CONFIRMED)

        updated = await booking_service.update_booking_details(
            booking.id,
            actors.staff,
            BookingDetailsUpdate(technician_id=actors.technician.id, price=Decimal("249.00")),
        )

        assert updated.technician_id == actors.technician.id
        assert updated.price == Decimal("249.00")

    async def test_unset_fields_are_left_alone(self, booking_service, actors, booking_factory):
        from pest_booking.schemas.bookings import BookingDetailsUpdate

        booking = booking_factory(status=BookingStatus.CONFIRMED, technician_id=actors.technician.id)

        updated = await booking_service.update_booking_details(
            booking.id, actors.admin, BookingDetailsUpdate(admin_note="Gate code 4411")
        )

        assert updated.technician_id == actors.technician.id
        assert updated.admin_note == "Gate code 4411"

    @pytest.mark.parametrize("target", ["customer", "inactive_technician"])
    async def test_assignee_must_be_active_technician(self, booking_service, actors, booking_factory, target):
        from pest_booking.schemas.bookings import BookingDetailsUpdate

        booking = booking_factory(status=BookingStatus.CONFIRMED)

        with pytest.raises(ValidationError) as exc_info:
            await booking_service.update_booking_details(
                booking.id, actors.admin, BookingDetailsUpdate(technician_id=getattr(actors, target).id)
            )
        assert exc_info.value.fields == ["technician_id"]

    async def test_terminal_booking_keeps_its_technician(self, booking_service, actors, booking_factory):
        from pest_booking.schemas.bookings import BookingDetailsUpdate

        booking = booking_factory(status=BookingStatus.COMPLETED, technician_id=actors.technician.id)

        with pytest.raises(InvalidStateError):
            await booking_service.update_booking_details(
                booking.id, actors.admin, BookingDetailsUpdate(technician_id=actors.other_technician.id)
            )

    async def test_feedback_on_completed_booking_once(self, booking_service, actors, booking_factory):
        booking = booking_factory(status=BookingStatus.COMPLETED)

        rated = await booking_service.submit_feedback(booking.id, actors.customer, 5, "Very thorough")
        assert rated.customer_rating == 5

        with pytest.raises(InvalidStateError):
            await booking_service.submit_feedback(booking.id, actors.customer, 4)

    async def test_feedback_requires_completion(self, booking_service, actors, booking_factory):
        booking = booking_factory(status=BookingStatus.IN_PROGRESS)

        with pytest.raises(InvalidStateError):
            await booking_service.submit_feedback(booking.id, actors.customer, 5)
