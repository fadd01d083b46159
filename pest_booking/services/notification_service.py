"""
Customer and admin notifications for booking workflow events.

Notifications are best-effort: they are sent only after the triggering
transaction has committed, and a delivery failure is logged and counted
but never propagated to the caller.

Delivery providers: email (SMTP) and console (development/testing).
"""
import asyncio
import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, List, Optional

from pest_booking.lib.logging import get_logger
from pest_booking.lib.metrics import get_metrics_collector
from pest_booking.lib.settings import settings
from pest_booking.models.bookings import Booking, BookingStatus
from pest_booking.models.cancellation_requests import CancellationRequest, CancellationStatus
from pest_booking.models.contacts import Contact


logger = get_logger(__name__)


class NotificationKind(str, enum.Enum):
    """Workflow events that trigger a notification."""
    BOOKING_CREATED = "booking_created"
    STATUS_CHANGED = "status_changed"
    CANCELLATION_REQUESTED = "cancellation_requested"
    CANCELLATION_DECIDED = "cancellation_decided"
    CONTACT_RECEIVED = "contact_received"
    CONTACT_ASSIGNED = "contact_assigned"


class Audience(str, enum.Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    STAFF = "staff"


@dataclass
class Notification:
    """A rendered message ready for delivery."""
    kind: NotificationKind
    recipient: str
    subject: str
    body: str
    audience: Audience = Audience.CUSTOMER
    context: Dict[str, Any] = field(default_factory=dict)


class Notifier(ABC):
    """
    Abstract base class for notification delivery providers.
    """

    @abstractmethod
    async def notify(self, notification: Notification) -> None:
        """
        Deliver a notification.

        Raises:
            Exception: any delivery failure; callers go through `notify_safely`
        """


class ConsoleNotifier(Notifier):
    """
    Console provider for development/testing.
    Logs messages instead of sending them.
    """

    async def notify(self, notification: Notification) -> None:
        logger.info(
            f"Notification ({notification.kind.value}) to {notification.recipient}: {notification.subject}",
            extra={
                "kind": notification.kind.value,
                "audience": notification.audience.value,
                "recipient": notification.recipient,
                "body": notification.body,
            },
        )


class EmailNotifier(Notifier):
    """Email provider using SMTP.

    Requires SMTP configuration in environment variables.
    """

    def __init__(self):
        if not settings.smtp_username or not settings.smtp_password:
            raise ValueError(
                "SMTP credentials not configured. "
                "Set SMTP_USERNAME and SMTP_PASSWORD environment variables."
            )

        self.smtp_host = settings.smtp_host
        self.smtp_port = settings.smtp_port
        self.smtp_username = settings.smtp_username
        self.smtp_password = settings.smtp_password
        self.from_email = settings.smtp_from_email or settings.smtp_username
        self.from_name = settings.smtp_from_name
        self.use_tls = settings.smtp_use_tls

    def _build_message(self, notification: Notification) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = notification.subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = notification.recipient

        html_body = "<br>".join(notification.body.splitlines())
        html = f"""
<html>
  <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
      <h2 style="color: #15803d;">{notification.subject}</h2>
      <p>{html_body}</p>
      <hr style="border: none; border-top: 1px solid #e5e7eb; margin: 20px 0;">
      <p style="color: #6b7280; font-size: 12px;">{self.from_name}</p>
    </div>
  </body>
</html>
"""
        msg.attach(MIMEText(notification.body, "plain"))
        msg.attach(MIMEText(html, "html"))
        return msg

    def _deliver(self, msg: MIMEMultipart) -> None:
        import smtplib

        if self.smtp_port == 465:
            with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port) as server:
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
                if self.use_tls:
                    server.starttls()
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)

    async def notify(self, notification: Notification) -> None:
        msg = self._build_message(notification)
        # smtplib blocks; keep it off the event loop
        await asyncio.to_thread(self._deliver, msg)
        logger.info(
            f"Email sent to {notification.recipient}",
            extra={"kind": notification.kind.value, "audience": notification.audience.value},
        )


def get_notifier() -> Notifier:
    """Provider selected by `settings.notification_provider`."""
    if settings.notification_provider == "email":
        return EmailNotifier()
    return ConsoleNotifier()


async def notify_safely(notifier: Notifier, notification: Notification) -> bool:
    """
    Send a notification, swallowing and recording any failure.

    Returns:
        True if delivered, False otherwise
    """
    metrics = get_metrics_collector()
    try:
        await notifier.notify(notification)
    except Exception as exc:
        logger.error(
            f"Failed to send {notification.kind.value} notification: {exc}",
            extra={
                "kind": notification.kind.value,
                "audience": notification.audience.value,
                "recipient": notification.recipient,
            },
            exc_info=True,
        )
        metrics.increment_notifications(kind=notification.kind.value, status="failed")
        return False

    metrics.increment_notifications(kind=notification.kind.value, status="sent")
    return True


async def notify_all(notifier: Notifier, notifications: List[Notification]) -> int:
    """Send each notification independently; returns the number delivered."""
    delivered = 0
    for notification in notifications:
        if await notify_safely(notifier, notification):
            delivered += 1
    return delivered


# ===== Message builders =====

STATUS_LABELS = {
    BookingStatus.PENDING: "Pending",
    BookingStatus.CONFIRMED: "Confirmed",
    BookingStatus.ASSIGNED: "Technician assigned",
    BookingStatus.IN_PROGRESS: "In progress",
    BookingStatus.COMPLETED: "Completed",
    BookingStatus.CANCELLATION_REQUESTED: "Cancellation requested",
    BookingStatus.CANCELED: "Canceled",
}


def _booking_context(booking: Booking) -> Dict[str, Any]:
    return {
        "booking_id": str(booking.id),
        "customer_name": booking.customer_name,
        "service_type": booking.service_type.value,
        "scheduled_at": booking.scheduled_at.isoformat(),
        "location": booking.location,
        "status": booking.status.value,
    }


def _booking_lines(booking: Booking) -> str:
    slot = f" ({booking.time_slot.value})" if booking.time_slot else ""
    return (
        f"Service: {booking.service_type.value}\n"
        f"Date: {booking.scheduled_at:%d %B %Y}{slot}\n"
        f"Address: {booking.location}\n"
        f"Reference: {booking.id}"
    )


def booking_created_messages(booking: Booking) -> List[Notification]:
    """Confirmation for the customer plus an alert for the admin mailbox."""
    context = _booking_context(booking)
    customer = Notification(
        kind=NotificationKind.BOOKING_CREATED,
        recipient=booking.customer_email,
        subject="We've received your booking",
        body=(
            f"Hi {booking.customer_name},\n\n"
            f"Thanks for booking with {settings.smtp_from_name}. "
            f"We'll confirm your appointment shortly.\n\n"
            f"{_booking_lines(booking)}"
        ),
        context=context,
    )
    admin = Notification(
        kind=NotificationKind.BOOKING_CREATED,
        recipient=settings.admin_email,
        subject=f"New booking: {booking.service_type.value} for {booking.customer_name}",
        body=(
            f"Customer: {booking.customer_name} <{booking.customer_email}>, {booking.customer_phone}\n"
            f"{_booking_lines(booking)}\n"
            f"Notes: {booking.notes or '-'}"
        ),
        audience=Audience.ADMIN,
        context=context,
    )
    return [customer, admin]


def status_changed_message(
    booking: Booking,
    old_status: BookingStatus,
    note: Optional[str] = None,
) -> Notification:
    label = STATUS_LABELS[booking.status]
    body = (
        f"Hi {booking.customer_name},\n\n"
        f"Your booking status is now: {label}.\n\n"
        f"{_booking_lines(booking)}"
    )
    if note:
        body += f"\n\nNote from our team: {note}"
    context = _booking_context(booking)
    context["previous_status"] = old_status.value
    return Notification(
        kind=NotificationKind.STATUS_CHANGED,
        recipient=booking.customer_email,
        subject=f"Booking update: {label}",
        body=body,
        context=context,
    )


def cancellation_requested_messages(
    booking: Booking,
    request: CancellationRequest,
) -> List[Notification]:
    """Alert for the admin mailbox plus an acknowledgement for the customer."""
    context = _booking_context(booking)
    context["request_id"] = str(request.id)
    admin = Notification(
        kind=NotificationKind.CANCELLATION_REQUESTED,
        recipient=settings.admin_email,
        subject=f"Cancellation requested by {booking.customer_name}",
        body=(
            f"{booking.customer_name} <{booking.customer_email}> asked to cancel their booking.\n"
            f"Reason: {request.reason or 'not given'}\n\n"
            f"{_booking_lines(booking)}"
        ),
        audience=Audience.ADMIN,
        context=context,
    )
    customer = Notification(
        kind=NotificationKind.CANCELLATION_REQUESTED,
        recipient=booking.customer_email,
        subject="We've received your cancellation request",
        body=(
            f"Hi {booking.customer_name},\n\n"
            f"Your cancellation request has been received and will be reviewed by our team.\n\n"
            f"{_booking_lines(booking)}"
        ),
        context=context,
    )
    return [admin, customer]


def cancellation_decided_message(
    booking: Booking,
    request: CancellationRequest,
) -> Notification:
    approved = request.status == CancellationStatus.APPROVED
    outcome = "approved" if approved else "declined"
    body = (
        f"Hi {booking.customer_name},\n\n"
        f"Your cancellation request has been {outcome}.\n\n"
        f"{_booking_lines(booking)}"
    )
    if request.admin_note:
        body += f"\n\nNote from our team: {request.admin_note}"
    context = _booking_context(booking)
    context.update({"request_id": str(request.id), "outcome": request.status.value})
    return Notification(
        kind=NotificationKind.CANCELLATION_DECIDED,
        recipient=booking.customer_email,
        subject=f"Cancellation request {outcome}",
        body=body,
        context=context,
    )


def contact_received_messages(contact: Contact) -> List[Notification]:
    context = {"contact_id": str(contact.id), "name": contact.name}
    return [
        Notification(
            kind=NotificationKind.CONTACT_RECEIVED,
            recipient=contact.email,
            subject="Thanks for getting in touch",
            body=(
                f"Hi {contact.name},\n\n"
                f"We've received your message and will get back to you soon."
            ),
            context=context,
        ),
        Notification(
            kind=NotificationKind.CONTACT_RECEIVED,
            recipient=settings.admin_email,
            subject=f"New enquiry from {contact.name}",
            body=(
                f"From: {contact.name} <{contact.email}> {contact.phone or ''}\n\n"
                f"{contact.message}"
            ),
            audience=Audience.ADMIN,
            context=context,
        ),
    ]


def contact_assigned_message(contact: Contact, assignee_email: str) -> Notification:
    return Notification(
        kind=NotificationKind.CONTACT_ASSIGNED,
        recipient=assignee_email,
        subject=f"Enquiry assigned to you: {contact.name}",
        body=(
            f"From: {contact.name} <{contact.email}> {contact.phone or ''}\n\n"
            f"{contact.message}"
        ),
        audience=Audience.STAFF,
        context={"contact_id": str(contact.id), "name": contact.name},
    )
