from services.catalog import SERVICE_TYPES, service_name
from utils.emailer import send_email

SIGNATURE = "Med vänliga hälsningar,\nTN Golf"


def _booking_lines(booking):
    lines = [
        f"- Service: {service_name(booking.service_type)}",
        f"- Date: {booking.date.isoformat()}",
        f"- Time: {booking.time}",
    ]
    if booking.amount:
        lines.append(f"- Amount: {booking.amount} kr")
    return "\n".join(lines)


def _customer_line(user):
    if user is None:
        return "- Customer: unknown"
    return f"- Customer: {user.name or '-'} <{user.email}>"


class EmailNotifier:
    """Plain-text booking emails. Every method returns (sent, error)."""

    def __init__(self, coach_email, sender=send_email):
        self.coach_email = coach_email
        self.sender = sender

    def notify_booking_confirmed(self, booking, user, receipt_url=None):
        service = SERVICE_TYPES.get(booking.service_type, {})
        body = (
            f"Hi {user.name or 'there'}!\n\n"
            "Your booking is confirmed.\n\n"
            f"{_booking_lines(booking)}\n"
        )
        if service.get("description"):
            body += f"\n{service['description']}\n"
        if booking.notes:
            body += f"\nYour notes:\n{booking.notes}\n"
        if receipt_url:
            body += f"\nReceipt: {receipt_url}\n"
        body += f"\nWe look forward to seeing you!\n\n{SIGNATURE}"
        subject = f"Booking confirmation - {service_name(booking.service_type)} {booking.date.isoformat()}"
        return self.sender(user.email, subject, body)

    def notify_booking_cancelled(self, booking, user):
        body = (
            f"Hi {user.name or 'there'}!\n\n"
            "Your booking has been cancelled.\n\n"
            f"{_booking_lines(booking)}\n\n"
            "If you paid online, the refund is handled separately.\n\n"
            f"{SIGNATURE}"
        )
        subject = f"Booking cancelled - {service_name(booking.service_type)} {booking.date.isoformat()}"
        return self.sender(user.email, subject, body)

    def notify_cancellation_requested(self, booking, user):
        requested = booking.cancellation_requested_at
        body = (
            "A customer has asked to cancel a booking.\n\n"
            f"{_booking_lines(booking)}\n"
            f"{_customer_line(user)}\n"
            f"- Requested at: {requested.isoformat() if requested else '-'}\n\n"
            "Cancel it from the admin page to approve the request."
        )
        subject = f"Cancellation request - {booking.date.isoformat()} {booking.time}"
        return self.sender(self.coach_email, subject, body, reply_to=user.email if user else None)

    def notify_new_paid_booking_pending_confirmation(self, booking, user, receipt_url=None):
        body = (
            "A new booking has been paid and is waiting for your confirmation.\n\n"
            f"{_booking_lines(booking)}\n"
            f"{_customer_line(user)}\n"
        )
        if booking.notes:
            body += f"- Notes: {booking.notes}\n"
        if receipt_url:
            body += f"- Receipt: {receipt_url}\n"
        subject = f"New paid booking - {booking.date.isoformat()} {booking.time}"
        return self.sender(self.coach_email, subject, body, reply_to=user.email if user else None)
