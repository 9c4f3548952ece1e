"""
Best-effort payment emails.

Every function here swallows and logs its own failures: a broken SMTP
server must never undo or block a payment that has already been recorded.
"""

import logging

from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


def _send(subject, body, recipient):
    try:
        send_mail(
            subject,
            body,
            settings.DEFAULT_FROM_EMAIL,
            [recipient],
            fail_silently=False,
        )
        return True
    except Exception:
        logger.exception("Failed to send '%s' email to %s", subject, recipient)
        return False


def send_payment_confirmation(registration, payment):
    body = (
        f"Hi {registration.first_name},\n\n"
        f"we received your payment of ${payment.amount} for {registration.event.title}.\n"
        f"Registration: {registration.registration_number}\n"
        f"Total paid: ${registration.total_paid}\n"
        f"Remaining balance: ${registration.remaining_balance}\n"
    )
    if payment.receipt_url:
        body += f"Receipt: {payment.receipt_url}\n"
    return _send(
        f"Payment received - {registration.registration_number}",
        body,
        registration.email,
    )


def send_registration_completed(registration):
    body = (
        f"Hi {registration.first_name},\n\n"
        f"your registration {registration.registration_number} for "
        f"{registration.event.title} is now fully paid. See you there!\n"
    )
    return _send(
        f"You're all set - {registration.event.title}",
        body,
        registration.email,
    )
