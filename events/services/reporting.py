"""
Read-side queries for attendees and admins.
"""

from django.db.models import Count, Q, Sum

from events.exceptions import EventNotFound, PaymentValidationError
from events.models import Event, EventRegistration
from events.services.ledger import ZERO, fetch_registration


def registration_balance(registration_id) -> dict:
    registration = fetch_registration(registration_id)
    return {
        "registration_id": str(registration.pk),
        "registration_number": registration.registration_number,
        "event_id": registration.event_id,
        "event_title": registration.event.title,
        "total_amount": registration.total_amount,
        "total_paid": registration.total_paid,
        "remaining_balance": registration.remaining_balance,
        "is_fully_paid": registration.is_fully_paid,
        "payment_status": registration.payment_status,
        "payment_mode": registration.payment_mode,
        "next_payment_due": registration.next_payment_due_date,
        "minimum_installment": registration.event.minimum_installment_amount,
    }


def payment_history(registration_id) -> dict:
    registration = fetch_registration(registration_id)
    return {
        "registration_number": registration.registration_number,
        "payment_history": registration.payment_history,
        "total_paid": registration.total_paid,
        "remaining_balance": registration.remaining_balance,
    }


def search_registrations(*, email=None, registration_number=None):
    if not email and not registration_number:
        raise PaymentValidationError("Provide an email or a registration number.")
    filters = Q()
    if email:
        filters &= Q(email__iexact=email.strip())
    if registration_number:
        filters &= Q(registration_number__iexact=registration_number.strip())
    return (
        EventRegistration.objects.filter(filters)
        .select_related("event")
        .order_by("-created_at")
    )


def event_payment_summary(event_id) -> dict:
    try:
        event = Event.objects.get(pk=event_id)
    except Event.DoesNotExist:
        raise EventNotFound("Event not found.")

    registrations = event.registrations.filter(
        payment_mode=EventRegistration.MODE_PARTIAL
    )
    totals = registrations.aggregate(
        count=Count("pk"),
        fully_paid=Count("pk", filter=Q(is_fully_paid=True)),
        collected=Sum("total_paid"),
        outstanding=Sum("remaining_balance"),
    )
    return {
        "event_id": event.pk,
        "event_title": event.title,
        "total_registrations": totals["count"],
        "fully_paid": totals["fully_paid"],
        "partially_paid": registrations.filter(
            payment_status=EventRegistration.STATUS_PARTIAL
        ).count(),
        "total_collected": totals["collected"] or ZERO,
        "total_outstanding": totals["outstanding"] or ZERO,
        "registrations": registrations.order_by("-created_at"),
    }
