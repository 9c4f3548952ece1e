"""
Admin recalculation tools.

Repair path for registrations whose aggregate drifted from the ledger.
Recalculation overwrites the aggregate with what the completed trackers
say and does nothing else: no emails, no signals.
"""

import logging

from django.db import transaction

from events.exceptions import EventNotFound
from events.models import Event, EventPaymentTracker, EventRegistration
from events.services.ledger import (
    fetch_registration,
    recompute_registration,
    snapshot_for,
)

logger = logging.getLogger(__name__)


def _aggregate_values(registration: EventRegistration) -> dict:
    return {
        "total_amount": str(registration.total_amount),
        "total_paid": str(registration.total_paid),
        "remaining_balance": str(registration.remaining_balance),
        "is_fully_paid": registration.is_fully_paid,
        "payment_status": registration.payment_status,
    }


def recalculate_registration(registration_id) -> dict:
    """
    Recompute one registration from its completed payments.

    Raises:
        RegistrationNotFound
    """
    with transaction.atomic():
        registration = fetch_registration(registration_id, for_update=True)
        old_values = _aggregate_values(registration)
        snapshot = recompute_registration(registration)
        new_values = _aggregate_values(registration)

    changed = old_values != new_values
    if changed:
        logger.warning(
            "Registration %s drifted from its ledger: %s -> %s",
            registration.registration_number,
            old_values,
            new_values,
        )
    return {
        "registration_id": str(registration.pk),
        "registration_number": registration.registration_number,
        "old_values": old_values,
        "new_values": new_values,
        "payments_processed": snapshot.payments_counted,
        "changed": changed,
    }


def recalculate_partial_registrations() -> dict:
    """Recompute every registration paid in installments. One failure doesn't stop the rest."""
    ids = list(
        EventRegistration.objects.filter(
            payment_mode=EventRegistration.MODE_PARTIAL
        ).values_list("pk", flat=True)
    )
    summary = {"total": len(ids), "updated": 0, "errors": 0, "results": []}
    for registration_id in ids:
        try:
            result = recalculate_registration(registration_id)
        except Exception:
            logger.exception("Recalculation failed for registration %s", registration_id)
            summary["errors"] += 1
            continue
        if result["changed"]:
            summary["updated"] += 1
            summary["results"].append(result)
    return summary


def inspect_registration(registration_id) -> dict:
    """Aggregate, ledger and whether the two agree. Read only."""
    registration = fetch_registration(registration_id)
    snapshot = snapshot_for(registration)
    stored = _aggregate_values(registration)
    expected = {
        "total_amount": str(snapshot.total_amount),
        "total_paid": str(snapshot.total_paid),
        "remaining_balance": str(snapshot.remaining_balance),
        "is_fully_paid": snapshot.is_fully_paid,
        "payment_status": snapshot.payment_status,
    }
    return {
        "registration": registration,
        "payments": list(registration.payments.order_by("created_at")),
        "stored_values": stored,
        "expected_values": expected,
        "consistent": stored == expected,
    }


def delete_registration(registration_id) -> dict:
    """Hard-delete a registration and its whole ledger (operator escape hatch)."""
    with transaction.atomic():
        registration = fetch_registration(registration_id, for_update=True)
        number = registration.registration_number
        payments_deleted, _ = registration.payments.all().delete()
        registration.delete()
    logger.warning(
        "Registration %s deleted by operator with %s payments", number, payments_deleted
    )
    return {"registration_number": number, "payments_deleted": payments_deleted}


def clear_event(event_id) -> dict:
    """Hard-delete every registration and payment of an event."""
    if not Event.objects.filter(pk=event_id).exists():
        raise EventNotFound("Event not found.")
    with transaction.atomic():
        payments_deleted, _ = EventPaymentTracker.objects.filter(event_id=event_id).delete()
        _, per_model = EventRegistration.objects.filter(event_id=event_id).delete()
        registrations_deleted = per_model.get(EventRegistration._meta.label, 0)
    logger.warning(
        "Event %s cleared by operator: %s registrations, %s payments",
        event_id,
        registrations_deleted,
        payments_deleted,
    )
    return {
        "registrations_deleted": registrations_deleted,
        "payments_deleted": payments_deleted,
    }
