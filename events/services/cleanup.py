"""
Abandoned-Checkout Collector

Deletes registrations whose checkout window expired before any payment
was received, together with their open payment trackers. This frees the
email + event slot for a fresh registration.

The only safety gate is the ledger: a registration with a completed (or
later refunded) tracker is never deleted, whatever its aggregate says.
Registrations with a payment still in "processing" are left alone too.
"""

import logging

from django.db import transaction
from django.utils import timezone

from events.models import EventPaymentTracker, EventRegistration
from events.services.ledger import ZERO

logger = logging.getLogger(__name__)

_BLOCKING_STATUSES = EventPaymentTracker.RECEIVED_STATUSES + (
    EventPaymentTracker.STATUS_PROCESSING,
)


def abandoned_registrations(now=None):
    now = now or timezone.now()
    return (
        EventRegistration.objects.filter(
            total_paid=ZERO,
            payment_status=EventRegistration.STATUS_PENDING,
            checkout_session_expires_at__lt=now,
        )
        .exclude(payments__status__in=_BLOCKING_STATUSES)
        .distinct()
    )


def _collect(registration_id) -> int:
    """Delete one abandoned registration. Returns the trackers deleted, -1 if skipped."""
    with transaction.atomic():
        registration = (
            EventRegistration.objects.select_for_update()
            .filter(pk=registration_id)
            .first()
        )
        if registration is None:
            return -1
        # Re-check under the lock: a webhook may have completed a payment meanwhile
        if registration.total_paid > ZERO or registration.payments.filter(
            status__in=_BLOCKING_STATUSES
        ).exists():
            logger.info(
                "Registration %s received a payment, not collected",
                registration.registration_number,
            )
            return -1

        payments_deleted, _ = registration.payments.filter(
            status=EventPaymentTracker.STATUS_PENDING
        ).delete()
        registration.delete()
        logger.info(
            "Collected abandoned registration %s (%s pending trackers)",
            registration.registration_number,
            payments_deleted,
        )
        return payments_deleted


def cleanup_abandoned_checkouts(*, now=None, dry_run: bool = False) -> dict:
    """
    Remove expired zero-payment registrations.

    Returns:
        {"registrations_deleted": n, "payments_deleted": m, "errors": e}
        In dry-run mode the counts are what would be deleted.
    """
    now = now or timezone.now()
    candidates = abandoned_registrations(now)

    if dry_run:
        ids = list(candidates.values_list("pk", flat=True))
        return {
            "registrations_deleted": len(ids),
            "payments_deleted": EventPaymentTracker.objects.filter(
                registration_id__in=ids, status=EventPaymentTracker.STATUS_PENDING
            ).count(),
            "errors": 0,
        }

    stats = {"registrations_deleted": 0, "payments_deleted": 0, "errors": 0}
    for registration_id in list(candidates.values_list("pk", flat=True)):
        try:
            deleted = _collect(registration_id)
        except Exception:
            logger.exception("Failed to collect abandoned registration %s", registration_id)
            stats["errors"] += 1
            continue
        if deleted >= 0:
            stats["registrations_deleted"] += 1
            stats["payments_deleted"] += deleted

    if stats["registrations_deleted"]:
        logger.info(
            "Abandoned checkout cleanup removed %s registrations and %s payments",
            stats["registrations_deleted"],
            stats["payments_deleted"],
        )
    return stats
