"""
Payment Completion Handler

Applies gateway notifications to the payment ledger. Stripe delivers
webhooks at least once and in any order, so every function here is
idempotent per payment:

- `complete_payment`: pending/processing -> completed, then the
  registration aggregate is recomputed from the ledger. A second delivery
  for the same payment_id changes nothing.
- `mark_processing`: pending -> processing (asynchronous payment methods).
- `record_failed_attempt`: a declined charge inside a still open session.
- `cancel_payment`: pending/processing -> cancelled (session expired).
- `refund_payment`: completed -> refunded, then recompute.

The status change and the aggregate update happen in one transaction
while the registration row is locked. Emails and the
`registration_fully_paid` signal run only after that transaction
committed, and their failures are logged, never raised.

Author: Trading Academy Development Team
Version: 1.0.0
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from events.exceptions import PaymentConflict
from events.models import EventPaymentTracker, EventRegistration
from events.services import notifications
from events.services.ledger import recompute_registration
from events.signals import registration_fully_paid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionResult:
    applied: bool
    payment: Optional[EventPaymentTracker] = None
    registration: Optional[EventRegistration] = None
    became_fully_paid: bool = False


def _dispatch_side_effects(registration, payment, became_fully_paid):
    notifications.send_payment_confirmation(registration, payment)
    if not became_fully_paid:
        return

    notifications.send_registration_completed(registration)
    responses = registration_fully_paid.send_robust(
        sender=EventRegistration, registration=registration
    )
    for receiver, response in responses:
        if isinstance(response, Exception):
            logger.error(
                "registration_fully_paid receiver %r failed for %s: %s",
                receiver,
                registration.registration_number,
                response,
            )


def complete_payment(
    payment_id: str,
    stripe_payment_intent_id: Optional[str],
    receipt_url: Optional[str] = None,
    *,
    now=None,
) -> CompletionResult:
    """
    Mark a payment completed and fold it into its registration.

    Unknown and already completed payments are acknowledged without any
    mutation. Failed and cancelled payments are never revived.

    Raises:
        PaymentConflict: if another payment already completed with the
            same PaymentIntent.
    """
    now = now or timezone.now()

    payment = EventPaymentTracker.objects.filter(payment_id=payment_id).first()
    if payment is None:
        logger.warning("Completion for unknown payment %s ignored", payment_id)
        return CompletionResult(applied=False)
    if payment.status == EventPaymentTracker.STATUS_COMPLETED:
        logger.info("Payment %s already completed, duplicate delivery ignored", payment_id)
        return CompletionResult(applied=False, payment=payment)

    try:
        with transaction.atomic():
            registration = EventRegistration.objects.select_for_update().get(
                pk=payment.registration_id
            )
            was_fully_paid = registration.is_fully_paid

            # Conditional update: only one concurrent delivery can win
            updated = EventPaymentTracker.objects.filter(
                pk=payment.pk,
                status__in=EventPaymentTracker.statuses_leading_to(
                    EventPaymentTracker.STATUS_COMPLETED
                ),
            ).update(
                status=EventPaymentTracker.STATUS_COMPLETED,
                stripe_payment_intent_id=stripe_payment_intent_id or None,
                receipt_url=receipt_url or "",
                processed_at=now,
                updated_at=now,
            )
            payment.refresh_from_db()
            if not updated:
                logger.info(
                    "Payment %s is %s, completion ignored", payment_id, payment.status
                )
                return CompletionResult(
                    applied=False, payment=payment, registration=registration
                )

            snapshot = recompute_registration(registration)
            became_fully_paid = snapshot.is_fully_paid and not was_fully_paid
            transaction.on_commit(
                lambda: _dispatch_side_effects(registration, payment, became_fully_paid)
            )
    except IntegrityError:
        logger.error(
            "PaymentIntent %s already completed another payment, %s left untouched",
            stripe_payment_intent_id,
            payment_id,
        )
        raise PaymentConflict(
            f"PaymentIntent {stripe_payment_intent_id} was already applied."
        )

    logger.info(
        "Payment %s completed: registration %s paid %s, remaining %s",
        payment_id,
        registration.registration_number,
        snapshot.total_paid,
        snapshot.remaining_balance,
    )
    return CompletionResult(
        applied=True,
        payment=payment,
        registration=registration,
        became_fully_paid=became_fully_paid,
    )


def _move(payment_id: str, status: str, **fields) -> bool:
    now = fields.pop("now", None) or timezone.now()
    updated = EventPaymentTracker.objects.filter(
        payment_id=payment_id,
        status__in=EventPaymentTracker.statuses_leading_to(status),
    ).update(status=status, updated_at=now, **fields)
    if updated:
        logger.info("Payment %s moved to %s", payment_id, status)
    else:
        logger.info("Payment %s not moved to %s (unknown or final)", payment_id, status)
    return bool(updated)


def mark_processing(payment_id: str, *, now=None) -> bool:
    return _move(payment_id, EventPaymentTracker.STATUS_PROCESSING, now=now)


def cancel_payment(payment_id: str, reason: str = "", *, now=None) -> bool:
    return _move(
        payment_id,
        EventPaymentTracker.STATUS_CANCELLED,
        failure_reason=reason[:255],
        now=now,
    )


def fail_payment(payment_id: str, reason: str = "", *, now=None) -> bool:
    now = now or timezone.now()
    return _move(
        payment_id,
        EventPaymentTracker.STATUS_FAILED,
        failure_reason=reason[:255],
        failed_at=now,
        now=now,
    )


def record_failed_attempt(payment_id: str, reason: str = "", *, now=None) -> bool:
    """Count a declined charge. The payment stays open for another try."""
    now = now or timezone.now()
    updated = EventPaymentTracker.objects.filter(
        payment_id=payment_id,
        status__in=[
            EventPaymentTracker.STATUS_PENDING,
            EventPaymentTracker.STATUS_PROCESSING,
        ],
    ).update(
        retry_count=F("retry_count") + 1,
        last_retry_at=now,
        failure_reason=reason[:255],
        updated_at=now,
    )
    return bool(updated)


def refund_payment(
    stripe_payment_intent_id: str, reason: str = "", *, now=None
) -> Optional[EventPaymentTracker]:
    """
    Refund the completed payment of a PaymentIntent and recompute its registration.

    Returns:
        The refunded tracker, or None if nothing completed for this intent.
    """
    now = now or timezone.now()
    with transaction.atomic():
        payment = (
            EventPaymentTracker.objects.select_for_update()
            .filter(
                stripe_payment_intent_id=stripe_payment_intent_id,
                status=EventPaymentTracker.STATUS_COMPLETED,
            )
            .first()
        )
        if payment is None:
            logger.info("No completed payment for refunded intent %s", stripe_payment_intent_id)
            return None

        registration = EventRegistration.objects.select_for_update().get(
            pk=payment.registration_id
        )
        payment.transition_to(EventPaymentTracker.STATUS_REFUNDED)
        payment.refunded_at = now
        payment.refund_reason = reason[:255]
        payment.save(update_fields=["status", "refunded_at", "refund_reason", "updated_at"])
        snapshot = recompute_registration(registration)

    logger.info(
        "Payment %s refunded, registration %s now paid %s",
        payment.payment_id,
        registration.registration_number,
        snapshot.total_paid,
    )
    return payment
