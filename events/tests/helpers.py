"""Fixture builders shared by the events tests."""

import itertools
import uuid
from datetime import timedelta
from decimal import Decimal

from django.utils import timezone

from events.models import Event, EventPaymentTracker, EventRegistration

_numbers = itertools.count(1)


def make_event(**overrides):
    fields = {
        "title": "Funded Trader Bootcamp",
        "price": Decimal("2999.99"),
        "payment_mode": Event.PAYMENT_MODE_PARTIAL_ALLOWED,
        "minimum_deposit_amount": Decimal("500.00"),
        "minimum_installment_amount": Decimal("100.00"),
    }
    fields.update(overrides)
    return Event.objects.create(**fields)


def make_registration(event, *, email="trader@example.com", total=None, **overrides):
    total = event.price if total is None else Decimal(total)
    fields = {
        "registration_number": f"REG-TEST-{next(_numbers):05d}",
        "event": event,
        "email": email,
        "first_name": "Ada",
        "last_name": "Lovelace",
        "original_price": total,
        "total_amount": total,
        "remaining_balance": total,
        "checkout_session_expires_at": timezone.now() + timedelta(hours=2),
    }
    fields.update(overrides)
    return EventRegistration.objects.create(**fields)


def make_payment(registration, amount, *, status=EventPaymentTracker.STATUS_PENDING, **overrides):
    fields = {
        "payment_id": str(uuid.uuid4()),
        "registration": registration,
        "event": registration.event,
        "email": registration.email,
        "payment_type": EventPaymentTracker.TYPE_DEPOSIT,
        "amount": Decimal(amount),
        "status": status,
        "total_event_price": registration.total_amount,
        "previous_balance": registration.remaining_balance,
        "new_balance": registration.remaining_balance - Decimal(amount),
    }
    if status == EventPaymentTracker.STATUS_COMPLETED:
        fields["processed_at"] = timezone.now()
    fields.update(overrides)
    return EventPaymentTracker.objects.create(**fields)
