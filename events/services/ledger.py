"""
Registration Balance Ledger

The single place where the balance of a registration is derived from its
payment trackers.

`compute_balance()` is a pure function: given the registration total and
the ledger rows it returns the complete `BalanceSnapshot`. The webhook
handler, the refund handler and the admin recalculation all go through
`recompute_registration()`, which loads the ledger, calls
`compute_balance()` and writes the snapshot onto the registration.

Invariants guaranteed by the snapshot:
- total_paid == sum(amount of completed rows)
- remaining_balance == max(0, total_amount - total_paid)
- is_fully_paid <=> remaining_balance == 0

Author: Trading Academy Development Team
Version: 1.0.0
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Tuple

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError

from events.exceptions import RegistrationNotFound
from events.models import EventPaymentTracker, EventRegistration

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Quantize any numeric input to 2 decimals (half up)."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LedgerEntry:
    payment_id: str
    amount: Decimal
    status: str
    payment_type: str = ""
    processed_at: Optional[datetime] = None
    stripe_payment_intent_id: Optional[str] = None
    receipt_url: str = ""
    description: str = ""

    @classmethod
    def from_tracker(cls, tracker: EventPaymentTracker) -> "LedgerEntry":
        return cls(
            payment_id=tracker.payment_id,
            amount=to_money(tracker.amount),
            status=tracker.status,
            payment_type=tracker.payment_type,
            processed_at=tracker.processed_at,
            stripe_payment_intent_id=tracker.stripe_payment_intent_id,
            receipt_url=tracker.receipt_url,
            description=tracker.description,
        )

    def as_history_item(self) -> dict:
        return {
            "payment_id": self.payment_id,
            "amount": str(self.amount),
            "payment_type": self.payment_type,
            "payment_date": self.processed_at.isoformat() if self.processed_at else None,
            "payment_method": "stripe",
            "stripe_payment_intent_id": self.stripe_payment_intent_id,
            "receipt_url": self.receipt_url,
            "description": self.description,
            "status": self.status,
        }


@dataclass(frozen=True)
class BalanceSnapshot:
    total_amount: Decimal
    total_paid: Decimal
    remaining_balance: Decimal
    is_fully_paid: bool
    payment_status: str
    payment_history: Tuple[dict, ...]
    next_payment_due_date: Optional[datetime]

    @property
    def payments_counted(self) -> int:
        return len(self.payment_history)


def _processed_order(entry: LedgerEntry):
    stamp = entry.processed_at.timestamp() if entry.processed_at else 0.0
    return (stamp, entry.payment_id)


def compute_balance(
    total_amount,
    ledger: Iterable[LedgerEntry],
    *,
    due_in: Optional[timedelta] = None,
) -> BalanceSnapshot:
    """
    Derive the registration aggregate from its ledger.

    Only completed rows count towards the paid total. The history lists
    them oldest first. While a balance remains, the next installment is
    due `due_in` after the latest completed payment.
    """
    total_amount = to_money(total_amount)
    completed = sorted(
        (e for e in ledger if e.status == EventPaymentTracker.STATUS_COMPLETED),
        key=_processed_order,
    )

    total_paid = to_money(sum((e.amount for e in completed), ZERO))
    remaining = max(ZERO, to_money(total_amount - total_paid))
    is_fully_paid = remaining == ZERO

    if is_fully_paid:
        status = EventRegistration.STATUS_PAID
    elif total_paid > ZERO:
        status = EventRegistration.STATUS_PARTIAL
    else:
        status = EventRegistration.STATUS_PENDING

    next_due = None
    if not is_fully_paid and completed and completed[-1].processed_at:
        if due_in is None:
            due_in = timedelta(days=settings.NEXT_PAYMENT_DUE_DAYS)
        next_due = completed[-1].processed_at + due_in

    return BalanceSnapshot(
        total_amount=total_amount,
        total_paid=total_paid,
        remaining_balance=remaining,
        is_fully_paid=is_fully_paid,
        payment_status=status,
        payment_history=tuple(e.as_history_item() for e in completed),
        next_payment_due_date=next_due,
    )


def load_ledger(registration: EventRegistration) -> List[LedgerEntry]:
    trackers = EventPaymentTracker.objects.filter(registration=registration)
    return [LedgerEntry.from_tracker(t) for t in trackers.order_by("created_at", "pk")]


def snapshot_for(registration: EventRegistration) -> BalanceSnapshot:
    """Compute what the aggregate should be, without writing anything."""
    return compute_balance(registration.total_amount, load_ledger(registration))


AGGREGATE_FIELDS = [
    "total_paid",
    "remaining_balance",
    "is_fully_paid",
    "payment_status",
    "payment_history",
    "next_payment_due_date",
]


def apply_balance(registration: EventRegistration, snapshot: BalanceSnapshot) -> None:
    registration.total_paid = snapshot.total_paid
    registration.remaining_balance = snapshot.remaining_balance
    registration.is_fully_paid = snapshot.is_fully_paid
    registration.payment_status = snapshot.payment_status
    registration.payment_history = list(snapshot.payment_history)
    registration.next_payment_due_date = snapshot.next_payment_due_date


def recompute_registration(registration: EventRegistration) -> BalanceSnapshot:
    """
    Recompute the aggregate from the ledger and persist it.

    Callers that race with other writers must hold a row lock on the
    registration (`select_for_update`) inside a transaction.
    """
    snapshot = snapshot_for(registration)
    apply_balance(registration, snapshot)
    registration.save(update_fields=AGGREGATE_FIELDS + ["updated_at"])
    return snapshot


def fetch_registration(registration_id, *, for_update: bool = False) -> EventRegistration:
    """
    Load a registration by primary key.

    Raises:
        RegistrationNotFound: for unknown or malformed ids.
    """
    queryset = EventRegistration.objects.select_related("event")
    if for_update:
        queryset = queryset.select_for_update()
    try:
        return queryset.get(pk=registration_id)
    except (EventRegistration.DoesNotExist, ValueError, DjangoValidationError):
        raise RegistrationNotFound("Registration not found.")
