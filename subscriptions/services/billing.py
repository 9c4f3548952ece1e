"""
Subscription invoice recorders, called by the dj-stripe webhook receivers.

`record_subscription_payment` turns a paid invoice into a
SubscriptionPayment, extends (or creates) the matching entry and writes
one history row. It is idempotent on the invoice id, so `invoice.paid`
and `invoice.payment_succeeded` for the same invoice record it once.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.stripe_integration.gateway import from_minor_units, from_timestamp, get_gateway
from subscriptions.models import (
    BillingAccount,
    SubscriptionEntry,
    SubscriptionHistory,
    SubscriptionPayment,
)
from subscriptions.services.history import locked_entry_for, record_history

logger = logging.getLogger(__name__)

RENEWAL_BILLING_REASON = "subscription_cycle"


def _first_line(invoice: Dict[str, Any]) -> Dict[str, Any]:
    lines = (invoice.get("lines") or {}).get("data") or []
    return lines[0] if lines else {}


def _plan_of(invoice: Dict[str, Any], line: Dict[str, Any]) -> str:
    for metadata in (invoice.get("metadata"), line.get("metadata")):
        if metadata and metadata.get("plan"):
            return metadata["plan"]
    price = line.get("price") or line.get("plan") or {}
    return price.get("lookup_key") or price.get("id") or ""


def _account_for(customer_id: Optional[str]) -> Optional[BillingAccount]:
    if not customer_id:
        return None
    return BillingAccount.objects.filter(stripe_customer_id=customer_id).first()


def record_subscription_payment(
    invoice: Dict[str, Any], *, event_id: Optional[str] = None, gateway=None, now=None
) -> Optional[SubscriptionPayment]:
    """
    Record a paid subscription invoice.

    Returns:
        The new SubscriptionPayment, or None when the invoice was already
        recorded or belongs to no known account.

    Raises:
        GatewayError: if the period end had to be fetched and Stripe failed.
    """
    now = now or timezone.now()
    invoice_id = invoice.get("id")
    subscription_id = invoice.get("subscription") or ""

    if SubscriptionPayment.objects.filter(stripe_invoice_id=invoice_id).exists():
        logger.info("Invoice %s already recorded", invoice_id)
        return None

    account = _account_for(invoice.get("customer"))
    if account is None:
        logger.warning(
            "Invoice %s for unknown customer %s ignored", invoice_id, invoice.get("customer")
        )
        return None

    line = _first_line(invoice)
    plan = _plan_of(invoice, line)
    period_end = from_timestamp((line.get("period") or {}).get("end"))
    if subscription_id and (period_end is None or not plan):
        remote = (gateway or get_gateway()).retrieve_subscription(subscription_id)
        if remote is not None:
            period_end = period_end or remote.current_period_end
            plan = plan or remote.plan or ""

    amount = from_minor_units(invoice.get("amount_paid")) or Decimal("0.00")
    currency = invoice.get("currency") or "usd"
    paid_at = from_timestamp((invoice.get("status_transitions") or {}).get("paid_at")) or now
    billing_reason = invoice.get("billing_reason") or ""

    with transaction.atomic():
        account = BillingAccount.objects.select_for_update().get(pk=account.pk)
        try:
            with transaction.atomic():
                payment = SubscriptionPayment.objects.create(
                    account=account,
                    plan=plan,
                    stripe_invoice_id=invoice_id,
                    stripe_subscription_id=subscription_id,
                    stripe_payment_intent_id=invoice.get("payment_intent") or "",
                    amount=amount,
                    currency=currency,
                    status=SubscriptionPayment.STATUS_SUCCEEDED,
                    next_billing_date=period_end,
                    billing_reason=billing_reason,
                    paid_at=paid_at,
                )
        except IntegrityError:
            logger.info("Invoice %s recorded concurrently", invoice_id)
            return None

        if not plan:
            logger.warning("Invoice %s carries no plan, no subscription updated", invoice_id)
            return payment

        entry = locked_entry_for(account.pk, stripe_subscription_id=subscription_id, plan=plan)
        if entry is None:
            entry = SubscriptionEntry.objects.create(
                account=account,
                plan=plan,
                stripe_subscription_id=subscription_id,
                status=SubscriptionEntry.STATUS_ACTIVE,
                current_period_end=period_end,
                price=amount,
                currency=currency,
            )
            action = SubscriptionHistory.ACTION_CREATED
        else:
            changed = []
            if period_end and (
                entry.current_period_end is None or entry.current_period_end < period_end
            ):
                entry.current_period_end = period_end
                changed.append("current_period_end")
            if subscription_id and not entry.stripe_subscription_id:
                entry.stripe_subscription_id = subscription_id
                changed.append("stripe_subscription_id")
            if changed:
                entry.save(update_fields=changed + ["updated_at"])
            if billing_reason == RENEWAL_BILLING_REASON:
                action = SubscriptionHistory.ACTION_RENEWED
            else:
                action = SubscriptionHistory.ACTION_PAYMENT_SUCCEEDED

        record_history(
            account=account,
            entry=entry,
            action=action,
            transaction=payment,
            stripe_event_id=event_id or "",
            price=amount,
            currency=currency,
            effective_date=paid_at,
            expiration_date=period_end,
            metadata={"invoice_id": invoice_id, "billing_reason": billing_reason},
        )
        if account.ensure_active(plan):
            account.save(update_fields=["active_subscription_ids", "updated_at"])

    logger.info(
        "Invoice %s recorded: %s %s for %s until %s (%s)",
        invoice_id,
        amount,
        currency,
        plan,
        period_end,
        action,
    )
    return payment


def record_payment_failure(
    invoice: Dict[str, Any], *, event_id: Optional[str] = None, now=None
) -> Optional[SubscriptionHistory]:
    """Write a `payment_failed` history row. Replays of the same event write nothing."""
    now = now or timezone.now()
    if event_id and SubscriptionHistory.objects.filter(stripe_event_id=event_id).exists():
        return None

    account = _account_for(invoice.get("customer"))
    if account is None:
        logger.warning("Failed invoice %s for unknown customer ignored", invoice.get("id"))
        return None

    subscription_id = invoice.get("subscription") or ""
    entry = None
    if subscription_id:
        entry = (
            account.subscriptions.filter(stripe_subscription_id=subscription_id)
            .order_by("-created_at")
            .first()
        )

    line = _first_line(invoice)
    history = record_history(
        account=account,
        entry=entry,
        plan=_plan_of(invoice, line),
        action=SubscriptionHistory.ACTION_PAYMENT_FAILED,
        stripe_event_id=event_id or "",
        price=from_minor_units(invoice.get("amount_due")),
        currency=invoice.get("currency") or "",
        effective_date=now,
        metadata={
            "invoice_id": invoice.get("id"),
            "attempt_count": invoice.get("attempt_count"),
            "next_payment_attempt": invoice.get("next_payment_attempt"),
        },
    )
    logger.warning(
        "Subscription payment failed for account %s (invoice %s, attempt %s)",
        account.pk,
        invoice.get("id"),
        invoice.get("attempt_count"),
    )
    return history
