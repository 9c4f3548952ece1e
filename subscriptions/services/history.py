"""Audit log writer and entry lookups shared by billing and reconciliation."""

from __future__ import annotations

import logging
from typing import Optional

from subscriptions.models import SubscriptionEntry, SubscriptionHistory

logger = logging.getLogger(__name__)


def record_history(
    *,
    account,
    action: str,
    effective_date,
    entry: Optional[SubscriptionEntry] = None,
    plan: str = "",
    transaction=None,
    stripe_event_id: str = "",
    price=None,
    currency: str = "",
    expiration_date=None,
    metadata: Optional[dict] = None,
) -> SubscriptionHistory:
    if entry is not None:
        plan = plan or entry.plan
        price = entry.price if price is None else price
        currency = currency or entry.currency
    return SubscriptionHistory.objects.create(
        user_id=account.user_id,
        subscription=entry,
        transaction=transaction,
        plan=plan,
        action=action,
        stripe_subscription_id=entry.stripe_subscription_id if entry is not None else "",
        stripe_event_id=stripe_event_id or "",
        price=price,
        currency=currency or "",
        metadata=metadata or {},
        effective_date=effective_date,
        expiration_date=expiration_date,
    )


def active_entries(account_id, *, stripe_subscription_id: str = "", plan: str = ""):
    """
    Active entries of an account matching a Stripe subscription, or a plan
    when the subscription id is unknown. Newest first.
    """
    queryset = SubscriptionEntry.objects.filter(
        account_id=account_id, status=SubscriptionEntry.STATUS_ACTIVE
    )
    if stripe_subscription_id:
        queryset = queryset.filter(stripe_subscription_id=stripe_subscription_id)
    elif plan:
        queryset = queryset.filter(plan=plan)
    else:
        return queryset.none()
    return queryset.order_by("-created_at", "-pk")


def locked_entry_for(account_id, *, stripe_subscription_id: str = "", plan: str = ""):
    """
    Lock and return the active entry a payment belongs to.

    Matches on the Stripe subscription first. When that finds nothing the
    plan's newest active entry is used, so a plan never gets a second
    active entry from a payment. Must run inside a transaction.
    """
    entry = (
        active_entries(account_id, stripe_subscription_id=stripe_subscription_id, plan=plan)
        .select_for_update()
        .first()
    )
    if entry is None and stripe_subscription_id and plan:
        entry = active_entries(account_id, plan=plan).select_for_update().first()
        if entry is not None:
            logger.warning(
                "Subscription %s not tracked, using active %s entry %s (%s)",
                stripe_subscription_id,
                plan,
                entry.pk,
                entry.stripe_subscription_id or "no subscription id",
            )
    return entry
