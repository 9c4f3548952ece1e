"""
Subscription Reconciliation Sweeps

Scheduled jobs that keep the local subscription mirror converging on
Stripe, which is the source of truth. Every sweep takes a
`SweepContext` (now, gateway, region, batch size) and returns counters.

Sweeps
------
- `sync_recent_transactions`: pushes the period end of recently paid
  subscription invoices into the matching entries.
- `verify_recent_renewals`: the same for the last couple of hours,
  restricted to renewals.
- `sync_from_gateway`: lists the active subscriptions of a batch of
  customers at Stripe and overwrites the local period end and status.
- `enforce_expiry`: cancels lapsed subscriptions at Stripe, then marks
  them expired. Never the other way round: an entry is only marked
  expired after Stripe confirmed the cancel (or reported the
  subscription as already cancelled or unknown).
- `deduplicate_active_subscriptions`: resolves several active entries
  for the same plan and account.
- `expire_module_permissions`: switches off module access past its
  expiry.

Item failures are logged and counted, the batch continues and the item
is picked up again on the next run.

Author: Trading Academy Development Team
Version: 1.0.0
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Count, F, Q

from core.stripe_integration.exceptions import GatewayError
from core.stripe_integration.gateway import CANCEL_NOT_FOUND, CANCEL_SUCCESS_OUTCOMES
from subscriptions.models import (
    BillingAccount,
    ModulePermission,
    SubscriptionEntry,
    SubscriptionHistory,
    SubscriptionPayment,
)
from subscriptions.services.history import active_entries, locked_entry_for, record_history

logger = logging.getLogger(__name__)

# Gateway statuses under which a subscription keeps renewing
LIVE_GATEWAY_STATUSES = frozenset({"active", "trialing"})


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


# ---------- recent transaction sync ----------


def _period_end_for(payment: SubscriptionPayment, ctx):
    if payment.next_billing_date:
        return payment.next_billing_date
    return ctx.now + timedelta(days=settings.SUBSCRIPTION_FALLBACK_PERIOD_DAYS)


def _read_modify_write(payment: SubscriptionPayment, period_end, ctx) -> str:
    with transaction.atomic():
        account = BillingAccount.objects.select_for_update().get(pk=payment.account_id)
        entry = locked_entry_for(
            account.pk,
            stripe_subscription_id=payment.stripe_subscription_id,
            plan=payment.plan,
        )

        if entry is None:
            if not payment.plan:
                logger.warning(
                    "Payment %s has no plan and no matching subscription, skipped",
                    payment.stripe_invoice_id,
                )
                return "unchanged"
            entry = SubscriptionEntry.objects.create(
                account=account,
                plan=payment.plan,
                stripe_subscription_id=payment.stripe_subscription_id,
                status=SubscriptionEntry.STATUS_ACTIVE,
                current_period_end=period_end,
                price=payment.amount,
                currency=payment.currency,
            )
            record_history(
                account=account,
                entry=entry,
                action=SubscriptionHistory.ACTION_CREATED,
                transaction=payment,
                effective_date=ctx.now,
                expiration_date=period_end,
                metadata={"source": "transaction_sync"},
            )
            if account.ensure_active(entry.plan):
                account.save(update_fields=["active_subscription_ids", "updated_at"])
            logger.info(
                "Created missing %s subscription for account %s from payment %s",
                entry.plan,
                account.pk,
                payment.stripe_invoice_id,
            )
            return "created"

        if entry.current_period_end is None or entry.current_period_end < period_end:
            entry.current_period_end = period_end
            entry.save(update_fields=["current_period_end", "updated_at"])
            return "fallback_updated"
        return "unchanged"


def _apply_period_end(payment: SubscriptionPayment, ctx) -> str:
    period_end = _period_end_for(payment, ctx)

    # Compare-and-set: only ever moves the period end forward
    updated = (
        active_entries(
            payment.account_id,
            stripe_subscription_id=payment.stripe_subscription_id,
            plan=payment.plan,
        )
        .filter(Q(current_period_end__isnull=True) | Q(current_period_end__lt=period_end))
        .update(current_period_end=period_end, updated_at=ctx.now)
    )
    if updated:
        return "updated"
    return _read_modify_write(payment, period_end, ctx)


def sync_recent_transactions(ctx, *, window: Optional[timedelta] = None, renewals_only=False) -> dict:
    """Extend subscription periods from invoices paid within `window`."""
    if window is None:
        window = timedelta(hours=settings.RECENT_TRANSACTION_WINDOW_HOURS)

    payments = SubscriptionPayment.objects.filter(
        status=SubscriptionPayment.STATUS_SUCCEEDED,
        paid_at__gte=ctx.now - window,
        paid_at__lte=ctx.now,
        account__region=ctx.region,
    )
    if renewals_only:
        payments = payments.filter(
            history_entries__action=SubscriptionHistory.ACTION_RENEWED
        ).distinct()

    stats = {
        "checked": 0,
        "updated": 0,
        "fallback_updated": 0,
        "created": 0,
        "unchanged": 0,
        "errors": 0,
    }
    for payment in payments.order_by("paid_at", "pk"):
        stats["checked"] += 1
        try:
            outcome = _apply_period_end(payment, ctx)
        except Exception:
            logger.exception(
                "Transaction sync failed for payment %s (account %s)",
                payment.stripe_invoice_id,
                payment.account_id,
            )
            stats["errors"] += 1
            continue
        stats[outcome] += 1
    return stats


def verify_recent_renewals(ctx) -> dict:
    """Hourly pass over the renewals of the last couple of hours."""
    return sync_recent_transactions(
        ctx,
        window=timedelta(hours=settings.RENEWAL_VERIFICATION_WINDOW_HOURS),
        renewals_only=True,
    )


# ---------- authoritative gateway sync ----------


def _apply_gateway_state(account_id, remote_subscriptions, ctx) -> dict:
    counts = {"updated": 0, "created": 0, "reactivated": 0}
    with transaction.atomic():
        account = BillingAccount.objects.select_for_update().get(pk=account_id)

        for remote in remote_subscriptions:
            entry = (
                account.subscriptions.select_for_update()
                .filter(stripe_subscription_id=remote.id)
                .order_by("-created_at", "-pk")
                .first()
            )
            if entry is None and remote.plan:
                # Entry recorded before Stripe assigned the subscription id
                entry = (
                    account.subscriptions.select_for_update()
                    .filter(
                        plan=remote.plan,
                        stripe_subscription_id="",
                        status=SubscriptionEntry.STATUS_ACTIVE,
                    )
                    .first()
                )

            if entry is None:
                if not remote.plan:
                    logger.warning(
                        "Gateway subscription %s has no plan, not mirrored", remote.id
                    )
                    continue
                entry = SubscriptionEntry.objects.create(
                    account=account,
                    plan=remote.plan,
                    stripe_subscription_id=remote.id,
                    status=SubscriptionEntry.STATUS_ACTIVE,
                    current_period_end=remote.current_period_end,
                    price=remote.price,
                    currency=remote.currency or settings.PAYMENT_CURRENCY,
                )
                record_history(
                    account=account,
                    entry=entry,
                    action=SubscriptionHistory.ACTION_CREATED,
                    effective_date=ctx.now,
                    expiration_date=remote.current_period_end,
                    metadata={"source": "gateway_sync"},
                )
                counts["created"] += 1
                account.ensure_active(entry.plan)
                continue

            changed = []
            if remote.current_period_end and entry.current_period_end != remote.current_period_end:
                entry.current_period_end = remote.current_period_end
                changed.append("current_period_end")
            if entry.stripe_subscription_id != remote.id:
                entry.stripe_subscription_id = remote.id
                changed.append("stripe_subscription_id")
            if entry.expires_at and entry.expires_at <= ctx.now:
                entry.expires_at = None
                changed.append("expires_at")
            if entry.status != SubscriptionEntry.STATUS_ACTIVE:
                previous = entry.status
                entry.status = SubscriptionEntry.STATUS_ACTIVE
                changed.append("status")
                record_history(
                    account=account,
                    entry=entry,
                    action=SubscriptionHistory.ACTION_REACTIVATED,
                    effective_date=ctx.now,
                    expiration_date=entry.current_period_end,
                    metadata={"source": "gateway_sync", "previous_status": previous},
                )
                counts["reactivated"] += 1

            if changed:
                entry.save(update_fields=changed + ["updated_at"])
                counts["updated"] += 1
            account.ensure_active(entry.plan)

        account.last_synced_at = ctx.now
        account.save(update_fields=["active_subscription_ids", "last_synced_at", "updated_at"])
    return counts


def sync_from_gateway(ctx) -> dict:
    """Overwrite local state with the active subscriptions Stripe reports, one batch of accounts."""
    accounts = (
        BillingAccount.objects.filter(region=ctx.region, stripe_customer_id__isnull=False)
        .exclude(stripe_customer_id="")
        .order_by(F("last_synced_at").asc(nulls_first=True), "pk")
        .values_list("pk", "stripe_customer_id")[: ctx.batch_size]
    )

    stats = {"accounts": 0, "updated": 0, "created": 0, "reactivated": 0, "errors": 0}
    for account_id, customer_id in accounts:
        stats["accounts"] += 1
        try:
            remote = ctx.gateway.list_active_subscriptions(customer_id)
            counts = _apply_gateway_state(account_id, remote, ctx)
        except GatewayError as exc:
            logger.warning("Gateway sync skipped customer %s: %s", customer_id, exc)
            stats["errors"] += 1
            continue
        except Exception:
            logger.exception("Gateway sync failed for customer %s", customer_id)
            stats["errors"] += 1
            continue
        for key, value in counts.items():
            stats[key] += value
    return stats


# ---------- expiry enforcement ----------


def _mark_expired(entry: SubscriptionEntry, ctx, cancel_outcome: str) -> bool:
    with transaction.atomic():
        updated = SubscriptionEntry.objects.filter(
            pk=entry.pk, status=SubscriptionEntry.STATUS_ACTIVE
        ).update(
            status=SubscriptionEntry.STATUS_EXPIRED,
            expires_at=entry.expires_at or ctx.now,
            updated_at=ctx.now,
        )
        if not updated:
            return False

        account = BillingAccount.objects.select_for_update().get(pk=entry.account_id)
        other_active = account.subscriptions.filter(
            plan=entry.plan, status=SubscriptionEntry.STATUS_ACTIVE
        ).exists()
        if not other_active and account.remove_active(entry.plan):
            account.save(update_fields=["active_subscription_ids", "updated_at"])

        record_history(
            account=account,
            entry=entry,
            action=SubscriptionHistory.ACTION_EXPIRED,
            effective_date=ctx.now,
            expiration_date=entry.expires_at or entry.current_period_end,
            metadata={
                "cancel_outcome": cancel_outcome,
                "current_period_end": _iso(entry.current_period_end),
            },
        )
        ModulePermission.objects.filter(subscription_id=entry.pk, is_active=True).update(
            is_active=False, has_access=False, updated_at=ctx.now
        )
    return True


def _refresh_period(entry: SubscriptionEntry, period_end, ctx) -> None:
    SubscriptionEntry.objects.filter(
        pk=entry.pk, status=SubscriptionEntry.STATUS_ACTIVE
    ).update(current_period_end=period_end, updated_at=ctx.now)
    logger.info(
        "Subscription %s renewed at the gateway until %s, not expired",
        entry.stripe_subscription_id,
        period_end,
    )


def enforce_expiry(ctx) -> dict:
    """Cancel lapsed subscriptions at the gateway, then mark them expired."""
    lapsed = (
        SubscriptionEntry.objects.filter(
            status=SubscriptionEntry.STATUS_ACTIVE, account__region=ctx.region
        )
        .filter(Q(expires_at__lt=ctx.now) | Q(current_period_end__lt=ctx.now))
        .order_by("pk")
    )

    stats = {"checked": 0, "expired": 0, "refreshed": 0, "skipped": 0, "errors": 0}
    for entry in lapsed:
        stats["checked"] += 1
        hard_expired = entry.expires_at is not None and entry.expires_at < ctx.now
        subscription_id = entry.stripe_subscription_id

        try:
            if not hard_expired and subscription_id:
                # Only the local period lapsed: a renewal webhook may have been lost
                remote = ctx.gateway.retrieve_subscription(subscription_id)
                if (
                    remote is not None
                    and remote.status in LIVE_GATEWAY_STATUSES
                    and remote.current_period_end
                    and remote.current_period_end > ctx.now
                ):
                    _refresh_period(entry, remote.current_period_end, ctx)
                    stats["refreshed"] += 1
                    continue

            if subscription_id:
                outcome = ctx.gateway.cancel_subscription(subscription_id)
            else:
                outcome = CANCEL_NOT_FOUND
        except GatewayError as exc:
            logger.warning(
                "Subscription %s (entry %s) not expired, gateway error: %s",
                subscription_id,
                entry.pk,
                exc,
            )
            stats["errors"] += 1
            continue

        if outcome not in CANCEL_SUCCESS_OUTCOMES:
            logger.warning(
                "Subscription %s cancel answered %r, entry %s stays active",
                subscription_id,
                outcome,
                entry.pk,
            )
            stats["skipped"] += 1
            continue

        try:
            marked = _mark_expired(entry, ctx, outcome)
        except Exception:
            logger.exception("Failed to mark subscription entry %s expired", entry.pk)
            stats["errors"] += 1
            continue
        if marked:
            stats["expired"] += 1
            logger.info(
                "Subscription %s (%s) expired after gateway answered %s",
                subscription_id or "-",
                entry.plan,
                outcome,
            )
    return stats


# ---------- de-duplication ----------


def _cancel_duplicate(extra: SubscriptionEntry, keep: SubscriptionEntry, ctx, outcome: str) -> bool:
    with transaction.atomic():
        updated = SubscriptionEntry.objects.filter(
            pk=extra.pk, status=SubscriptionEntry.STATUS_ACTIVE
        ).update(status=SubscriptionEntry.STATUS_CANCELLED, updated_at=ctx.now)
        if not updated:
            return False
        account = BillingAccount.objects.get(pk=extra.account_id)
        record_history(
            account=account,
            entry=extra,
            action=SubscriptionHistory.ACTION_CANCELLED,
            effective_date=ctx.now,
            metadata={
                "reason": "duplicate",
                "kept_subscription": keep.pk,
                "cancel_outcome": outcome,
            },
        )
        ModulePermission.objects.filter(subscription_id=extra.pk).update(
            subscription_id=keep.pk, updated_at=ctx.now
        )
    return True


def deduplicate_active_subscriptions(ctx) -> dict:
    """Keep the newest active entry per account and plan, cancel the rest."""
    groups = (
        SubscriptionEntry.objects.filter(
            status=SubscriptionEntry.STATUS_ACTIVE, account__region=ctx.region
        )
        .values("account_id", "plan")
        .annotate(active_count=Count("id"))
        .filter(active_count__gt=1)
    )

    stats = {"groups": 0, "cancelled": 0, "errors": 0}
    for group in groups:
        stats["groups"] += 1
        keep, *extras = active_entries(group["account_id"], plan=group["plan"])
        logger.warning(
            "Account %s holds %s active %s subscriptions, keeping entry %s",
            group["account_id"],
            len(extras) + 1,
            group["plan"],
            keep.pk,
        )
        for extra in extras:
            remote_id = extra.stripe_subscription_id
            outcome = "local_only"
            if remote_id and remote_id != keep.stripe_subscription_id:
                try:
                    outcome = ctx.gateway.cancel_subscription(remote_id)
                except GatewayError as exc:
                    logger.warning("Duplicate %s stays active, gateway error: %s", remote_id, exc)
                    stats["errors"] += 1
                    continue
                if outcome not in CANCEL_SUCCESS_OUTCOMES:
                    stats["errors"] += 1
                    continue
            try:
                if _cancel_duplicate(extra, keep, ctx, outcome):
                    stats["cancelled"] += 1
            except Exception:
                logger.exception("Failed to cancel duplicate entry %s", extra.pk)
                stats["errors"] += 1
    return stats


# ---------- module permissions ----------


def expire_module_permissions(ctx) -> dict:
    """Switch off module access whose expiry passed."""
    deactivated = ModulePermission.objects.filter(
        is_active=True, expires_at__isnull=False, expires_at__lte=ctx.now
    ).update(is_active=False, has_access=False, updated_at=ctx.now)
    if deactivated:
        logger.info("Deactivated %s expired module permissions", deactivated)
    return {"deactivated": deactivated}
