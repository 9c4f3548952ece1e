from core.scheduling.registry import DAILY, HOURLY, register

from .services import reconciliation


@register("subscription-sync-daily", cadence=DAILY)
def subscription_sync_daily(ctx):
    """Sync the last day's subscription payments, then a batch of customers from Stripe."""
    return {
        "transactions": reconciliation.sync_recent_transactions(ctx),
        "gateway": reconciliation.sync_from_gateway(ctx),
    }


@register("subscription-sync-hourly", cadence=HOURLY, cron={"minute": 5})
def subscription_sync_hourly(ctx):
    """Verify the renewals of the last hours reached their subscriptions."""
    return reconciliation.verify_recent_renewals(ctx)


@register("expired-subscriptions", cadence=HOURLY, cron={"minute": 30})
def expired_subscriptions(ctx):
    """Cancel and expire lapsed subscriptions, then resolve duplicates."""
    return {
        "expiry": reconciliation.enforce_expiry(ctx),
        "duplicates": reconciliation.deduplicate_active_subscriptions(ctx),
    }


@register("expired-permissions", cadence=HOURLY, cron={"minute": 45})
def expired_permissions(ctx):
    """Switch off module permissions past their expiry."""
    return reconciliation.expire_module_permissions(ctx)
