from core.scheduling.registry import HOURLY, register

from .services.cleanup import cleanup_abandoned_checkouts


@register("abandoned-checkouts", cadence=HOURLY, cron={"minute": 15})
def abandoned_checkouts(ctx):
    """Delete expired registrations that never received a payment."""
    return cleanup_abandoned_checkouts(now=ctx.now)
