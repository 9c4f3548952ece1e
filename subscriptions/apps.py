"""
Subscriptions Application Configuration

Recurring plans, their audit history and the reconciliation sweeps that
keep them in line with Stripe.

Author: Trading Academy Development Team
Version: 1.0.0
"""

from django.apps import AppConfig


class SubscriptionsConfig(AppConfig):
    default_auto_field: str = "django.db.models.BigAutoField"
    name: str = "subscriptions"
    verbose_name: str = "Subscriptions"

    def ready(self) -> None:
        from . import sweeps  # noqa: F401
