"""
Events Application Configuration

Event registrations with deposit + installment payments and the payment
ledger behind them.

Author: Trading Academy Development Team
Version: 1.0.0
"""

from django.apps import AppConfig


class EventsConfig(AppConfig):
    """
    Configuration class for the events application.

    `ready()` registers the app's sweeps with the schedule registry.
    """

    default_auto_field: str = "django.db.models.BigAutoField"
    name: str = "events"
    verbose_name: str = "Events & Payments"

    def ready(self) -> None:
        from . import sweeps  # noqa: F401
