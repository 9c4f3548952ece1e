"""
Scheduling AppConfig
====================

Registers the `core.scheduling` app. Sweeps themselves are registered by
the apps that own them (`events.sweeps`, `subscriptions.sweeps`), each
importing its module from its own `ready()`.

Author: Trading Academy Development Team
Version: 1.0.0
"""

from django.apps import AppConfig


class SchedulingConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "core.scheduling"
    label = "scheduling"
    verbose_name = "Scheduled Sweeps"
