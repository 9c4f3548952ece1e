"""
Affiliates Application Configuration

Referral codes, checkout discounts and commissions.

Author: Trading Academy Development Team
Version: 1.0.0
"""

from django.apps import AppConfig


class AffiliatesConfig(AppConfig):
    default_auto_field: str = "django.db.models.BigAutoField"
    name: str = "affiliates"
    verbose_name: str = "Affiliates"

    def ready(self) -> None:
        # Connect the commission receiver to registration_fully_paid
        from . import receivers  # noqa: F401
