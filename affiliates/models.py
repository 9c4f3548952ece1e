"""
Affiliate Models

- Affiliate: A referral code with the discount it grants and the
  commission rate its owner earns
- Commission: Earned once per referred registration that became fully paid

Author: Trading Academy Development Team
Version: 1.0.0
"""

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _


class Affiliate(models.Model):
    DISCOUNT_PERCENTAGE = "percentage"
    DISCOUNT_FIXED = "fixed"
    DISCOUNT_CHOICES = [
        (DISCOUNT_PERCENTAGE, _("Percentage")),
        (DISCOUNT_FIXED, _("Fixed amount")),
    ]

    code = models.CharField(
        max_length=50,
        unique=True,
        verbose_name=_("Code"),
        help_text=_("Stored upper case"),
    )
    name = models.CharField(max_length=200, verbose_name=_("Name"))
    email = models.EmailField(blank=True, verbose_name=_("Email"))
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="affiliates",
    )
    discount_type = models.CharField(
        max_length=10,
        choices=DISCOUNT_CHOICES,
        default=DISCOUNT_PERCENTAGE,
        verbose_name=_("Discount Type"),
    )
    discount_value = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        verbose_name=_("Discount"),
        help_text=_("Percent of the price or a fixed amount, see discount type"),
    )
    commission_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("10.00"),
        verbose_name=_("Commission Rate"),
        help_text=_("Percent of the amount paid by the referred attendee"),
    )
    is_active = models.BooleanField(default=True, verbose_name=_("Active"))
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.code} ({self.name})"

    def save(self, *args, **kwargs):
        self.code = (self.code or "").strip().upper()
        super().save(*args, **kwargs)

    class Meta:
        verbose_name = _("Affiliate")
        verbose_name_plural = _("Affiliates")
        ordering = ["code"]
        db_table = "affiliates_affiliate"


class Commission(models.Model):
    STATUS_PENDING = "pending"
    STATUS_APPROVED = "approved"
    STATUS_PAID = "paid"
    STATUS_CANCELLED = "cancelled"
    STATUS_CHOICES = [
        (STATUS_PENDING, _("Pending")),
        (STATUS_APPROVED, _("Approved")),
        (STATUS_PAID, _("Paid")),
        (STATUS_CANCELLED, _("Cancelled")),
    ]

    affiliate = models.ForeignKey(
        Affiliate,
        on_delete=models.PROTECT,
        related_name="commissions",
        verbose_name=_("Affiliate"),
    )
    registration = models.OneToOneField(
        "events.EventRegistration",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="commission",
        verbose_name=_("Registration"),
    )
    base_amount = models.DecimalField(
        max_digits=10, decimal_places=2, verbose_name=_("Base Amount")
    )
    commission_rate = models.DecimalField(max_digits=5, decimal_places=2)
    amount = models.DecimalField(max_digits=10, decimal_places=2, verbose_name=_("Amount"))
    status = models.CharField(
        max_length=10,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
        verbose_name=_("Status"),
    )
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.affiliate.code}: {self.amount} [{self.status}]"

    class Meta:
        verbose_name = _("Commission")
        verbose_name_plural = _("Commissions")
        ordering = ["-created_at"]
        db_table = "affiliates_commission"
