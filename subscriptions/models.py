"""
Subscription Models

This module defines the local mirror of the users' recurring plans.
Stripe is the source of truth; these rows are what the platform reads to
grant access, and the reconciliation sweeps keep them converging on the
gateway state.

Models:
- BillingAccount: A user's Stripe customer, region and active-plan index
- SubscriptionEntry: One subscription to a plan
- SubscriptionPayment: One subscription invoice payment (billing transaction)
- SubscriptionHistory: Append-only audit log of subscription changes
- ModulePermission: Access to a content module, optionally granted by a subscription

Rules:
- At most one `active` SubscriptionEntry per plan and account. Duplicates
  are detected and resolved by the de-duplication sweep.
- An `active` entry never has an `expires_at` in the past after the
  expiry sweep ran.
- SubscriptionHistory rows are never updated or deleted.

Author: Trading Academy Development Team
Version: 1.0.0
"""

from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _

from .exceptions import ImmutableRecordError


class BillingAccount(models.Model):
    """
    Billing side of a user.

    `active_subscription_ids` is the denormalized index of plans the user
    currently holds an active entry for. Access checks read it without
    touching the entries.
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="billing_account",
        verbose_name=_("User"),
    )
    stripe_customer_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        verbose_name=_("Stripe Customer"),
    )
    region = models.CharField(
        max_length=16,
        default="us",
        db_index=True,
        verbose_name=_("Region"),
        help_text=_("Region code the reconciliation sweeps are scoped by"),
    )
    active_subscription_ids = models.JSONField(
        default=list,
        blank=True,
        verbose_name=_("Active Plans"),
        help_text=_("Plan identifiers with an active subscription"),
    )
    last_synced_at = models.DateTimeField(
        null=True,
        blank=True,
        verbose_name=_("Last Gateway Sync"),
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.user} ({self.stripe_customer_id or 'no customer'})"

    def ensure_active(self, plan: str) -> bool:
        """Add `plan` to the active index in memory. Returns True if it was missing."""
        if plan in self.active_subscription_ids:
            return False
        self.active_subscription_ids = [*self.active_subscription_ids, plan]
        return True

    def remove_active(self, plan: str) -> bool:
        if plan not in self.active_subscription_ids:
            return False
        self.active_subscription_ids = [
            p for p in self.active_subscription_ids if p != plan
        ]
        return True

    class Meta:
        verbose_name = _("Billing Account")
        verbose_name_plural = _("Billing Accounts")
        db_table = "subscriptions_billing_account"


class SubscriptionEntry(models.Model):
    STATUS_ACTIVE = "active"
    STATUS_EXPIRED = "expired"
    STATUS_CANCELLED = "cancelled"
    STATUS_CHOICES = [
        (STATUS_ACTIVE, _("Active")),
        (STATUS_EXPIRED, _("Expired")),
        (STATUS_CANCELLED, _("Cancelled")),
    ]

    account = models.ForeignKey(
        BillingAccount,
        on_delete=models.CASCADE,
        related_name="subscriptions",
        verbose_name=_("Billing Account"),
    )
    plan = models.CharField(max_length=100, verbose_name=_("Plan"))
    stripe_subscription_id = models.CharField(
        max_length=255,
        blank=True,
        db_index=True,
        verbose_name=_("Stripe Subscription"),
    )
    status = models.CharField(
        max_length=10,
        choices=STATUS_CHOICES,
        default=STATUS_ACTIVE,
        verbose_name=_("Status"),
    )
    current_period_end = models.DateTimeField(
        null=True, blank=True, verbose_name=_("Current Period End")
    )
    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        verbose_name=_("Expires At"),
        help_text=_("Hard end of access, e.g. after a cancellation at period end"),
    )
    price = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True, verbose_name=_("Price")
    )
    currency = models.CharField(max_length=3, default="usd", verbose_name=_("Currency"))
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.plan} [{self.status}] {self.stripe_subscription_id}"

    class Meta:
        verbose_name = _("Subscription")
        verbose_name_plural = _("Subscriptions")
        ordering = ["-created_at"]
        db_table = "subscriptions_entry"
        indexes = [
            models.Index(fields=["status", "current_period_end"], name="subscription_period_scan"),
            models.Index(fields=["status", "expires_at"], name="subscription_expiry_scan"),
            models.Index(fields=["account", "plan", "status"], name="subscription_account_plan"),
        ]


class SubscriptionPayment(models.Model):
    """A paid (or failed) subscription invoice, as reported by Stripe."""

    STATUS_SUCCEEDED = "succeeded"
    STATUS_FAILED = "failed"
    STATUS_REFUNDED = "refunded"
    STATUS_CHOICES = [
        (STATUS_SUCCEEDED, _("Succeeded")),
        (STATUS_FAILED, _("Failed")),
        (STATUS_REFUNDED, _("Refunded")),
    ]

    account = models.ForeignKey(
        BillingAccount,
        on_delete=models.CASCADE,
        related_name="payments",
        verbose_name=_("Billing Account"),
    )
    plan = models.CharField(max_length=100, blank=True, verbose_name=_("Plan"))
    stripe_invoice_id = models.CharField(
        max_length=255, unique=True, null=True, blank=True, verbose_name=_("Stripe Invoice")
    )
    stripe_subscription_id = models.CharField(max_length=255, blank=True, db_index=True)
    stripe_payment_intent_id = models.CharField(max_length=255, blank=True)
    amount = models.DecimalField(max_digits=10, decimal_places=2, verbose_name=_("Amount"))
    currency = models.CharField(max_length=3, default="usd")
    status = models.CharField(
        max_length=10,
        choices=STATUS_CHOICES,
        default=STATUS_SUCCEEDED,
        verbose_name=_("Status"),
    )
    next_billing_date = models.DateTimeField(
        null=True,
        blank=True,
        verbose_name=_("Next Billing Date"),
        help_text=_("End of the period this payment covers"),
    )
    billing_reason = models.CharField(max_length=50, blank=True)
    paid_at = models.DateTimeField(db_index=True, verbose_name=_("Paid At"))
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.stripe_invoice_id} {self.amount} {self.currency} [{self.status}]"

    class Meta:
        verbose_name = _("Subscription Payment")
        verbose_name_plural = _("Subscription Payments")
        ordering = ["-paid_at"]
        db_table = "subscriptions_payment"


class SubscriptionHistoryQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise ImmutableRecordError("Subscription history cannot be updated.")

    def delete(self):
        raise ImmutableRecordError("Subscription history cannot be deleted.")


class SubscriptionHistory(models.Model):
    """
    Append-only audit entry for a subscription change.

    Rows can be created, never changed: `save()` on an existing row,
    `delete()` and the bulk queryset variants raise `ImmutableRecordError`.
    Foreign keys carry no database constraint and are left untouched when
    the referenced row goes away, so the log outlives what it describes
    without being rewritten. Use the `*_id` columns on old rows.
    """

    ACTION_CREATED = "created"
    ACTION_RENEWED = "renewed"
    ACTION_UPGRADED = "upgraded"
    ACTION_DOWNGRADED = "downgraded"
    ACTION_CANCELLED = "cancelled"
    ACTION_EXPIRED = "expired"
    ACTION_REACTIVATED = "reactivated"
    ACTION_PRICE_CHANGED = "price_changed"
    ACTION_PAYMENT_FAILED = "payment_failed"
    ACTION_PAYMENT_SUCCEEDED = "payment_succeeded"
    ACTION_CHOICES = [
        (ACTION_CREATED, _("Created")),
        (ACTION_RENEWED, _("Renewed")),
        (ACTION_UPGRADED, _("Upgraded")),
        (ACTION_DOWNGRADED, _("Downgraded")),
        (ACTION_CANCELLED, _("Cancelled")),
        (ACTION_EXPIRED, _("Expired")),
        (ACTION_REACTIVATED, _("Reactivated")),
        (ACTION_PRICE_CHANGED, _("Price changed")),
        (ACTION_PAYMENT_FAILED, _("Payment failed")),
        (ACTION_PAYMENT_SUCCEEDED, _("Payment succeeded")),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        null=True,
        blank=True,
        related_name="subscription_history",
    )
    subscription = models.ForeignKey(
        SubscriptionEntry,
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        null=True,
        blank=True,
        related_name="history",
    )
    transaction = models.ForeignKey(
        SubscriptionPayment,
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        null=True,
        blank=True,
        related_name="history_entries",
    )
    plan = models.CharField(max_length=100, blank=True)
    action = models.CharField(max_length=20, choices=ACTION_CHOICES, verbose_name=_("Action"))
    stripe_subscription_id = models.CharField(max_length=255, blank=True)
    stripe_event_id = models.CharField(max_length=255, blank=True, db_index=True)
    price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    currency = models.CharField(max_length=3, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    effective_date = models.DateTimeField(verbose_name=_("Effective Date"))
    expiration_date = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = SubscriptionHistoryQuerySet.as_manager()

    def __str__(self) -> str:
        return f"{self.plan} {self.action} @ {self.effective_date:%Y-%m-%d %H:%M}"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ImmutableRecordError("Subscription history entries are immutable.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError("Subscription history entries cannot be deleted.")

    class Meta:
        verbose_name = _("Subscription History")
        verbose_name_plural = _("Subscription History")
        ordering = ["-effective_date", "-pk"]
        db_table = "subscriptions_history"
        indexes = [
            models.Index(fields=["user", "effective_date"], name="subscription_history_user"),
        ]


class ModulePermission(models.Model):
    """Access of a user to one content module."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="module_permissions",
    )
    module_type = models.CharField(max_length=50, verbose_name=_("Module"))
    has_access = models.BooleanField(default=True)
    is_active = models.BooleanField(default=True)
    expires_at = models.DateTimeField(null=True, blank=True, verbose_name=_("Expires At"))
    from_subscription = models.BooleanField(
        default=False,
        help_text=_("Granted by a subscription and revoked with it"),
    )
    subscription = models.ForeignKey(
        SubscriptionEntry,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="module_permissions",
    )
    granted_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        state = "active" if self.is_active and self.has_access else "inactive"
        return f"{self.user} -> {self.module_type} ({state})"

    class Meta:
        verbose_name = _("Module Permission")
        verbose_name_plural = _("Module Permissions")
        db_table = "subscriptions_module_permission"
        constraints = [
            models.UniqueConstraint(
                fields=["user", "module_type"], name="uniq_module_permission_user"
            ),
        ]
