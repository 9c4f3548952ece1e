"""
Subscriptions Django Admin Configuration

History rows are shown read only: the audit log cannot be edited or
deleted, not even by superusers.

Author: Trading Academy Development Team
Version: 1.0.0
"""

from django.contrib import admin
from django.http import HttpRequest

from .models import (
    BillingAccount,
    ModulePermission,
    SubscriptionEntry,
    SubscriptionHistory,
    SubscriptionPayment,
)


class SubscriptionEntryInline(admin.TabularInline):
    model = SubscriptionEntry
    extra = 0
    fields = ("plan", "stripe_subscription_id", "status", "current_period_end", "expires_at")
    readonly_fields = ("stripe_subscription_id",)
    ordering = ("-created_at",)


@admin.register(BillingAccount)
class BillingAccountAdmin(admin.ModelAdmin):
    list_display = ("user", "stripe_customer_id", "region", "active_subscription_ids", "last_synced_at")
    list_filter = ("region",)
    search_fields = ("user__username", "user__email", "stripe_customer_id")
    readonly_fields = ("active_subscription_ids", "last_synced_at", "created_at", "updated_at")
    list_select_related = ("user",)
    inlines = [SubscriptionEntryInline]


@admin.register(SubscriptionEntry)
class SubscriptionEntryAdmin(admin.ModelAdmin):
    list_display = ("account", "plan", "status", "current_period_end", "expires_at", "stripe_subscription_id")
    list_filter = ("status", "plan")
    search_fields = ("stripe_subscription_id", "account__user__email", "account__stripe_customer_id")
    list_select_related = ("account__user",)


@admin.register(SubscriptionPayment)
class SubscriptionPaymentAdmin(admin.ModelAdmin):
    list_display = ("stripe_invoice_id", "account", "plan", "amount", "currency", "status", "paid_at")
    list_filter = ("status", "billing_reason")
    search_fields = ("stripe_invoice_id", "stripe_subscription_id", "account__stripe_customer_id")
    date_hierarchy = "paid_at"


@admin.register(SubscriptionHistory)
class SubscriptionHistoryAdmin(admin.ModelAdmin):
    list_display = ("effective_date", "user", "plan", "action", "price", "stripe_subscription_id")
    list_filter = ("action", "plan")
    search_fields = ("user__email", "stripe_subscription_id", "stripe_event_id")
    date_hierarchy = "effective_date"

    def get_readonly_fields(self, request: HttpRequest, obj=None):
        return [f.name for f in self.model._meta.fields]

    def has_change_permission(self, request: HttpRequest, obj=None) -> bool:
        return False

    def has_delete_permission(self, request: HttpRequest, obj=None) -> bool:
        return False


@admin.register(ModulePermission)
class ModulePermissionAdmin(admin.ModelAdmin):
    list_display = ("user", "module_type", "has_access", "is_active", "expires_at", "from_subscription")
    list_filter = ("module_type", "is_active", "from_subscription")
    search_fields = ("user__username", "user__email")
