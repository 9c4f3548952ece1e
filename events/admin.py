"""
Events Django Admin Configuration

Admin screens for events, registrations and their payment ledger.

The balance fields of a registration are read only here: they are derived
from the completed payments. Use the "Recalculate balance" action to repair
a registration whose aggregate drifted.

Author: Trading Academy Development Team
Version: 1.0.0
"""

from django.contrib import admin, messages
from django.db.models import QuerySet
from django.http import HttpRequest
from django.utils.translation import gettext_lazy as _

from .models import Event, EventPaymentTracker, EventRegistration
from .services.ledger import AGGREGATE_FIELDS
from .services.recalculation import recalculate_registration


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    """Administration interface for events and their payment policy."""

    list_display = ("title", "start_date", "price", "payment_mode", "is_active")
    list_filter = ("payment_mode", "is_active")
    search_fields = ("title", "description")

    fieldsets = (
        (_("Basic Information"), {"fields": ("title", "description", "start_date", "is_active")}),
        (
            _("Payment Policy"),
            {
                "fields": (
                    "price",
                    "payment_mode",
                    "minimum_deposit_amount",
                    "deposit_percentage",
                    "minimum_installment_amount",
                ),
                "description": _(
                    "A flat minimum deposit takes precedence over the percentage"
                ),
            },
        ),
    )


class EventPaymentTrackerInline(admin.TabularInline):
    """Read-only view of a registration's ledger."""

    model = EventPaymentTracker
    extra = 0
    can_delete = False
    fields = ("payment_id", "payment_type", "amount", "status", "processed_at", "receipt_url")
    readonly_fields = fields
    ordering = ("created_at",)

    def has_add_permission(self, request: HttpRequest, obj=None) -> bool:
        return False


@admin.register(EventRegistration)
class EventRegistrationAdmin(admin.ModelAdmin):
    list_display = (
        "registration_number",
        "email",
        "event",
        "total_amount",
        "total_paid",
        "remaining_balance",
        "payment_status",
        "is_fully_paid",
    )
    list_filter = ("payment_status", "payment_mode", "is_fully_paid", "event")
    search_fields = ("registration_number", "email", "first_name", "last_name")
    list_select_related = ("event",)
    readonly_fields = (
        "id",
        "registration_number",
        "original_price",
        "discount_amount",
        "total_amount",
        *AGGREGATE_FIELDS,
        "created_at",
        "updated_at",
    )
    inlines = [EventPaymentTrackerInline]
    actions = ["recalculate_balance"]

    @admin.action(description=_("Recalculate balance from payments"))
    def recalculate_balance(self, request: HttpRequest, queryset: QuerySet) -> None:
        changed = 0
        for registration_id in queryset.values_list("pk", flat=True):
            if recalculate_registration(registration_id)["changed"]:
                changed += 1
        self.message_user(
            request,
            f"{queryset.count()} registrations recalculated, {changed} corrected.",
            messages.SUCCESS,
        )


@admin.register(EventPaymentTracker)
class EventPaymentTrackerAdmin(admin.ModelAdmin):
    list_display = (
        "payment_id",
        "registration",
        "payment_type",
        "amount",
        "status",
        "retry_count",
        "processed_at",
    )
    list_filter = ("status", "payment_type", "event")
    search_fields = (
        "payment_id",
        "email",
        "stripe_session_id",
        "stripe_payment_intent_id",
        "registration__registration_number",
    )
    list_select_related = ("registration",)
    readonly_fields = [f.name for f in EventPaymentTracker._meta.fields]

    def has_add_permission(self, request: HttpRequest) -> bool:
        return False

    def has_delete_permission(self, request: HttpRequest, obj=None) -> bool:
        # Completed rows are refunded, never removed
        if obj is not None and obj.status in EventPaymentTracker.RECEIVED_STATUSES:
            return False
        return super().has_delete_permission(request, obj)
