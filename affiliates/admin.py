from django.contrib import admin

from .models import Affiliate, Commission


@admin.register(Affiliate)
class AffiliateAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "discount_type", "discount_value", "commission_rate", "is_active")
    list_filter = ("discount_type", "is_active")
    search_fields = ("code", "name", "email")


@admin.register(Commission)
class CommissionAdmin(admin.ModelAdmin):
    list_display = ("affiliate", "registration", "base_amount", "amount", "status", "created_at")
    list_filter = ("status", "affiliate")
    search_fields = ("affiliate__code", "registration__registration_number")
    readonly_fields = ("affiliate", "registration", "base_amount", "commission_rate", "amount", "created_at")
