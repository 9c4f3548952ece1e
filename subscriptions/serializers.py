from rest_framework import serializers

from .models import BillingAccount, ModulePermission, SubscriptionEntry, SubscriptionHistory


class SubscriptionEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = SubscriptionEntry
        fields = [
            "id",
            "plan",
            "status",
            "current_period_end",
            "expires_at",
            "price",
            "currency",
            "created_at",
        ]
        read_only_fields = fields


class SubscriptionHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = SubscriptionHistory
        fields = [
            "id",
            "plan",
            "action",
            "price",
            "currency",
            "effective_date",
            "expiration_date",
            "metadata",
        ]
        read_only_fields = fields


class ModulePermissionSerializer(serializers.ModelSerializer):
    class Meta:
        model = ModulePermission
        fields = ["module_type", "has_access", "is_active", "expires_at", "from_subscription"]
        read_only_fields = fields


class BillingAccountSerializer(serializers.ModelSerializer):
    subscriptions = SubscriptionEntrySerializer(many=True, read_only=True)

    class Meta:
        model = BillingAccount
        fields = ["region", "active_subscription_ids", "last_synced_at", "subscriptions"]
        read_only_fields = fields
