from decimal import Decimal

from rest_framework import serializers

from .models import Event, EventPaymentTracker, EventRegistration


class EventPaymentTrackerSerializer(serializers.ModelSerializer):
    class Meta:
        model = EventPaymentTracker
        fields = [
            "payment_id",
            "payment_type",
            "amount",
            "currency",
            "status",
            "previous_balance",
            "new_balance",
            "description",
            "stripe_session_id",
            "stripe_payment_intent_id",
            "receipt_url",
            "processed_at",
            "failed_at",
            "refunded_at",
            "retry_count",
            "created_at",
        ]
        read_only_fields = fields


class EventRegistrationSerializer(serializers.ModelSerializer):
    event_title = serializers.CharField(source="event.title", read_only=True)

    class Meta:
        model = EventRegistration
        fields = [
            "id",
            "registration_number",
            "event",
            "event_title",
            "email",
            "first_name",
            "last_name",
            "phone",
            "original_price",
            "discount_amount",
            "total_amount",
            "total_paid",
            "remaining_balance",
            "is_fully_paid",
            "payment_mode",
            "payment_status",
            "payment_history",
            "checkout_session_expires_at",
            "next_payment_due_date",
            "created_at",
        ]
        read_only_fields = fields


class InitiateRegistrationSerializer(serializers.Serializer):
    event_id = serializers.IntegerField()
    email = serializers.EmailField()
    first_name = serializers.CharField(max_length=100)
    last_name = serializers.CharField(max_length=100)
    phone = serializers.CharField(max_length=40, required=False, allow_blank=True)
    amount = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=Decimal("0.01")
    )
    payment_mode = serializers.ChoiceField(
        choices=EventRegistration.MODE_CHOICES,
        default=EventRegistration.MODE_PARTIAL,
    )
    affiliate_code = serializers.CharField(
        max_length=50, required=False, allow_blank=True
    )


class MakePaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=Decimal("0.01")
    )
    description = serializers.CharField(max_length=255, required=False, allow_blank=True)
    metadata = serializers.DictField(required=False)


class SearchRegistrationSerializer(serializers.Serializer):
    email = serializers.EmailField(required=False)
    registration_number = serializers.CharField(max_length=32, required=False)

    def validate(self, attrs):
        if not attrs.get("email") and not attrs.get("registration_number"):
            raise serializers.ValidationError(
                "Provide an email or a registration number."
            )
        return attrs


class PaymentSuccessSerializer(serializers.Serializer):
    """Body of the payment-success webhook (camelCase on the wire)."""

    paymentId = serializers.CharField(max_length=64)
    stripePaymentIntentId = serializers.CharField(max_length=255)
    receiptUrl = serializers.URLField(
        max_length=500, required=False, allow_blank=True, allow_null=True
    )


class EventPaymentSettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = Event
        fields = [
            "id",
            "title",
            "price",
            "payment_mode",
            "minimum_deposit_amount",
            "deposit_percentage",
            "minimum_installment_amount",
        ]
        read_only_fields = ["id", "title", "price"]

    def validate_deposit_percentage(self, value):
        if value is not None and not (Decimal("0") < value <= Decimal("100")):
            raise serializers.ValidationError("Must be between 0 and 100.")
        return value
