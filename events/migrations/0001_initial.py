import uuid
from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Event",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(help_text="Public title of the event", max_length=200, verbose_name="Title")),
                ("description", models.TextField(blank=True, verbose_name="Description")),
                ("price", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Full price of the event before discounts", max_digits=10, verbose_name="Price")),
                ("start_date", models.DateTimeField(blank=True, null=True, verbose_name="Start Date")),
                ("is_active", models.BooleanField(default=True, help_text="Inactive events cannot receive new registrations", verbose_name="Active")),
                ("payment_mode", models.CharField(choices=[("full_only", "Full payment only"), ("partial_allowed", "Partial payments allowed")], default="full_only", max_length=20, verbose_name="Payment Mode")),
                ("minimum_deposit_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Flat minimum deposit. Takes precedence over the percentage when > 0", max_digits=10, verbose_name="Minimum Deposit")),
                ("deposit_percentage", models.DecimalField(blank=True, decimal_places=2, help_text="Minimum deposit as percentage of the price (default 20%)", max_digits=5, null=True, verbose_name="Deposit Percentage")),
                ("minimum_installment_amount", models.DecimalField(blank=True, decimal_places=2, help_text="Smallest accepted follow-up payment (default from settings)", max_digits=10, null=True, verbose_name="Minimum Installment")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Event",
                "verbose_name_plural": "Events",
                "ordering": ["-start_date", "title"],
                "db_table": "events_event",
            },
        ),
        migrations.CreateModel(
            name="EventRegistration",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("registration_number", models.CharField(max_length=32, unique=True, verbose_name="Registration Number")),
                ("email", models.EmailField(max_length=254, verbose_name="Email")),
                ("first_name", models.CharField(max_length=100, verbose_name="First Name")),
                ("last_name", models.CharField(max_length=100, verbose_name="Last Name")),
                ("phone", models.CharField(blank=True, max_length=40, verbose_name="Phone")),
                ("original_price", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Event price at registration", max_digits=10, verbose_name="Original Price")),
                ("discount_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Referral discount applied", max_digits=10, verbose_name="Discount")),
                ("total_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Price net of discount", max_digits=10, verbose_name="Total Amount")),
                ("total_paid", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Sum of completed payments", max_digits=10, verbose_name="Total Paid")),
                ("remaining_balance", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="max(0, total amount - total paid)", max_digits=10, verbose_name="Remaining Balance")),
                ("is_fully_paid", models.BooleanField(default=False, verbose_name="Fully Paid")),
                ("payment_mode", models.CharField(choices=[("full", "Full"), ("partial", "Partial")], default="partial", max_length=10, verbose_name="Payment Mode")),
                ("payment_status", models.CharField(choices=[("pending", "Pending"), ("partial", "Partially paid"), ("paid", "Paid")], default="pending", max_length=10, verbose_name="Payment Status")),
                ("payment_history", models.JSONField(blank=True, default=list, help_text="Denormalized copy of the completed payments, oldest first", verbose_name="Payment History")),
                ("checkout_session_expires_at", models.DateTimeField(blank=True, null=True, verbose_name="Checkout Expires At")),
                ("next_payment_due_date", models.DateTimeField(blank=True, null=True, verbose_name="Next Payment Due")),
                ("affiliate_code", models.CharField(blank=True, max_length=50, verbose_name="Affiliate Code")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("event", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="registrations", to="events.event", verbose_name="Event")),
                ("user", models.ForeignKey(blank=True, help_text="Account of the attendee, if they were logged in", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="event_registrations", to=settings.AUTH_USER_MODEL, verbose_name="User")),
            ],
            options={
                "verbose_name": "Event Registration",
                "verbose_name_plural": "Event Registrations",
                "ordering": ["-created_at"],
                "db_table": "events_registration",
            },
        ),
        migrations.CreateModel(
            name="EventPaymentTracker",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("payment_id", models.CharField(help_text="Caller generated idempotency key of this payment", max_length=64, unique=True, verbose_name="Payment ID")),
                ("email", models.EmailField(max_length=254, verbose_name="Email")),
                ("payment_type", models.CharField(choices=[("deposit", "Deposit"), ("installment", "Installment"), ("final", "Final payment"), ("full", "Full payment")], max_length=12, verbose_name="Payment Type")),
                ("amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Amount of this payment", max_digits=10, verbose_name="Amount")),
                ("currency", models.CharField(default="usd", max_length=3, verbose_name="Currency")),
                ("status", models.CharField(choices=[("pending", "Pending"), ("processing", "Processing"), ("completed", "Completed"), ("failed", "Failed"), ("refunded", "Refunded"), ("cancelled", "Cancelled")], default="pending", max_length=12, verbose_name="Status")),
                ("total_event_price", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Registration total when the payment was created", max_digits=10, verbose_name="Total Event Price")),
                ("previous_balance", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Remaining balance before this payment", max_digits=10, verbose_name="Previous Balance")),
                ("new_balance", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Remaining balance after this payment", max_digits=10, verbose_name="New Balance")),
                ("description", models.CharField(blank=True, max_length=255)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("stripe_session_id", models.CharField(blank=True, db_index=True, max_length=255, verbose_name="Checkout Session")),
                ("stripe_payment_intent_id", models.CharField(blank=True, db_index=True, max_length=255, null=True, verbose_name="Payment Intent")),
                ("receipt_url", models.URLField(blank=True, max_length=500)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.CharField(blank=True, max_length=255)),
                ("refund_reason", models.CharField(blank=True, max_length=255)),
                ("retry_count", models.PositiveIntegerField(default=0, help_text="Failed charge attempts inside the checkout session", verbose_name="Retry Count")),
                ("last_retry_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("event", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="payment_trackers", to="events.event", verbose_name="Event")),
                ("registration", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="payments", to="events.eventregistration", verbose_name="Registration")),
                ("user", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="event_payments", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Event Payment",
                "verbose_name_plural": "Event Payments",
                "ordering": ["created_at"],
                "db_table": "events_payment_tracker",
            },
        ),
        migrations.AddConstraint(
            model_name="eventregistration",
            constraint=models.UniqueConstraint(fields=("event", "email"), name="uniq_registration_event_email"),
        ),
        migrations.AddIndex(
            model_name="eventregistration",
            index=models.Index(fields=["payment_status", "checkout_session_expires_at"], name="registration_checkout_expiry"),
        ),
        migrations.AddIndex(
            model_name="eventregistration",
            index=models.Index(fields=["email"], name="registration_email"),
        ),
        migrations.AddConstraint(
            model_name="eventpaymenttracker",
            constraint=models.UniqueConstraint(condition=models.Q(("status", "completed")), fields=("stripe_payment_intent_id",), name="uniq_completed_payment_intent"),
        ),
        migrations.AddIndex(
            model_name="eventpaymenttracker",
            index=models.Index(fields=["registration", "status"], name="payment_registration_status"),
        ),
        migrations.AddIndex(
            model_name="eventpaymenttracker",
            index=models.Index(fields=["event", "status"], name="payment_event_status"),
        ),
        migrations.AddIndex(
            model_name="eventpaymenttracker",
            index=models.Index(fields=["email", "event"], name="payment_email_event"),
        ),
    ]
