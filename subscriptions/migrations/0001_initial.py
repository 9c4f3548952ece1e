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
            name="BillingAccount",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("stripe_customer_id", models.CharField(blank=True, max_length=255, null=True, unique=True, verbose_name="Stripe Customer")),
                ("region", models.CharField(db_index=True, default="us", help_text="Region code the reconciliation sweeps are scoped by", max_length=16, verbose_name="Region")),
                ("active_subscription_ids", models.JSONField(blank=True, default=list, help_text="Plan identifiers with an active subscription", verbose_name="Active Plans")),
                ("last_synced_at", models.DateTimeField(blank=True, null=True, verbose_name="Last Gateway Sync")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("user", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="billing_account", to=settings.AUTH_USER_MODEL, verbose_name="User")),
            ],
            options={
                "verbose_name": "Billing Account",
                "verbose_name_plural": "Billing Accounts",
                "db_table": "subscriptions_billing_account",
            },
        ),
        migrations.CreateModel(
            name="SubscriptionEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("plan", models.CharField(max_length=100, verbose_name="Plan")),
                ("stripe_subscription_id", models.CharField(blank=True, db_index=True, max_length=255, verbose_name="Stripe Subscription")),
                ("status", models.CharField(choices=[("active", "Active"), ("expired", "Expired"), ("cancelled", "Cancelled")], default="active", max_length=10, verbose_name="Status")),
                ("current_period_end", models.DateTimeField(blank=True, null=True, verbose_name="Current Period End")),
                ("expires_at", models.DateTimeField(blank=True, help_text="Hard end of access, e.g. after a cancellation at period end", null=True, verbose_name="Expires At")),
                ("price", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True, verbose_name="Price")),
                ("currency", models.CharField(default="usd", max_length=3, verbose_name="Currency")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("account", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="subscriptions", to="subscriptions.billingaccount", verbose_name="Billing Account")),
            ],
            options={
                "verbose_name": "Subscription",
                "verbose_name_plural": "Subscriptions",
                "ordering": ["-created_at"],
                "db_table": "subscriptions_entry",
            },
        ),
        migrations.CreateModel(
            name="SubscriptionPayment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("plan", models.CharField(blank=True, max_length=100, verbose_name="Plan")),
                ("stripe_invoice_id", models.CharField(blank=True, max_length=255, null=True, unique=True, verbose_name="Stripe Invoice")),
                ("stripe_subscription_id", models.CharField(blank=True, db_index=True, max_length=255)),
                ("stripe_payment_intent_id", models.CharField(blank=True, max_length=255)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=10, verbose_name="Amount")),
                ("currency", models.CharField(default="usd", max_length=3)),
                ("status", models.CharField(choices=[("succeeded", "Succeeded"), ("failed", "Failed"), ("refunded", "Refunded")], default="succeeded", max_length=10, verbose_name="Status")),
                ("next_billing_date", models.DateTimeField(blank=True, help_text="End of the period this payment covers", null=True, verbose_name="Next Billing Date")),
                ("billing_reason", models.CharField(blank=True, max_length=50)),
                ("paid_at", models.DateTimeField(db_index=True, verbose_name="Paid At")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("account", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="payments", to="subscriptions.billingaccount", verbose_name="Billing Account")),
            ],
            options={
                "verbose_name": "Subscription Payment",
                "verbose_name_plural": "Subscription Payments",
                "ordering": ["-paid_at"],
                "db_table": "subscriptions_payment",
            },
        ),
        migrations.CreateModel(
            name="SubscriptionHistory",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("plan", models.CharField(blank=True, max_length=100)),
                ("action", models.CharField(choices=[("created", "Created"), ("renewed", "Renewed"), ("upgraded", "Upgraded"), ("downgraded", "Downgraded"), ("cancelled", "Cancelled"), ("expired", "Expired"), ("reactivated", "Reactivated"), ("price_changed", "Price changed"), ("payment_failed", "Payment failed"), ("payment_succeeded", "Payment succeeded")], max_length=20, verbose_name="Action")),
                ("stripe_subscription_id", models.CharField(blank=True, max_length=255)),
                ("stripe_event_id", models.CharField(blank=True, db_index=True, max_length=255)),
                ("price", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ("currency", models.CharField(blank=True, max_length=3)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("effective_date", models.DateTimeField(verbose_name="Effective Date")),
                ("expiration_date", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("subscription", models.ForeignKey(blank=True, null=True, db_constraint=False, on_delete=django.db.models.deletion.DO_NOTHING, related_name="history", to="subscriptions.subscriptionentry")),
                ("transaction", models.ForeignKey(blank=True, null=True, db_constraint=False, on_delete=django.db.models.deletion.DO_NOTHING, related_name="history_entries", to="subscriptions.subscriptionpayment")),
                ("user", models.ForeignKey(blank=True, null=True, db_constraint=False, on_delete=django.db.models.deletion.DO_NOTHING, related_name="subscription_history", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Subscription History",
                "verbose_name_plural": "Subscription History",
                "ordering": ["-effective_date", "-pk"],
                "db_table": "subscriptions_history",
            },
        ),
        migrations.CreateModel(
            name="ModulePermission",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("module_type", models.CharField(max_length=50, verbose_name="Module")),
                ("has_access", models.BooleanField(default=True)),
                ("is_active", models.BooleanField(default=True)),
                ("expires_at", models.DateTimeField(blank=True, null=True, verbose_name="Expires At")),
                ("from_subscription", models.BooleanField(default=False, help_text="Granted by a subscription and revoked with it")),
                ("granted_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("subscription", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="module_permissions", to="subscriptions.subscriptionentry")),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="module_permissions", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Module Permission",
                "verbose_name_plural": "Module Permissions",
                "db_table": "subscriptions_module_permission",
            },
        ),
        migrations.AddIndex(
            model_name="subscriptionentry",
            index=models.Index(fields=["status", "current_period_end"], name="subscription_period_scan"),
        ),
        migrations.AddIndex(
            model_name="subscriptionentry",
            index=models.Index(fields=["status", "expires_at"], name="subscription_expiry_scan"),
        ),
        migrations.AddIndex(
            model_name="subscriptionentry",
            index=models.Index(fields=["account", "plan", "status"], name="subscription_account_plan"),
        ),
        migrations.AddIndex(
            model_name="subscriptionhistory",
            index=models.Index(fields=["user", "effective_date"], name="subscription_history_user"),
        ),
        migrations.AddConstraint(
            model_name="modulepermission",
            constraint=models.UniqueConstraint(fields=("user", "module_type"), name="uniq_module_permission_user"),
        ),
    ]
