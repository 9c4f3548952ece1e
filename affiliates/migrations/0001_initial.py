from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("events", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Affiliate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(help_text="Stored upper case", max_length=50, unique=True, verbose_name="Code")),
                ("name", models.CharField(max_length=200, verbose_name="Name")),
                ("email", models.EmailField(blank=True, max_length=254, verbose_name="Email")),
                ("discount_type", models.CharField(choices=[("percentage", "Percentage"), ("fixed", "Fixed amount")], default="percentage", max_length=10, verbose_name="Discount Type")),
                ("discount_value", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Percent of the price or a fixed amount, see discount type", max_digits=10, verbose_name="Discount")),
                ("commission_rate", models.DecimalField(decimal_places=2, default=Decimal("10.00"), help_text="Percent of the amount paid by the referred attendee", max_digits=5, verbose_name="Commission Rate")),
                ("is_active", models.BooleanField(default=True, verbose_name="Active")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("user", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="affiliates", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "verbose_name": "Affiliate",
                "verbose_name_plural": "Affiliates",
                "ordering": ["code"],
                "db_table": "affiliates_affiliate",
            },
        ),
        migrations.CreateModel(
            name="Commission",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("base_amount", models.DecimalField(decimal_places=2, max_digits=10, verbose_name="Base Amount")),
                ("commission_rate", models.DecimalField(decimal_places=2, max_digits=5)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=10, verbose_name="Amount")),
                ("status", models.CharField(choices=[("pending", "Pending"), ("approved", "Approved"), ("paid", "Paid"), ("cancelled", "Cancelled")], default="pending", max_length=10, verbose_name="Status")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("affiliate", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="commissions", to="affiliates.affiliate", verbose_name="Affiliate")),
                ("registration", models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="commission", to="events.eventregistration", verbose_name="Registration")),
            ],
            options={
                "verbose_name": "Commission",
                "verbose_name_plural": "Commissions",
                "ordering": ["-created_at"],
                "db_table": "affiliates_commission",
            },
        ),
    ]
