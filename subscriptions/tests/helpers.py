"""Fixture builders shared by the subscriptions tests."""

import itertools
from decimal import Decimal

from django.contrib.auth import get_user_model

from subscriptions.models import BillingAccount, SubscriptionEntry, SubscriptionPayment

_numbers = itertools.count(1)


def make_account(*, region="us", customer_id=None, **overrides):
    n = next(_numbers)
    user = get_user_model().objects.create_user(
        username=f"member{n}", email=f"member{n}@example.com", password="pw"
    )
    fields = {
        "user": user,
        "stripe_customer_id": customer_id or f"cus_{n}",
        "region": region,
    }
    fields.update(overrides)
    return BillingAccount.objects.create(**fields)


def make_entry(account, *, plan="pro", stripe_subscription_id="", **overrides):
    fields = {
        "account": account,
        "plan": plan,
        "stripe_subscription_id": stripe_subscription_id,
        "status": SubscriptionEntry.STATUS_ACTIVE,
        "price": Decimal("49.00"),
    }
    fields.update(overrides)
    entry = SubscriptionEntry.objects.create(**fields)
    if entry.status == SubscriptionEntry.STATUS_ACTIVE and account.ensure_active(plan):
        account.save(update_fields=["active_subscription_ids", "updated_at"])
    return entry


def make_subscription_payment(account, *, paid_at, plan="pro", stripe_subscription_id="", **overrides):
    fields = {
        "account": account,
        "plan": plan,
        "stripe_invoice_id": f"in_{next(_numbers)}",
        "stripe_subscription_id": stripe_subscription_id,
        "amount": Decimal("49.00"),
        "paid_at": paid_at,
    }
    fields.update(overrides)
    return SubscriptionPayment.objects.create(**fields)
