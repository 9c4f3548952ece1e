from datetime import timedelta
from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from core.stripe_integration.gateway import GatewaySubscription, from_timestamp
from core.stripe_integration.testing import FakeGateway
from subscriptions.models import SubscriptionEntry, SubscriptionHistory, SubscriptionPayment
from subscriptions.services.billing import record_payment_failure, record_subscription_payment

from .helpers import make_account, make_entry


def invoice_payload(customer, *, invoice_id="in_1", subscription="sub_1", period_end=None, **overrides):
    now = timezone.now()
    period_end = period_end or now + timedelta(days=30)
    payload = {
        "id": invoice_id,
        "customer": customer,
        "subscription": subscription,
        "amount_paid": 4900,
        "amount_due": 4900,
        "currency": "usd",
        "billing_reason": "subscription_create",
        "payment_intent": "pi_sub",
        "status_transitions": {"paid_at": int(now.timestamp())},
        "metadata": {"plan": "pro"},
        "lines": {"data": [{"period": {"end": int(period_end.timestamp())}}]},
    }
    payload.update(overrides)
    return payload


class RecordSubscriptionPaymentTests(TestCase):
    def setUp(self):
        self.account = make_account(customer_id="cus_bill")
        self.gateway = FakeGateway()

    def test_first_payment_creates_the_subscription(self):
        invoice = invoice_payload("cus_bill")

        payment = record_subscription_payment(invoice, event_id="evt_1", gateway=self.gateway)

        self.assertEqual(payment.amount, Decimal("49.00"))
        self.assertEqual(payment.plan, "pro")
        entry = SubscriptionEntry.objects.get(stripe_subscription_id="sub_1")
        self.assertEqual(entry.status, SubscriptionEntry.STATUS_ACTIVE)
        self.assertEqual(entry.current_period_end, from_timestamp(invoice["lines"]["data"][0]["period"]["end"]))
        history = SubscriptionHistory.objects.get(subscription=entry)
        self.assertEqual(history.action, SubscriptionHistory.ACTION_CREATED)
        self.assertEqual(history.stripe_event_id, "evt_1")
        self.assertEqual(history.transaction, payment)
        self.account.refresh_from_db()
        self.assertEqual(self.account.active_subscription_ids, ["pro"])

    def test_renewal_extends_the_period(self):
        entry = make_entry(
            self.account, stripe_subscription_id="sub_1", current_period_end=timezone.now()
        )
        period_end = timezone.now() + timedelta(days=31)
        invoice = invoice_payload(
            "cus_bill", period_end=period_end, billing_reason="subscription_cycle"
        )

        record_subscription_payment(invoice, gateway=self.gateway)

        entry.refresh_from_db()
        self.assertEqual(entry.current_period_end, from_timestamp(int(period_end.timestamp())))
        history = SubscriptionHistory.objects.get(subscription=entry)
        self.assertEqual(history.action, SubscriptionHistory.ACTION_RENEWED)
        self.assertEqual(SubscriptionEntry.objects.count(), 1)

    def test_same_invoice_is_recorded_once(self):
        invoice = invoice_payload("cus_bill")

        self.assertIsNotNone(record_subscription_payment(invoice, gateway=self.gateway))
        self.assertIsNone(record_subscription_payment(invoice, gateway=self.gateway))

        self.assertEqual(SubscriptionPayment.objects.count(), 1)
        self.assertEqual(SubscriptionHistory.objects.count(), 1)

    def test_payment_for_untracked_subscription_reuses_the_plan_entry(self):
        entry = make_entry(self.account, stripe_subscription_id="sub_old")
        invoice = invoice_payload("cus_bill", subscription="sub_other")

        record_subscription_payment(invoice, gateway=self.gateway)

        active = SubscriptionEntry.objects.filter(
            account=self.account, plan="pro", status=SubscriptionEntry.STATUS_ACTIVE
        )
        self.assertEqual(list(active), [entry])
        entry.refresh_from_db()
        self.assertEqual(entry.stripe_subscription_id, "sub_old")
        self.assertEqual(
            entry.current_period_end, from_timestamp(invoice["lines"]["data"][0]["period"]["end"])
        )
        history = SubscriptionHistory.objects.get(subscription=entry)
        self.assertEqual(history.action, SubscriptionHistory.ACTION_PAYMENT_SUCCEEDED)

    def test_unknown_customer_is_ignored(self):
        self.assertIsNone(
            record_subscription_payment(invoice_payload("cus_nobody"), gateway=self.gateway)
        )
        self.assertFalse(SubscriptionPayment.objects.exists())

    def test_missing_period_is_fetched_from_the_gateway(self):
        period_end = timezone.now().replace(microsecond=0) + timedelta(days=30)
        self.gateway.subscriptions["sub_1"] = GatewaySubscription(
            id="sub_1",
            customer_id="cus_bill",
            status="active",
            current_period_end=period_end,
            plan="pro",
        )
        invoice = invoice_payload("cus_bill", lines={"data": []}, metadata={})

        payment = record_subscription_payment(invoice, gateway=self.gateway)

        self.assertEqual(payment.plan, "pro")
        self.assertEqual(payment.next_billing_date, period_end)


class RecordPaymentFailureTests(TestCase):
    def setUp(self):
        self.account = make_account(customer_id="cus_fail")
        self.entry = make_entry(self.account, stripe_subscription_id="sub_1")

    def test_failure_is_logged_once_per_event(self):
        invoice = invoice_payload("cus_fail", attempt_count=2)

        first = record_payment_failure(invoice, event_id="evt_failed")
        second = record_payment_failure(invoice, event_id="evt_failed")

        self.assertIsNotNone(first)
        self.assertIsNone(second)
        self.assertEqual(first.action, SubscriptionHistory.ACTION_PAYMENT_FAILED)
        self.assertEqual(first.subscription, self.entry)
        self.assertEqual(first.metadata["attempt_count"], 2)
        self.entry.refresh_from_db()
        self.assertEqual(self.entry.status, SubscriptionEntry.STATUS_ACTIVE)
