from decimal import Decimal
from types import SimpleNamespace
from unittest import mock

from django.test import TestCase

from core.stripe_integration.signals import on_djstripe_event_created
from events.models import EventPaymentTracker
from events.services.webhook import complete_payment
from events.tests.helpers import make_event, make_payment, make_registration


def deliver(event_type, obj, *, event_id="evt_test", created=True):
    instance = SimpleNamespace(type=event_type, id=event_id, data={"data": {"object": obj}})
    on_djstripe_event_created(sender=None, instance=instance, created=created)


class DjstripeEventDispatchTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.event = make_event()

    def setUp(self):
        self.registration = make_registration(self.event, total="1000.00")
        self.payment = make_payment(self.registration, "500.00")
        self.session = {
            "id": "cs_test_1",
            "payment_status": "paid",
            "payment_intent": "pi_1",
            "metadata": {"payment_id": self.payment.payment_id},
        }

    def test_completed_session_completes_the_payment(self):
        deliver("checkout.session.completed", self.session)

        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, EventPaymentTracker.STATUS_COMPLETED)
        self.registration.refresh_from_db()
        self.assertEqual(self.registration.total_paid, Decimal("500.00"))

    def test_unpaid_session_waits_for_the_async_payment(self):
        deliver("checkout.session.completed", {**self.session, "payment_status": "unpaid"})
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, EventPaymentTracker.STATUS_PROCESSING)

        deliver("checkout.session.async_payment_succeeded", self.session)
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, EventPaymentTracker.STATUS_COMPLETED)

    def test_async_failure_and_expiry(self):
        other = make_payment(self.registration, "200.00")

        deliver("checkout.session.async_payment_failed", self.session)
        deliver("checkout.session.expired", {"metadata": {"payment_id": other.payment_id}})

        self.payment.refresh_from_db()
        other.refresh_from_db()
        self.assertEqual(self.payment.status, EventPaymentTracker.STATUS_FAILED)
        self.assertEqual(other.status, EventPaymentTracker.STATUS_CANCELLED)

    def test_declined_attempt_is_counted(self):
        deliver(
            "payment_intent.payment_failed",
            {
                "id": "pi_1",
                "metadata": {"payment_id": self.payment.payment_id},
                "last_payment_error": {"message": "Your card was declined."},
            },
        )
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.retry_count, 1)
        self.assertEqual(self.payment.failure_reason, "Your card was declined.")

    def test_full_refund_only(self):
        complete_payment(self.payment.payment_id, "pi_1")
        charge = {"id": "ch_1", "payment_intent": "pi_1", "refunded": False}

        deliver("charge.refunded", charge)
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, EventPaymentTracker.STATUS_COMPLETED)

        deliver(
            "charge.refunded",
            {**charge, "refunded": True, "refunds": {"data": [{"reason": "duplicate"}]}},
        )
        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, EventPaymentTracker.STATUS_REFUNDED)
        self.assertEqual(self.payment.refund_reason, "duplicate")

    def test_conflict_is_logged_not_raised(self):
        other = make_payment(self.registration, "300.00")
        complete_payment(other.payment_id, "pi_1")

        with self.assertLogs("core.stripe_integration.signals", level="ERROR"):
            deliver("checkout.session.completed", self.session)

        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, EventPaymentTracker.STATUS_PENDING)

    def test_handler_errors_are_swallowed(self):
        with mock.patch(
            "events.services.webhook.complete_payment",
            side_effect=RuntimeError("boom"),
        ):
            with self.assertLogs("core.stripe_integration.signals", level="ERROR"):
                deliver("checkout.session.completed", self.session)

    def test_updates_and_unknown_types_are_ignored(self):
        deliver("checkout.session.completed", self.session, created=False)
        deliver("customer.created", {"id": "cus_1"})

        self.payment.refresh_from_db()
        self.assertEqual(self.payment.status, EventPaymentTracker.STATUS_PENDING)

    def test_invoices_are_routed_to_billing(self):
        invoice = {"id": "in_1", "customer": "cus_1"}
        with mock.patch(
            "subscriptions.services.billing.record_subscription_payment"
        ) as recorder:
            deliver("invoice.paid", invoice, event_id="evt_inv")
        recorder.assert_called_once_with(invoice, event_id="evt_inv")

        with mock.patch(
            "subscriptions.services.billing.record_payment_failure"
        ) as recorder:
            deliver("invoice.payment_failed", invoice, event_id="evt_fail")
        recorder.assert_called_once_with(invoice, event_id="evt_fail")
