from datetime import timedelta
from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone

from core.stripe_integration.testing import FakeGateway
from events.models import EventPaymentTracker, EventRegistration
from events.services.checkout import initiate_registration, make_payment as open_payment
from events.services.cleanup import abandoned_registrations, cleanup_abandoned_checkouts
from events.services.webhook import complete_payment

from .helpers import make_event, make_payment, make_registration


class CleanupAbandonedCheckoutsTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.event = make_event()

    def setUp(self):
        self.now = timezone.now()
        self.expired = self.now - timedelta(hours=1)

    def test_abandoned_checkout_is_collected_after_its_window(self):
        started = self.now - timedelta(hours=3)
        result = initiate_registration(
            event_id=self.event.pk,
            email="walkaway@example.com",
            first_name="Walk",
            last_name="Away",
            amount=Decimal("500.00"),
            gateway=FakeGateway(),
            now=started,
        )

        stats = cleanup_abandoned_checkouts(now=self.now)

        self.assertEqual(stats, {"registrations_deleted": 1, "payments_deleted": 1, "errors": 0})
        self.assertFalse(EventRegistration.objects.filter(pk=result.registration.pk).exists())
        self.assertFalse(EventPaymentTracker.objects.exists())

    def test_additional_checkout_on_unpaid_registration_extends_its_window(self):
        started = self.now - timedelta(hours=1, minutes=55)
        initiated = initiate_registration(
            event_id=self.event.pk,
            email="second-try@example.com",
            first_name="Second",
            last_name="Try",
            amount=Decimal("500.00"),
            gateway=FakeGateway(),
            now=started,
        )
        retry = open_payment(initiated.registration.pk, "600.00", gateway=FakeGateway())

        stats = cleanup_abandoned_checkouts(now=self.now + timedelta(minutes=10))

        self.assertEqual(stats["registrations_deleted"], 0)
        result = complete_payment(retry.payment.payment_id, "pi_second_try")
        self.assertTrue(result.applied)
        registration = EventRegistration.objects.get(pk=initiated.registration.pk)
        self.assertEqual(registration.total_paid, Decimal("600.00"))

    def test_open_checkout_window_is_kept(self):
        registration = make_registration(
            self.event, checkout_session_expires_at=self.now + timedelta(minutes=30)
        )
        make_payment(registration, "500.00")

        stats = cleanup_abandoned_checkouts(now=self.now)

        self.assertEqual(stats["registrations_deleted"], 0)
        self.assertTrue(EventRegistration.objects.filter(pk=registration.pk).exists())

    def test_completed_ledger_row_protects_a_stale_aggregate(self):
        # Aggregate still says nothing was paid, the ledger disagrees
        registration = make_registration(self.event, checkout_session_expires_at=self.expired)
        make_payment(
            registration,
            "500.00",
            status=EventPaymentTracker.STATUS_COMPLETED,
            stripe_payment_intent_id="pi_paid",
        )

        stats = cleanup_abandoned_checkouts(now=self.now)

        self.assertEqual(stats["registrations_deleted"], 0)
        self.assertTrue(EventRegistration.objects.filter(pk=registration.pk).exists())

    def test_processing_payment_protects_the_registration(self):
        registration = make_registration(self.event, checkout_session_expires_at=self.expired)
        make_payment(registration, "500.00", status=EventPaymentTracker.STATUS_PROCESSING)

        self.assertFalse(abandoned_registrations(self.now).exists())

    def test_cancelled_trackers_do_not_protect(self):
        registration = make_registration(self.event, checkout_session_expires_at=self.expired)
        make_payment(registration, "500.00", status=EventPaymentTracker.STATUS_CANCELLED)
        make_payment(registration, "500.00")

        stats = cleanup_abandoned_checkouts(now=self.now)

        self.assertEqual(stats["registrations_deleted"], 1)
        self.assertEqual(stats["payments_deleted"], 1)
        self.assertFalse(EventPaymentTracker.objects.exists())

    def test_dry_run_deletes_nothing(self):
        registration = make_registration(self.event, checkout_session_expires_at=self.expired)
        make_payment(registration, "500.00")

        stats = cleanup_abandoned_checkouts(now=self.now, dry_run=True)

        self.assertEqual(stats["registrations_deleted"], 1)
        self.assertEqual(stats["payments_deleted"], 1)
        self.assertTrue(EventRegistration.objects.filter(pk=registration.pk).exists())

    def test_management_command_dry_run_lists_candidates(self):
        registration = make_registration(self.event, checkout_session_expires_at=self.expired)
        out = StringIO()

        call_command("cleanup_abandoned_checkouts", "--dry-run", stdout=out)

        self.assertIn(registration.registration_number, out.getvalue())
        self.assertIn("Would delete 1 registrations", out.getvalue())
        self.assertTrue(EventRegistration.objects.filter(pk=registration.pk).exists())
