from decimal import Decimal
from io import StringIO

from django.core import mail
from django.core.management import CommandError, call_command
from django.test import TestCase

from events.exceptions import EventNotFound, RegistrationNotFound
from events.models import EventPaymentTracker, EventRegistration
from events.services.recalculation import (
    clear_event,
    delete_registration,
    inspect_registration,
    recalculate_partial_registrations,
    recalculate_registration,
)

from .helpers import make_event, make_payment, make_registration


class RecalculationTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.event = make_event()

    def _drifted_registration(self, email="drift@example.com"):
        # Stored aggregate says nothing paid, the ledger holds a completed deposit
        registration = make_registration(self.event, email=email, total="1000.00")
        make_payment(
            registration,
            "500.00",
            status=EventPaymentTracker.STATUS_COMPLETED,
            stripe_payment_intent_id=f"pi_{email}",
        )
        make_payment(registration, "200.00", status=EventPaymentTracker.STATUS_CANCELLED)
        return registration

    def test_recalculate_fixes_drift_without_side_effects(self):
        registration = self._drifted_registration()

        result = recalculate_registration(registration.pk)

        self.assertTrue(result["changed"])
        self.assertEqual(result["old_values"]["total_paid"], "0.00")
        self.assertEqual(result["new_values"]["total_paid"], "500.00")
        self.assertEqual(result["payments_processed"], 1)
        registration.refresh_from_db()
        self.assertEqual(registration.total_paid, Decimal("500.00"))
        self.assertEqual(registration.remaining_balance, Decimal("500.00"))
        self.assertEqual(registration.payment_status, EventRegistration.STATUS_PARTIAL)
        self.assertEqual(mail.outbox, [])

    def test_recalculate_is_stable(self):
        registration = self._drifted_registration()
        recalculate_registration(registration.pk)

        self.assertFalse(recalculate_registration(registration.pk)["changed"])

    def test_recalculate_unknown_registration(self):
        with self.assertRaises(RegistrationNotFound):
            recalculate_registration("00000000-0000-0000-0000-000000000000")
        with self.assertRaises(RegistrationNotFound):
            recalculate_registration("not-a-uuid")

    def test_recalculate_all_partial_registrations(self):
        self._drifted_registration("one@example.com")
        self._drifted_registration("two@example.com")
        make_registration(self.event, email="clean@example.com", total="1000.00")
        make_registration(
            self.event,
            email="full@example.com",
            total="1000.00",
            payment_mode=EventRegistration.MODE_FULL,
        )

        summary = recalculate_partial_registrations()

        self.assertEqual(summary["total"], 3)
        self.assertEqual(summary["updated"], 2)
        self.assertEqual(summary["errors"], 0)
        self.assertEqual(len(summary["results"]), 2)

    def test_inspect_reports_consistency(self):
        registration = self._drifted_registration()

        report = inspect_registration(registration.pk)
        self.assertFalse(report["consistent"])
        self.assertEqual(report["expected_values"]["total_paid"], "500.00")
        self.assertEqual(len(report["payments"]), 2)

        recalculate_registration(registration.pk)
        self.assertTrue(inspect_registration(registration.pk)["consistent"])

    def test_delete_registration_removes_its_ledger(self):
        registration = self._drifted_registration()

        result = delete_registration(registration.pk)

        self.assertEqual(result["payments_deleted"], 2)
        self.assertFalse(EventRegistration.objects.filter(pk=registration.pk).exists())
        self.assertFalse(EventPaymentTracker.objects.exists())

    def test_clear_event_only_touches_that_event(self):
        self._drifted_registration("one@example.com")
        self._drifted_registration("two@example.com")
        other_event = make_event(title="Options Masterclass")
        kept = make_registration(other_event, email="one@example.com")
        make_payment(kept, "500.00")

        result = clear_event(self.event.pk)

        self.assertEqual(result, {"registrations_deleted": 2, "payments_deleted": 4})
        self.assertEqual(list(EventRegistration.objects.all()), [kept])
        self.assertEqual(EventPaymentTracker.objects.count(), 1)

    def test_clear_unknown_event(self):
        with self.assertRaises(EventNotFound):
            clear_event(987654)


class RecalculateCommandTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        cls.event = make_event()
        cls.registration = make_registration(cls.event, total="1000.00")
        make_payment(
            cls.registration,
            "300.00",
            status=EventPaymentTracker.STATUS_COMPLETED,
            stripe_payment_intent_id="pi_cmd",
        )

    def test_dry_run_reports_without_fixing(self):
        out = StringIO()
        call_command("recalculate_registrations", "--dry-run", stdout=out)

        self.assertIn(self.registration.registration_number, out.getvalue())
        self.assertIn("1 registrations out of sync", out.getvalue())
        self.registration.refresh_from_db()
        self.assertEqual(self.registration.total_paid, Decimal("0.00"))

    def test_single_registration(self):
        out = StringIO()
        call_command(
            "recalculate_registrations", "--registration", str(self.registration.pk), stdout=out
        )

        self.assertIn("0.00 -> 300.00", out.getvalue())
        self.registration.refresh_from_db()
        self.assertEqual(self.registration.total_paid, Decimal("300.00"))

    def test_unknown_registration_is_a_command_error(self):
        with self.assertRaises(CommandError):
            call_command(
                "recalculate_registrations",
                "--registration",
                "00000000-0000-0000-0000-000000000000",
                stdout=StringIO(),
            )
