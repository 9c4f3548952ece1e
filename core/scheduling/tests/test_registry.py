from datetime import timedelta
from io import StringIO

from django.core.management import CommandError, call_command
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from core.scheduling.registry import (
    DAILY,
    HOURLY,
    SweepContext,
    SweepRegistry,
    UnknownSweep,
    registry,
)
from core.stripe_integration.testing import FakeGateway
from subscriptions.models import ModulePermission
from subscriptions.tests.helpers import make_account


class SweepRegistryTests(SimpleTestCase):
    def setUp(self):
        self.registry = SweepRegistry()

    def test_successful_sweep_envelope(self):
        @self.registry.register("counting", cadence=HOURLY, cron={"minute": 10})
        def counting(ctx):
            """Counts things."""
            return {"counted": 3, "region": ctx.region}

        now = timezone.now()
        envelope = self.registry.run("counting", SweepContext(now=now, region="eu"))

        self.assertEqual(
            envelope,
            {"job": "counting", "result": {"success": True, "error": None, "counted": 3, "region": "eu"}},
        )
        sweep = self.registry.get("counting")
        self.assertEqual(sweep.cron, {"minute": 10})
        self.assertEqual(sweep.description, "Counts things.")

    def test_failing_sweep_is_reported_not_raised(self):
        @self.registry.register("broken", cadence=DAILY)
        def broken(ctx):
            raise RuntimeError("database is gone")

        envelope = self.registry.run("broken", SweepContext())

        self.assertEqual(
            envelope, {"job": "broken", "result": {"success": False, "error": "database is gone"}}
        )
        self.assertEqual(self.registry.get("broken").cron, {"hour": 2, "minute": 0})

    def test_unknown_sweep(self):
        with self.assertRaises(UnknownSweep):
            self.registry.run("missing")

    def test_unknown_cadence(self):
        with self.assertRaises(ValueError):
            self.registry.register("weekly-thing", cadence="weekly")

    def test_cadence_filter(self):
        self.registry.register("a", cadence=HOURLY)(lambda ctx: None)
        self.registry.register("b", cadence=DAILY)(lambda ctx: None)

        self.assertEqual([s.name for s in self.registry.for_cadence(HOURLY)], ["a"])

    def test_gateway_is_built_lazily(self):
        gateway = FakeGateway()
        self.assertIs(SweepContext(gateway=gateway).gateway, gateway)

        with override_settings(PAYMENT_GATEWAY_CLASS="core.stripe_integration.testing.FakeGateway"):
            self.assertIsInstance(SweepContext().gateway, FakeGateway)

    def test_application_sweeps_are_registered(self):
        names = {sweep.name for sweep in registry.all()}
        self.assertLessEqual(
            {
                "abandoned-checkouts",
                "subscription-sync-daily",
                "subscription-sync-hourly",
                "expired-subscriptions",
                "expired-permissions",
            },
            names,
        )


class CronEndpointTests(TestCase):
    def setUp(self):
        self.client = APIClient()

    @override_settings(CRON_API_KEY="")
    def test_disabled_without_configured_key(self):
        response = self.client.get(reverse("scheduling:cron-status"), HTTP_X_CRON_API_KEY="")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    @override_settings(CRON_API_KEY="cron-secret")
    def test_wrong_key_is_rejected(self):
        response = self.client.post(
            reverse("scheduling:cron-job", args=["expired-permissions"]),
            HTTP_X_CRON_API_KEY="guess",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    @override_settings(CRON_API_KEY="cron-secret")
    def test_status_lists_sweeps(self):
        response = self.client.get(
            reverse("scheduling:cron-status"), HTTP_X_CRON_API_KEY="cron-secret"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        names = [job["name"] for job in response.json()["jobs"]]
        self.assertIn("abandoned-checkouts", names)

    @override_settings(CRON_API_KEY="cron-secret")
    def test_trigger_runs_the_sweep(self):
        account = make_account()
        ModulePermission.objects.create(
            user=account.user,
            module_type="forex",
            expires_at=timezone.now() - timedelta(hours=1),
        )

        response = self.client.post(
            reverse("scheduling:cron-job", args=["expired-permissions"]),
            HTTP_X_CRON_API_KEY="cron-secret",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            response.json(),
            {"job": "expired-permissions", "result": {"success": True, "error": None, "deactivated": 1}},
        )

    @override_settings(CRON_API_KEY="cron-secret")
    def test_unknown_job(self):
        response = self.client.post(
            reverse("scheduling:cron-job", args=["nope"]), HTTP_X_CRON_API_KEY="cron-secret"
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class RunSweepCommandTests(TestCase):
    def test_list(self):
        out = StringIO()
        call_command("run_sweep", "--list", stdout=out)
        self.assertIn("expired-subscriptions", out.getvalue())

    def test_run_by_name(self):
        out = StringIO()
        call_command("run_sweep", "abandoned-checkouts", stdout=out)
        self.assertIn("abandoned-checkouts:", out.getvalue())
        self.assertIn("'registrations_deleted': 0", out.getvalue())

    def test_unknown_name(self):
        with self.assertRaises(CommandError):
            call_command("run_sweep", "nope", stdout=StringIO())

    def test_nothing_to_run(self):
        with self.assertRaises(CommandError):
            call_command("run_sweep", stdout=StringIO())
