"""
Run Sweep Management Command

Runs registered sweeps once, by name or by cadence. Intended for system
crontabs and for operators who want to trigger a reconciliation by hand.

Examples:
    python manage.py run_sweep --list
    python manage.py run_sweep abandoned-checkouts
    python manage.py run_sweep --cadence hourly
    python manage.py run_sweep --all

Author: Trading Academy Development Team
Version: 1.0.0
"""

import logging

from django.core.management.base import BaseCommand, CommandError

from core.scheduling.registry import (
    CADENCE_TRIGGERS,
    SweepContext,
    UnknownSweep,
    registry,
)

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Runs one or more registered reconciliation sweeps once."

    def add_arguments(self, parser):
        parser.add_argument("names", nargs="*", help="Sweep names to run.")
        parser.add_argument(
            "--cadence",
            choices=sorted(CADENCE_TRIGGERS),
            help="Run every sweep registered with this cadence.",
        )
        parser.add_argument("--all", action="store_true", help="Run every sweep.")
        parser.add_argument(
            "--list", action="store_true", help="List registered sweeps and exit."
        )
        parser.add_argument("--region", help="Override RECONCILIATION_REGION.")

    def handle(self, *args, **options):
        if options["list"]:
            for sweep in registry.all():
                self.stdout.write(
                    f"{sweep.name:<28} {sweep.cadence:<7} {sweep.description}"
                )
            return

        names = self._resolve_names(options)
        context = SweepContext(region=options.get("region"))

        failures = 0
        for name in names:
            envelope = registry.run(name, context)
            result = envelope["result"]
            if result["success"]:
                self.stdout.write(self.style.SUCCESS(f"{name}: {result}"))
            else:
                failures += 1
                self.stderr.write(self.style.ERROR(f"{name}: {result['error']}"))

        if failures:
            raise CommandError(f"{failures} of {len(names)} sweep(s) failed.")

    def _resolve_names(self, options):
        if options["all"]:
            return [sweep.name for sweep in registry.all()]
        if options["cadence"]:
            return [sweep.name for sweep in registry.for_cadence(options["cadence"])]
        if not options["names"]:
            raise CommandError("Give sweep names, --cadence or --all (see --list).")
        for name in options["names"]:
            try:
                registry.get(name)
            except UnknownSweep:
                raise CommandError(f"Unknown sweep '{name}'.")
        return options["names"]
