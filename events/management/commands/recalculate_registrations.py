from django.core.management.base import BaseCommand, CommandError

from events.exceptions import RegistrationNotFound
from events.models import EventRegistration
from events.services.recalculation import (
    inspect_registration,
    recalculate_partial_registrations,
    recalculate_registration,
)


class Command(BaseCommand):
    help = "Recomputes registration balances from their completed payments."

    def add_arguments(self, parser):
        parser.add_argument(
            "--registration",
            help="Only this registration (UUID).",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report registrations that drifted without fixing them.",
        )

    def handle(self, *args, **options):
        registration_id = options["registration"]
        try:
            if options["dry_run"]:
                self._report(registration_id)
            elif registration_id:
                result = recalculate_registration(registration_id)
                self._print_change(result["registration_number"], result)
            else:
                summary = recalculate_partial_registrations()
                for result in summary["results"]:
                    self._print_change(result["registration_number"], result)
                self.stdout.write(
                    self.style.SUCCESS(
                        f"{summary['total']} checked, {summary['updated']} corrected, "
                        f"{summary['errors']} errors."
                    )
                )
        except RegistrationNotFound as exc:
            raise CommandError(exc.detail)

    def _report(self, registration_id):
        if registration_id:
            ids = [registration_id]
        else:
            ids = EventRegistration.objects.filter(
                payment_mode=EventRegistration.MODE_PARTIAL
            ).values_list("pk", flat=True)

        drifted = 0
        for pk in ids:
            report = inspect_registration(pk)
            if report["consistent"]:
                continue
            drifted += 1
            self.stdout.write(
                f"  {report['registration'].registration_number}: "
                f"stored {report['stored_values']} expected {report['expected_values']}"
            )
        self.stdout.write(self.style.SUCCESS(f"{drifted} registrations out of sync."))

    def _print_change(self, number, result):
        if result["changed"]:
            self.stdout.write(
                f"  {number}: {result['old_values']['total_paid']} -> "
                f"{result['new_values']['total_paid']}"
            )
