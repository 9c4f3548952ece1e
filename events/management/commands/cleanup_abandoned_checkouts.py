from django.core.management.base import BaseCommand

from events.services.cleanup import abandoned_registrations, cleanup_abandoned_checkouts


class Command(BaseCommand):
    help = "Deletes registrations whose checkout expired before any payment was received."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Only list what would be deleted.",
        )

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        if dry_run:
            for registration in abandoned_registrations():
                self.stdout.write(
                    f"  {registration.registration_number} {registration.email} "
                    f"(expired {registration.checkout_session_expires_at:%Y-%m-%d %H:%M})"
                )

        stats = cleanup_abandoned_checkouts(dry_run=dry_run)
        prefix = "Would delete" if dry_run else "Deleted"
        self.stdout.write(
            self.style.SUCCESS(
                f"{prefix} {stats['registrations_deleted']} registrations "
                f"and {stats['payments_deleted']} pending payments."
            )
        )
        if stats["errors"]:
            self.stdout.write(self.style.WARNING(f"{stats['errors']} registrations failed."))
