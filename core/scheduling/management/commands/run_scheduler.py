"""
Run Scheduler Management Command

Starts a blocking APScheduler process that fires every registered sweep
on its cadence. Deploy it as a single dedicated worker process. When an
external scheduler calls the internal cron endpoints instead, don't run
this command at all.

Author: Trading Academy Development Team
Version: 1.0.0
"""

import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
from django.conf import settings
from django.core.management.base import BaseCommand
from django.db import close_old_connections

from core.scheduling.registry import registry

logger = logging.getLogger(__name__)


def run_registered_sweep(name):
    # Long-lived process: drop stale DB connections around every job
    close_old_connections()
    try:
        registry.run(name)
    finally:
        close_old_connections()


class Command(BaseCommand):
    help = "Runs the in-process scheduler for all registered sweeps."

    def handle(self, *args, **options):
        scheduler = BlockingScheduler(timezone=settings.SCHEDULER_TIMEZONE)

        for sweep in registry.all():
            scheduler.add_job(
                run_registered_sweep,
                trigger=CronTrigger(timezone=settings.SCHEDULER_TIMEZONE, **sweep.cron),
                args=[sweep.name],
                id=sweep.name,
                name=sweep.description or sweep.name,
                replace_existing=True,
                max_instances=1,  # a slow run never overlaps the next one
                coalesce=True,
            )
            self.stdout.write(f"Scheduled {sweep.name} ({sweep.cadence}, {sweep.cron})")

        self.stdout.write(self.style.SUCCESS("Scheduler started. Press Ctrl+C to exit."))
        try:
            scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Scheduler shutting down")
            scheduler.shutdown(wait=False)
