"""
Scheduling Package
==================

Explicit schedule registry for the platform's periodic sweeps.

Every sweep is a plain function `(SweepContext) -> dict` registered under a
stable name with a cadence. The same registry feeds three entry points:

- `POST /api/internal/cron/jobs/<name>/` for external schedulers (API-key gated)
- `python manage.py run_sweep <name>` for one-off runs and system cron
- `python manage.py run_scheduler` for the in-process APScheduler timer

Sweeps receive "now", the gateway client and the region through the
context, so tests run them deterministically.
"""
