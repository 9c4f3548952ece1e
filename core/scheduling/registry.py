"""
Sweep Registry
==============

Named, independently schedulable sweeps.

A sweep is a function that takes a `SweepContext` and returns a dict of
counters. Apps register their sweeps at import time:

    from core.scheduling.registry import HOURLY, register

    @register("abandoned-checkouts", cadence=HOURLY, cron={"minute": 15})
    def abandoned_checkouts(ctx):
        ...
        return {"registrations_deleted": 3}

`registry.run(name)` executes one sweep and always returns the result
envelope `{"job": name, "result": {"success": ..., "error": ...}}`. A
failing sweep is logged and reported, never raised, so one broken job
cannot stop the scheduler or the remaining jobs of a cadence.

Author: Trading Academy Development Team
Version: 1.0.0
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from django.conf import settings
from django.utils import timezone

from core.stripe_integration.gateway import PaymentGateway, get_gateway

logger = logging.getLogger(__name__)

HOURLY = "hourly"
DAILY = "daily"

# Default CronTrigger fields per cadence
CADENCE_TRIGGERS = {
    HOURLY: {"minute": 0},
    DAILY: {"hour": 2, "minute": 0},
}


class UnknownSweep(KeyError):
    pass


class SweepContext:
    """
    Everything a sweep may read from its environment.

    `now`, the gateway and the region are injected so a sweep never
    reaches for the wall clock or a process-wide client on its own. The
    gateway is built lazily, sweeps that never call out don't pay for it.
    """

    def __init__(
        self,
        *,
        now: Optional[datetime] = None,
        gateway: Optional[PaymentGateway] = None,
        region: Optional[str] = None,
        batch_size: Optional[int] = None,
    ):
        self.now = now or timezone.now()
        self.region = region or settings.RECONCILIATION_REGION
        self.batch_size = batch_size or settings.GATEWAY_SYNC_BATCH_SIZE
        self._gateway = gateway

    @property
    def gateway(self) -> PaymentGateway:
        if self._gateway is None:
            self._gateway = get_gateway()
        return self._gateway

    def __repr__(self):
        return f"<SweepContext now={self.now.isoformat()} region={self.region}>"


@dataclass(frozen=True)
class Sweep:
    name: str
    func: Callable[[SweepContext], Optional[dict]]
    cadence: str
    cron: Dict[str, object] = field(default_factory=dict)
    description: str = ""


class SweepRegistry:
    def __init__(self):
        self._sweeps: Dict[str, Sweep] = {}

    def register(
        self,
        name: str,
        *,
        cadence: str,
        cron: Optional[Dict[str, object]] = None,
        description: Optional[str] = None,
    ):
        if cadence not in CADENCE_TRIGGERS:
            raise ValueError(f"Unknown cadence {cadence!r} for sweep {name!r}.")

        def decorator(func):
            trigger = dict(CADENCE_TRIGGERS[cadence])
            trigger.update(cron or {})
            doc = (func.__doc__ or "").strip().splitlines()
            self._sweeps[name] = Sweep(
                name=name,
                func=func,
                cadence=cadence,
                cron=trigger,
                description=description or (doc[0] if doc else ""),
            )
            return func

        return decorator

    def get(self, name: str) -> Sweep:
        try:
            return self._sweeps[name]
        except KeyError:
            raise UnknownSweep(name) from None

    def all(self) -> List[Sweep]:
        return sorted(self._sweeps.values(), key=lambda sweep: sweep.name)

    def for_cadence(self, cadence: str) -> List[Sweep]:
        return [sweep for sweep in self.all() if sweep.cadence == cadence]

    def run(self, name: str, context: Optional[SweepContext] = None) -> dict:
        """
        Run one sweep and wrap its outcome in the job envelope.

        Raises:
            UnknownSweep: if no sweep is registered under `name`.
        """
        sweep = self.get(name)
        context = context or SweepContext()
        started = time.monotonic()
        logger.info("Sweep %s started (%r)", name, context)

        try:
            outcome = sweep.func(context) or {}
        except Exception as exc:
            logger.exception("Sweep %s failed: %s", name, exc)
            return {"job": name, "result": {"success": False, "error": str(exc)}}

        elapsed = time.monotonic() - started
        logger.info("Sweep %s finished in %.2fs: %s", name, elapsed, outcome)
        return {"job": name, "result": {"success": True, "error": None, **outcome}}


registry = SweepRegistry()
register = registry.register
