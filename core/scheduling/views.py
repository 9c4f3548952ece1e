"""
Internal Cron Views (core.scheduling)
=====================================

HTTP trigger surface for external schedulers (Render cron, GitHub Actions,
a system crontab with curl, ...). Every request must carry the shared
secret in the `X-Cron-Api-Key` header.

Endpoints
---------

1. CronJobTriggerView
   - URL: /api/internal/cron/jobs/<name>/
   - Method: POST
   - Purpose: Runs one registered sweep synchronously and returns
     `{"job": name, "result": {...}}`.

2. CronStatusView
   - URL: /api/internal/cron/status/
   - Method: GET
   - Purpose: Lists the registered sweeps with their cadence and the
     region the sweeps are scoped to.

Author: Trading Academy Development Team
Version: 1.0.0
"""

import logging

from django.conf import settings
from django.utils import timezone
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from .permissions import HasCronApiKey
from .registry import UnknownSweep, registry

logger = logging.getLogger(__name__)


class CronJobTriggerView(APIView):
    authentication_classes = []
    permission_classes = [HasCronApiKey]

    def post(self, request, name):
        logger.info("Cron trigger received for job %s", name)
        try:
            envelope = registry.run(name)
        except UnknownSweep:
            return Response(
                {"detail": f"Unknown job '{name}'."}, status=status.HTTP_404_NOT_FOUND
            )
        return Response(envelope, status=status.HTTP_200_OK)


class CronStatusView(APIView):
    authentication_classes = []
    permission_classes = [HasCronApiKey]

    def get(self, request):
        jobs = [
            {
                "name": sweep.name,
                "cadence": sweep.cadence,
                "trigger": sweep.cron,
                "description": sweep.description,
            }
            for sweep in registry.all()
        ]
        return Response(
            {
                "region": settings.RECONCILIATION_REGION,
                "timestamp": timezone.now().isoformat(),
                "jobs": jobs,
            }
        )
