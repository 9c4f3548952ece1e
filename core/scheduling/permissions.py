import hmac

from django.conf import settings
from rest_framework.permissions import BasePermission


class HasCronApiKey(BasePermission):
    """Allows access only when X-Cron-Api-Key matches settings.CRON_API_KEY."""

    message = "Invalid or missing cron API key."

    def has_permission(self, request, view):
        expected = getattr(settings, "CRON_API_KEY", "")
        provided = request.headers.get("X-Cron-Api-Key", "")
        if not expected or not provided:
            return False
        return hmac.compare_digest(provided.encode(), expected.encode())
