import hmac

from django.conf import settings
from rest_framework.permissions import BasePermission


class HasWebhookApiKey(BasePermission):
    """
    Guards the fallback payment-success webhook.

    The caller must send PAYMENT_WEBHOOK_API_KEY in the X-Webhook-Api-Key
    header. Without a configured key the endpoint is closed.
    """

    message = "Invalid or missing webhook API key."

    def has_permission(self, request, view):
        expected = getattr(settings, "PAYMENT_WEBHOOK_API_KEY", "")
        provided = request.headers.get("X-Webhook-Api-Key", "")
        if not expected or not provided:
            return False
        return hmac.compare_digest(provided.encode(), expected.encode())
