"""
Subscription views.

`GET /api/subscriptions/me/` returns the authenticated user's billing
account with its subscriptions, module permissions and the latest
history entries.
"""

from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import BillingAccount, SubscriptionHistory
from .serializers import (
    BillingAccountSerializer,
    ModulePermissionSerializer,
    SubscriptionHistorySerializer,
)

HISTORY_LIMIT = 50


class MySubscriptionsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        account = (
            BillingAccount.objects.filter(user=request.user)
            .prefetch_related("subscriptions")
            .first()
        )
        history = SubscriptionHistory.objects.filter(user=request.user)[:HISTORY_LIMIT]
        return Response(
            {
                "account": BillingAccountSerializer(account).data if account else None,
                "module_permissions": ModulePermissionSerializer(
                    request.user.module_permissions.all(), many=True
                ).data,
                "history": SubscriptionHistorySerializer(history, many=True).data,
            }
        )
