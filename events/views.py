"""
Event Registration & Partial Payment Views
==========================================

REST endpoints around event registrations paid by deposit + installments.

Public endpoints (/api/event-registrations/)
--------------------------------------------
1. InitiateRegistrationView    POST initiate-partial/
   Body: {"event_id", "email", "first_name", "last_name", "amount",
          "payment_mode"?, "phone"?, "affiliate_code"?}
   Creates the registration + deposit and returns the Stripe checkout URL.

2. MakePaymentView             POST make-payment/<registration_id>/
   Body: {"amount", "description"?, "metadata"?}

3. RegistrationBalanceView     GET  check-balance/<registration_id>/
4. PaymentHistoryView          GET  payment-history/<registration_id>/
5. RegistrationSearchView      POST search/
6. PaymentSuccessWebhookView   POST webhook/payment-success/
   Body: {"paymentId", "stripePaymentIntentId", "receiptUrl"?}
   Fallback to the dj-stripe webhook, idempotent per paymentId.

Admin endpoints (staff only)
----------------------------
7.  EventPartialPaymentsView   GET  partial-payments/<event_id>/
8.  EventPaymentSettingsView   PUT  events/<event_id>/payment-settings/
9.  TogglePaymentModeView      POST events/<event_id>/toggle-payment-mode/
10. Fix tools under /api/admin/fix-payments/ (see admin_urls.py)

Errors
------
Domain errors answer {"detail": ...} with 400 (validation), 404 (unknown
event/registration), 409 (conflict) or 502 (Stripe failure).

Author: Trading Academy Development Team
Version: 1.0.0
"""

import logging

from rest_framework import status
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView

from core.stripe_integration.exceptions import GatewayError

from .exceptions import EventNotFound, PaymentError
from .models import Event
from .permissions import HasWebhookApiKey
from .serializers import (
    EventPaymentSettingsSerializer,
    EventPaymentTrackerSerializer,
    EventRegistrationSerializer,
    InitiateRegistrationSerializer,
    MakePaymentSerializer,
    PaymentSuccessSerializer,
    SearchRegistrationSerializer,
)
from .services import checkout, recalculation, reporting, webhook

logger = logging.getLogger(__name__)


class LedgerAPIView(APIView):
    """APIView that answers domain and gateway errors with {"detail": ...}."""

    def handle_exception(self, exc):
        if isinstance(exc, PaymentError):
            return Response({"detail": exc.detail}, status=exc.status_code)
        if isinstance(exc, GatewayError):
            logger.warning("Gateway error in %s: %s", type(self).__name__, exc)
            return Response(
                {
                    "detail": "Stripe checkout could not be created.",
                    "stripe_error": str(exc),
                },
                status=status.HTTP_502_BAD_GATEWAY,
            )
        return super().handle_exception(exc)


# ---------- public ----------


class InitiateRegistrationView(LedgerAPIView):
    permission_classes = [AllowAny]

    def post(self, request):
        serializer = InitiateRegistrationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = checkout.initiate_registration(
            event_id=data["event_id"],
            email=data["email"],
            first_name=data["first_name"],
            last_name=data["last_name"],
            phone=data.get("phone", ""),
            amount=data["amount"],
            payment_mode=data["payment_mode"],
            affiliate_code=data.get("affiliate_code") or None,
            user=request.user,
        )
        registration = result.registration
        return Response(
            {
                "registration": EventRegistrationSerializer(registration).data,
                "payment": EventPaymentTrackerSerializer(result.payment).data,
                "checkout_url": result.checkout_url,
                "total_amount": registration.total_amount,
                "deposit_amount": result.payment.amount,
                "remaining_balance": registration.remaining_balance,
            },
            status=status.HTTP_201_CREATED,
        )


class MakePaymentView(LedgerAPIView):
    permission_classes = [AllowAny]

    def post(self, request, registration_id):
        serializer = MakePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = checkout.make_payment(
            registration_id,
            data["amount"],
            description=data.get("description", ""),
            metadata=data.get("metadata"),
        )
        payment = result.payment
        return Response(
            {
                "payment": EventPaymentTrackerSerializer(payment).data,
                "checkout_url": result.checkout_url,
                "previous_balance": payment.previous_balance,
                "new_balance": payment.new_balance,
                "payment_amount": payment.amount,
            },
            status=status.HTTP_201_CREATED,
        )


class RegistrationBalanceView(LedgerAPIView):
    permission_classes = [AllowAny]

    def get(self, request, registration_id):
        return Response(reporting.registration_balance(registration_id))


class PaymentHistoryView(LedgerAPIView):
    permission_classes = [AllowAny]

    def get(self, request, registration_id):
        return Response(reporting.payment_history(registration_id))


class RegistrationSearchView(LedgerAPIView):
    permission_classes = [AllowAny]

    def post(self, request):
        serializer = SearchRegistrationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        registrations = reporting.search_registrations(**serializer.validated_data)
        return Response(
            {
                "count": registrations.count(),
                "registrations": EventRegistrationSerializer(registrations, many=True).data,
            }
        )


class PaymentSuccessWebhookView(LedgerAPIView):
    authentication_classes = []
    permission_classes = [HasWebhookApiKey]

    def post(self, request):
        serializer = PaymentSuccessSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = webhook.complete_payment(
            data["paymentId"],
            data["stripePaymentIntentId"],
            data.get("receiptUrl"),
        )
        body = {"success": True, "applied": result.applied}
        if result.registration is not None:
            result.registration.refresh_from_db()
            body["registration"] = EventRegistrationSerializer(result.registration).data
        return Response(body, status=status.HTTP_200_OK)


# ---------- admin ----------


class EventPartialPaymentsView(LedgerAPIView):
    permission_classes = [IsAdminUser]

    def get(self, request, event_id):
        summary = reporting.event_payment_summary(event_id)
        summary["registrations"] = EventRegistrationSerializer(
            summary["registrations"], many=True
        ).data
        return Response(summary)


def _get_event(event_id):
    try:
        return Event.objects.get(pk=event_id)
    except Event.DoesNotExist:
        raise EventNotFound("Event not found.")


class EventPaymentSettingsView(LedgerAPIView):
    permission_classes = [IsAdminUser]

    def get(self, request, event_id):
        return Response(EventPaymentSettingsSerializer(_get_event(event_id)).data)

    def put(self, request, event_id):
        event = _get_event(event_id)
        serializer = EventPaymentSettingsSerializer(event, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        logger.info("Payment settings of event %s updated by %s", event.pk, request.user)
        return Response(serializer.data)


class TogglePaymentModeView(LedgerAPIView):
    permission_classes = [IsAdminUser]

    def post(self, request, event_id):
        event = _get_event(event_id)
        event.payment_mode = (
            Event.PAYMENT_MODE_FULL_ONLY
            if event.allows_partial_payments
            else Event.PAYMENT_MODE_PARTIAL_ALLOWED
        )
        event.save(update_fields=["payment_mode", "updated_at"])
        return Response(
            {
                "detail": f"Payment mode changed to {event.payment_mode}",
                "payment_mode": event.payment_mode,
            }
        )


class RecalculateAllView(LedgerAPIView):
    permission_classes = [IsAdminUser]

    def post(self, request):
        return Response(recalculation.recalculate_partial_registrations())


class RecalculateRegistrationView(LedgerAPIView):
    permission_classes = [IsAdminUser]

    def post(self, request, registration_id):
        return Response(recalculation.recalculate_registration(registration_id))


class CheckRegistrationView(LedgerAPIView):
    permission_classes = [IsAdminUser]

    def get(self, request, registration_id):
        report = recalculation.inspect_registration(registration_id)
        report["registration"] = EventRegistrationSerializer(report["registration"]).data
        report["payments"] = EventPaymentTrackerSerializer(report["payments"], many=True).data
        return Response(report)


class DeleteRegistrationView(LedgerAPIView):
    permission_classes = [IsAdminUser]

    def delete(self, request, registration_id):
        result = recalculation.delete_registration(registration_id)
        logger.warning("Registration delete requested by %s", request.user)
        return Response(result)


class ClearEventView(LedgerAPIView):
    permission_classes = [IsAdminUser]

    def delete(self, request, event_id):
        result = recalculation.clear_event(event_id)
        logger.warning("Event %s clear requested by %s", event_id, request.user)
        return Response(result)
