from django.urls import path

from .views import (
    EventPartialPaymentsView,
    EventPaymentSettingsView,
    InitiateRegistrationView,
    MakePaymentView,
    PaymentHistoryView,
    PaymentSuccessWebhookView,
    RegistrationBalanceView,
    RegistrationSearchView,
    TogglePaymentModeView,
)

app_name = "events"

urlpatterns = [
    path("initiate-partial/", InitiateRegistrationView.as_view(), name="initiate-partial"),
    path(
        "make-payment/<uuid:registration_id>/",
        MakePaymentView.as_view(),
        name="make-payment",
    ),
    path(
        "check-balance/<uuid:registration_id>/",
        RegistrationBalanceView.as_view(),
        name="check-balance",
    ),
    path(
        "payment-history/<uuid:registration_id>/",
        PaymentHistoryView.as_view(),
        name="payment-history",
    ),
    path("search/", RegistrationSearchView.as_view(), name="search"),
    path(
        "webhook/payment-success/",
        PaymentSuccessWebhookView.as_view(),
        name="payment-success-webhook",
    ),
    # Admin
    path(
        "partial-payments/<int:event_id>/",
        EventPartialPaymentsView.as_view(),
        name="event-partial-payments",
    ),
    path(
        "events/<int:event_id>/payment-settings/",
        EventPaymentSettingsView.as_view(),
        name="event-payment-settings",
    ),
    path(
        "events/<int:event_id>/toggle-payment-mode/",
        TogglePaymentModeView.as_view(),
        name="event-toggle-payment-mode",
    ),
]
