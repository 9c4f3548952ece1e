from django.urls import path

from .views import (
    CheckRegistrationView,
    ClearEventView,
    DeleteRegistrationView,
    RecalculateAllView,
    RecalculateRegistrationView,
)

app_name = "fix_payments"

urlpatterns = [
    path("recalculate-all/", RecalculateAllView.as_view(), name="recalculate-all"),
    path(
        "recalculate/<uuid:registration_id>/",
        RecalculateRegistrationView.as_view(),
        name="recalculate",
    ),
    path("check/<uuid:registration_id>/", CheckRegistrationView.as_view(), name="check"),
    path(
        "registration/<uuid:registration_id>/",
        DeleteRegistrationView.as_view(),
        name="delete-registration",
    ),
    path("clear-event/<int:event_id>/", ClearEventView.as_view(), name="clear-event"),
]
