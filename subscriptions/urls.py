from django.urls import path

from .views import MySubscriptionsView

app_name = "subscriptions"

urlpatterns = [
    path("me/", MySubscriptionsView.as_view(), name="me"),
]
