from django.urls import path

from .views import CronJobTriggerView, CronStatusView

app_name = "scheduling"

urlpatterns = [
    path("status/", CronStatusView.as_view(), name="cron-status"),
    path("jobs/<slug:name>/", CronJobTriggerView.as_view(), name="cron-job"),
]
