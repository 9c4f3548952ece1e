"""
URL configuration of the academy payments backend.

- /admin/                          Django admin (jazzmin)
- /api/payments/stripe/            dj-stripe webhook endpoint
- /api/event-registrations/        registrations, payments, balance, webhook fallback
- /api/admin/fix-payments/         operator repair tools
- /api/subscriptions/              the current user's subscriptions
- /api/internal/cron/              API-key gated sweep triggers
"""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/payments/stripe/", include("djstripe.urls", namespace="djstripe")),
    path("api/event-registrations/", include("events.urls")),
    path("api/admin/fix-payments/", include("events.admin_urls")),
    path("api/subscriptions/", include("subscriptions.urls")),
    path("api/internal/cron/", include("core.scheduling.urls")),
]
