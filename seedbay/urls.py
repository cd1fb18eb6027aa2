# seedbay/urls.py
"""
CHANGE LOG
----------
2026-03-02
- ADD: /integrity-check/ (cron) and /health/ through the marketplace include.

2026-02-10
- ADD: Marketplace endpoints mounted at the root: /orders/, /payments/webhook/, /files/download/.
"""

from django.urls import include, path

urlpatterns = [
    path("", include("marketplace.urls", namespace="marketplace")),
]
