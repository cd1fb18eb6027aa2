from django.urls import path

from marketplace import views

app_name = "marketplace"

urlpatterns = [
    path("orders/", views.create_order, name="create-order"),
    path("payments/webhook/", views.stripe_webhook, name="stripe-webhook"),
    path("files/download/", views.download_file, name="download-file"),
    path("integrity-check/", views.integrity_check, name="integrity-check"),
    path("health/", views.health, name="health"),
]
