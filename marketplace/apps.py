# marketplace/apps.py
from django.apps import AppConfig


class MarketplaceConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "marketplace"
    verbose_name = "SeedBay Marketplace"

    def ready(self):
        # Registers the orders-table schema check (marketplace.E001).
        from marketplace.services import schema_probe  # noqa: F401
