from .downloads import download_file
from .health import health
from .integrity import integrity_check
from .orders import create_order
from .webhook import stripe_webhook

__all__ = [
    "create_order",
    "download_file",
    "health",
    "integrity_check",
    "stripe_webhook",
]
