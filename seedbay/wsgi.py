"""
WSGI config for the SeedBay project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "seedbay.settings")

application = get_wsgi_application()
