# seedbay/settings_test.py
"""
Test settings: deterministic secrets, in-memory cache/mail, no HTTPS redirect.
"""

import os

os.environ.setdefault("DJANGO_SECRET_KEY", "seedbay-test-secret-key-not-for-production")
os.environ.setdefault("DEBUG", "False")

from seedbay.settings import *  # noqa: E402,F401,F403

SECURE_SSL_REDIRECT = False
SESSION_COOKIE_SECURE = False
CSRF_COOKIE_SECURE = False

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "seedbay-tests",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]
EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
}

STRIPE_SECRET_KEY = "sk_test_seedbay"
STRIPE_WEBHOOK_SECRET = "whsec_seedbay_test"
CRON_SECRET = "cron-test-secret"
SUPABASE_URL = "https://storage.seedbay.test"
SUPABASE_SERVICE_ROLE_KEY = "service-role-test"
SEEDBAY_STORAGE_BUCKET = "project-files"
SEEDBAY_ALERT_EMAILS = ["ops@seedbay.test"]
SEEDBAY_ALERT_WEBHOOK_URL = ""

LOGGING["handlers"]["console"]["level"] = "ERROR"  # noqa: F405
