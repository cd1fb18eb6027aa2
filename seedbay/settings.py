# seedbay/settings.py
"""
SeedBay Django settings

CHANGE LOG
----------
2026-03-02 • Integrity check + alerting config
- CRON_SECRET / CRON_LOOKBACK_DAYS / SEEDBAY_STALE_EVENT_MINUTES for /integrity-check/.
- SEEDBAY_ALERT_EMAILS + SEEDBAY_ALERT_WEBHOOK_URL for drift alerts.

2026-02-18 • Downloads
- Supabase Storage signing (SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY, SEEDBAY_STORAGE_BUCKET).
- SEEDBAY_DOWNLOAD_URL_TTL keeps signed URLs short-lived (default 5 minutes).

2026-02-10 • Stripe PaymentIntents + webhook
- STRIPE_SECRET_KEY / STRIPE_WEBHOOK_SECRET / STRIPE_WEBHOOK_TOLERANCE.
- Order creation rate limit (SEEDBAY_ORDER_RATE_LIMIT per SEEDBAY_ORDER_RATE_WINDOW seconds).
"""

from pathlib import Path
import os

from dotenv import load_dotenv

# ========= Base / Env =========
BASE_DIR = Path(__file__).resolve().parent.parent

ENV_CANDIDATES = [
    BASE_DIR / '.env',          # Local: project root
    BASE_DIR.parent / '.env',   # Local: repo root (if checked out nested)
]
for _env in ENV_CANDIDATES:
    if _env.exists():
        load_dotenv(_env)
        print(f"[settings] Loaded env from: {_env}")
        break
else:
    load_dotenv()  # fallback (no-op if missing)


def _env_list(name: str, default: str = "") -> list:
    raw = os.getenv(name, default) or ""
    return [item.strip() for item in raw.split(",") if item.strip()]


# ========= Secret Key =========
DJANGO_SECRET_KEY = os.getenv('DJANGO_SECRET_KEY')
if not DJANGO_SECRET_KEY:
    raise ValueError("DJANGO_SECRET_KEY must be set in .env file")
SECRET_KEY = DJANGO_SECRET_KEY

DEBUG = os.getenv("DEBUG", "False") == "True"

# ========= Hosts / CSRF / Security =========
ALLOWED_HOSTS = [
    "127.0.0.1",
    "localhost",
    "testserver",
    "seedbay.io",
    "api.seedbay.io",
] + _env_list("ADDITIONAL_HOSTS")

SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
SESSION_COOKIE_SECURE = not DEBUG
CSRF_COOKIE_SECURE = not DEBUG

# ========= Installed apps =========
INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "corsheaders",
    "rest_framework",
    "marketplace",
]

# ========= Middleware =========
MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

# ========= URL / Templates / WSGI =========
ROOT_URLCONF = "seedbay.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "seedbay.wsgi.application"

# ========= Database =========
# Order/grant correctness lives in DB constraints (partial unique index on in-flight
# orders, unique grants, unique webhook event ids). Any backend used here must
# support partial unique indexes (SQLite, PostgreSQL).
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.getenv("SEEDBAY_DB_PATH") or (BASE_DIR / "db.sqlite3"),
        "OPTIONS": {"timeout": 30},
    }
}

# ========= Cache (rate limiter backend) =========
# LocMemCache is per-process. Multi-process deployments point this at a shared cache.
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "seedbay-default",
    }
}

# ========= Password validation =========
AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator", "OPTIONS": {"min_length": 12}},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

# ========= I18N =========
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# ========= Security headers =========
SECURE_CONTENT_TYPE_NOSNIFF = True
X_FRAME_OPTIONS = "DENY"
SECURE_REFERRER_POLICY = "strict-origin-when-cross-origin"

if not DEBUG:
    SECURE_SSL_REDIRECT = True
    SECURE_HSTS_SECONDS = 31536000
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True
    SECURE_HSTS_PRELOAD = True

# ========= Static =========
STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage"},
}

# ========= Defaults =========
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ========= CORS / CSRF =========
CORS_ALLOWED_ORIGINS = [
    "https://seedbay.io",
    "https://www.seedbay.io",
    "http://localhost:3000",
] + _env_list("ADDITIONAL_CORS_ORIGINS")
CORS_ALLOW_CREDENTIALS = True
CSRF_TRUSTED_ORIGINS = list(CORS_ALLOWED_ORIGINS)

# ========= Session config =========
SESSION_COOKIE_AGE = 60 * 60 * 24 * 7
SESSION_COOKIE_HTTPONLY = True
SESSION_COOKIE_SAMESITE = "Lax"

# ========= Email (alerts) =========
EMAIL_BACKEND = os.getenv("DJANGO_EMAIL_BACKEND", "django.core.mail.backends.smtp.EmailBackend")
EMAIL_HOST = os.getenv("EMAIL_HOST", "localhost")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
EMAIL_USE_TLS = os.getenv("EMAIL_USE_TLS", "true").lower() == "true"
EMAIL_TIMEOUT = int(os.getenv("EMAIL_TIMEOUT", "10"))
EMAIL_HOST_USER = os.getenv("EMAIL_HOST_USER", "")
EMAIL_HOST_PASSWORD = os.getenv("EMAIL_HOST_PASSWORD", "")
DEFAULT_FROM_EMAIL = os.getenv("DEFAULT_FROM_EMAIL", "SeedBay <no-reply@seedbay.io>")

# ========= Logging =========
LOG_DIR = Path(os.getenv("SEEDBAY_LOG_DIR") or (BASE_DIR / 'logs'))
LOG_DIR.mkdir(exist_ok=True)

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {name} {process:d} {thread:d} {message}',
            'style': '{',
        },
        'simple': {
            'format': '{levelname} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'file': {
            'level': 'INFO',
            'class': 'logging.handlers.RotatingFileHandler',
            'filename': LOG_DIR / 'seedbay.log',
            'maxBytes': 1024*1024*15,
            'backupCount': 10,
            'formatter': 'verbose',
            'encoding': 'utf-8',
        },
        'console': {
            'level': 'INFO',
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'loggers': {
        'marketplace': {
            'handlers': ['file', 'console'],
            'level': 'INFO',
            'propagate': False,
        },
        'django': {
            'handlers': ['file'],
            'level': 'ERROR',
            'propagate': True,
        },
    },
}

# ========= Stripe =========
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_PUBLISHABLE_KEY = os.getenv("STRIPE_PUBLISHABLE_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")
STRIPE_WEBHOOK_TOLERANCE = int(os.getenv("STRIPE_WEBHOOK_TOLERANCE", "300"))
SEEDBAY_PAYMENT_DESCRIPTION_PREFIX = os.getenv("SEEDBAY_PAYMENT_DESCRIPTION_PREFIX", "SeedBay")

# ========= Order rate limit =========
SEEDBAY_ORDER_RATE_LIMIT = int(os.getenv("SEEDBAY_ORDER_RATE_LIMIT", "10"))
SEEDBAY_ORDER_RATE_WINDOW = int(os.getenv("SEEDBAY_ORDER_RATE_WINDOW", "60"))

# ========= Storage / downloads =========
SUPABASE_URL = os.getenv("SUPABASE_URL", "").rstrip("/")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
SEEDBAY_STORAGE_BUCKET = os.getenv("SEEDBAY_STORAGE_BUCKET", "project-files")
SEEDBAY_DOWNLOAD_URL_TTL = int(os.getenv("SEEDBAY_DOWNLOAD_URL_TTL", "300"))
SEEDBAY_BLOB_STORE = os.getenv("SEEDBAY_BLOB_STORE", "marketplace.services.storage.SupabaseBlobStore")

# ========= Integrity check =========
CRON_SECRET = os.getenv("CRON_SECRET", "")
CRON_LOOKBACK_DAYS = int(os.getenv("CRON_LOOKBACK_DAYS", "7"))
SEEDBAY_STALE_EVENT_MINUTES = int(os.getenv("SEEDBAY_STALE_EVENT_MINUTES", "15"))
SEEDBAY_ALERT_EMAILS = _env_list("SEEDBAY_ALERT_EMAILS")
SEEDBAY_ALERT_WEBHOOK_URL = os.getenv("SEEDBAY_ALERT_WEBHOOK_URL", "")
