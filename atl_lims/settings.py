"""
Django settings for atl_lims project.
Material-testing laboratory backend: DRF, JWT, PostgreSQL in production,
SMTP mail and Celery background notices.
"""

from pathlib import Path
from decouple import config, Csv
from datetime import timedelta


# ===============================================================
# Base paths
# ===============================================================
BASE_DIR = Path(__file__).resolve().parent.parent


# ===============================================================
# Security
# ===============================================================
SECRET_KEY = config("SECRET_KEY", default="insecure-key-change-me")
DEBUG = config("DEBUG", default=False, cast=bool)

# - strip whitespace
# - drop empty entries
# - convert "*.domain" to ".domain" (Django expects leading dot, not wildcard)
# - always include "testserver" for Django test client
_raw_hosts = config("ALLOWED_HOSTS", default="127.0.0.1,localhost,testserver")

ALLOWED_HOSTS = []
for h in str(_raw_hosts).split(","):
    h = h.strip()
    if not h:
        continue
    ALLOWED_HOSTS.append("." + h[2:] if h.startswith("*.") else h)

if "testserver" not in ALLOWED_HOSTS:
    ALLOWED_HOSTS.append("testserver")


# ---------------------------------------------------------------
# Reverse proxy
# ---------------------------------------------------------------
USE_X_FORWARDED_HOST = True
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

SECURE_SSL_REDIRECT = False
SESSION_COOKIE_SECURE = not DEBUG
CSRF_COOKIE_SECURE = not DEBUG

CSRF_TRUSTED_ORIGINS = config("CSRF_TRUSTED_ORIGINS", default="", cast=Csv())


# ===============================================================
# Installed apps
# ===============================================================
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "corsheaders",
    "rest_framework",
    "rest_framework_simplejwt.token_blacklist",
    "django_filters",
    "drf_spectacular",
    "drf_spectacular_sidecar",
    "testflow.apps.TestflowConfig",
]


# ===============================================================
# Middleware
# ===============================================================
MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]


ROOT_URLCONF = "atl_lims.urls"
WSGI_APPLICATION = "atl_lims.wsgi.application"


# ===============================================================
# Templates
# ===============================================================
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
    }
]


# ===============================================================
# Database
# ===============================================================
DJANGO_ENV = config("DJANGO_ENV", default="development").lower()

if DJANGO_ENV == "production":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": config("DB_NAME", default="atl_lims"),
            "USER": config("DB_USER", default="atl_lims"),
            "PASSWORD": config("DB_PASSWORD", default=""),
            "HOST": config("DB_HOST", default="127.0.0.1"),
            "PORT": config("DB_PORT", default="5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }


# ===============================================================
# Password validation
# ===============================================================
AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]


# ===============================================================
# Internationalization
# ===============================================================
LANGUAGE_CODE = "en-us"
TIME_ZONE = config("TIME_ZONE", default="Asia/Kolkata")
USE_I18N = True
USE_TZ = True


# ===============================================================
# Static
# ===============================================================
STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# ===============================================================
# CORS
# ===============================================================
CORS_ALLOW_ALL_ORIGINS = config("CORS_ALLOW_ALL_ORIGINS", default=True, cast=bool)


# ===============================================================
# Django REST Framework
# ===============================================================
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework.authentication.SessionAuthentication",
        "rest_framework_simplejwt.authentication.JWTAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticated",
    ),
    "DEFAULT_RENDERER_CLASSES": (
        "rest_framework.renderers.JSONRenderer",
        "rest_framework.renderers.BrowsableAPIRenderer",
    ),
    "DEFAULT_FILTER_BACKENDS": (
        "django_filters.rest_framework.DjangoFilterBackend",
    ),
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_PAGINATION_CLASS": "atl_lims.pagination.DefaultPagination",
    "PAGE_SIZE": 50,
    "EXCEPTION_HANDLER": "testflow.errors.exception_handler",
}


# ===============================================================
# OpenAPI / Swagger
# ===============================================================
SPECTACULAR_SETTINGS = {
    "TITLE": "ATL-LIMS API",
    "DESCRIPTION": "Test request intake, job cards, results and reports for the materials testing lab",
    "VERSION": "0.1.0",
    "SWAGGER_UI_DIST": "SIDECAR",
    "SWAGGER_UI_FAVICON_HREF": "SIDECAR",
    "REDOC_DIST": "SIDECAR",
}


# ===============================================================
# JWT
# ===============================================================
SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=config("JWT_ACCESS_MINUTES", default=60, cast=int)),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=1),
    "ROTATE_REFRESH_TOKENS": True,
    "BLACKLIST_AFTER_ROTATION": True,
    "AUTH_HEADER_TYPES": ("Bearer",),
}


# ===============================================================
# Email
# ===============================================================
EMAIL_BACKEND = config("EMAIL_BACKEND", default="django.core.mail.backends.smtp.EmailBackend")
EMAIL_HOST = config("EMAIL_HOST", default="localhost")
EMAIL_PORT = config("EMAIL_PORT", default=587, cast=int)
EMAIL_HOST_USER = config("EMAIL_HOST_USER", default="")
EMAIL_HOST_PASSWORD = config("EMAIL_HOST_PASSWORD", default="")
EMAIL_USE_TLS = config("EMAIL_USE_TLS", default=True, cast=bool)
DEFAULT_FROM_EMAIL = config("DEFAULT_FROM_EMAIL", default="ATL Lab <no-reply@localhost>")

# Section heads told about new requests once the ROR is out
SECTION_HEAD_EMAILS = {
    "chemical": config("SECTION_HEAD_EMAILS_CHEMICAL", default="", cast=Csv()),
    "mechanical": config("SECTION_HEAD_EMAILS_MECHANICAL", default="", cast=Csv()),
}

# Internal notice on every status transition (off by default)
WORKFLOW_EMAIL_NOTIFICATIONS = config("WORKFLOW_EMAIL_NOTIFICATIONS", default=False, cast=bool)
WORKFLOW_NOTIFY_EMAILS = config("WORKFLOW_NOTIFY_EMAILS", default="", cast=Csv())


# ===============================================================
# Documents
# ===============================================================
TESTFLOW_DOCUMENT_RENDERER = config(
    "TESTFLOW_DOCUMENT_RENDERER", default="testflow.rendering.DocumentRenderer"
)


# ===============================================================
# Logging
# ===============================================================
LOG_LEVEL = config("LOG_LEVEL", default="INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "django": {"handlers": ["console"], "level": "WARNING", "propagate": False},
        "testflow": {"level": LOG_LEVEL},
    },
}


# ===============================================================
# Celery configuration
# ===============================================================
CELERY_BROKER_URL = config("CELERY_BROKER_URL", default="redis://127.0.0.1:6379/0")

CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"

CELERY_TIMEZONE = TIME_ZONE

# Outside production tasks run inline; no broker needed
CELERY_TASK_ALWAYS_EAGER = config("CELERY_TASK_ALWAYS_EAGER", default=DJANGO_ENV != "production", cast=bool)
