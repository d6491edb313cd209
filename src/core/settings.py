"""Django settings for the Aauth backend.

Environment-driven configuration for Postgres, Redis, mail, logging and the
AAUTH options consumed by ``core.conf.AauthConfig``.
"""
import os
from datetime import timedelta
from pathlib import Path
from urllib.parse import urlparse

from django.core.exceptions import ImproperlyConfigured

BASE_DIR = Path(__file__).resolve().parent.parent


def _get_env(name: str, default: str | None = None) -> str | None:
    """Read an environment variable with an optional fallback."""
    return os.environ.get(name, default)


def _get_bool(name: str, default: bool) -> bool:
    return _get_env(name, str(default)) == "True"


def _parse_database_url(url: str) -> dict:
    """Parse a PostgreSQL-style DATABASE_URL into a Django DATABASES entry."""
    parsed = urlparse(url)
    return {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": parsed.path.lstrip("/"),
        "USER": parsed.username,
        "PASSWORD": parsed.password,
        "HOST": parsed.hostname,
        "PORT": parsed.port or "5432",
    }


SECRET_KEY = _get_env("SECRET_KEY", "dev-secret-key-change-me")
DEBUG = _get_bool("DEBUG", True)
if not DEBUG and SECRET_KEY in ("change-me", "dev-secret-key-change-me"):
    raise ImproperlyConfigured("SECRET_KEY must be set in production")
ALLOWED_HOSTS = [
    h.strip()
    for h in _get_env("ALLOWED_HOSTS", "localhost,127.0.0.1,0.0.0.0").split(",")
    if h.strip()
]

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.staticfiles",
    "rest_framework",
    "drf_spectacular",
    "core",
    "authentication",
    "access_control",
    "scripts",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    # Needs the session; replaces Django's AuthenticationMiddleware.
    "core.middleware.AauthMiddleware",
]

ROOT_URLCONF = "core.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
            ],
        },
    },
]

WSGI_APPLICATION = "core.wsgi.application"

DATABASE_URL = _get_env("DATABASE_URL")
if DATABASE_URL:
    DATABASES = {"default": _parse_database_url(DATABASE_URL)}
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": _get_env("POSTGRES_DB", "aauth"),
            "USER": _get_env("POSTGRES_USER", "aauth"),
            "PASSWORD": _get_env("POSTGRES_PASSWORD", "aauth"),
            "HOST": _get_env("POSTGRES_HOST", "localhost"),
            "PORT": _get_env("POSTGRES_PORT", "5433"),
        }
    }

SESSION_ENGINE = "django.contrib.sessions.backends.db"
SESSION_SERIALIZER = "django.contrib.sessions.serializers.JSONSerializer"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

AUTH_USER_MODEL = "authentication.User"

DEBUG_AUTH_ERRORS = _get_bool("DEBUG_AUTH_ERRORS", False)
REDIS_URL = _get_env("REDIS_URL", "redis://localhost:6380/0")

EMAIL_BACKEND = _get_env("EMAIL_BACKEND", "django.core.mail.backends.smtp.EmailBackend")
EMAIL_HOST = _get_env("EMAIL_HOST", "localhost")
EMAIL_PORT = int(_get_env("EMAIL_PORT", "587"))
EMAIL_HOST_USER = _get_env("EMAIL_HOST_USER", "")
EMAIL_HOST_PASSWORD = _get_env("EMAIL_HOST_PASSWORD", "")
EMAIL_USE_TLS = _get_bool("EMAIL_USE_TLS", True)

AAUTH = {
    "link_no_permission": _get_env("AAUTH_LINK_NO_PERMISSION") or None,
    "site_url": _get_env("AAUTH_SITE_URL", "http://localhost:8000"),
    "user_active_time": timedelta(minutes=int(_get_env("AAUTH_USER_ACTIVE_MINUTES", "5"))),
    "user_verification": _get_bool("AAUTH_USER_VERIFICATION", False),
    "password_hash_rounds": int(_get_env("AAUTH_PASSWORD_HASH_ROUNDS", "12")),
    "login_remember": timedelta(days=int(_get_env("AAUTH_LOGIN_REMEMBER_DAYS", "14"))),
    "login_single_mode": _get_bool("AAUTH_LOGIN_SINGLE_MODE", False),
    "login_use_username": _get_bool("AAUTH_LOGIN_USE_USERNAME", False),
    "login_accurate_errors": _get_bool("AAUTH_LOGIN_ACCURATE_ERRORS", False),
    "login_attempt_limit": int(_get_env("AAUTH_LOGIN_ATTEMPT_LIMIT", "10")),
    "email_from": _get_env("AAUTH_EMAIL_FROM", "admin@example.com"),
    "email_from_name": _get_env("AAUTH_EMAIL_FROM_NAME", "Aauth"),
    "totp_enabled": _get_bool("AAUTH_TOTP_ENABLED", False),
    "totp_login": _get_bool("AAUTH_TOTP_LOGIN", False),
    "captcha_enabled": _get_bool("AAUTH_CAPTCHA_ENABLED", False),
    "captcha_type": _get_env("AAUTH_CAPTCHA_TYPE", "recaptcha"),
    "captcha_site_key": _get_env("AAUTH_CAPTCHA_SITE_KEY", ""),
    "captcha_secret": _get_env("AAUTH_CAPTCHA_SECRET", ""),
}

LOG_LEVEL = _get_env("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "default"},
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        name: {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False}
        for name in ("core", "authentication", "access_control", "scripts")
    },
}

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": ["core.authentication.MiddlewareUserAuthentication"],
    "DEFAULT_PERMISSION_CLASSES": [],
    "UNAUTHENTICATED_USER": "django.contrib.auth.models.AnonymousUser",
    "EXCEPTION_HANDLER": "core.exceptions.custom_exception_handler",
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}

SPECTACULAR_SETTINGS = {
    "TITLE": "Aauth API",
    "DESCRIPTION": (
        "OpenAPI schema for the session-based authentication and "
        "group/permission authorization backend."
    ),
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
    "SERVE_PUBLIC": True,
    "APPEND_COMPONENTS": {
        "securitySchemes": {
            "sessionAuth": {
                "type": "apiKey",
                "in": "cookie",
                "name": "sessionid",
            }
        }
    },
    "SECURITY": [{"sessionAuth": []}],
}
