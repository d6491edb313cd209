"""Settings for the test suite: in-memory SQLite, local mail, cheap bcrypt."""

from .settings import *  # noqa: F401,F403
from .settings import AAUTH

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

SECRET_KEY = "test-only-secret-key-long-enough-for-hs256-signing"

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

AAUTH = {
    **AAUTH,
    "password_hash_rounds": 4,
    "site_url": "http://testserver",
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {"null": {"class": "logging.NullHandler"}},
    "root": {"handlers": ["null"]},
}
