"""Typed configuration for the Aauth components.

``AauthConfig`` is built from ``settings.AAUTH`` once and handed to every
service at construction time, so no component reads Django settings directly.
"""

from dataclasses import dataclass, field, fields
from datetime import timedelta
from typing import Any, Optional

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

CAPTCHA_TYPES = ("recaptcha", "hcaptcha")


@dataclass(frozen=True)
class AauthConfig:
    """Immutable settings bundle for authentication and authorization."""

    # Links
    link_no_permission: Optional[str] = None
    link_reset_password: str = "/account/reset_password/index"
    link_verification: str = "/account/verification/index"
    site_url: str = "http://localhost:8000"

    # Users
    user_active_time: timedelta = timedelta(minutes=5)
    user_verification: bool = False
    user_regex_pattern: str = r"^[a-zA-Z0-9]{3,}$"

    # Passwords
    password_min: int = 8
    password_max: int = 32
    password_hash_rounds: int = 12

    # Login
    login_remember: timedelta = timedelta(days=14)
    login_remember_cookie: str = "remember"
    login_single_mode: bool = False
    login_use_username: bool = False
    login_accurate_errors: bool = False
    login_protection: bool = True
    login_attempt_cookie: Optional[str] = None
    login_attempt_limit: int = 10
    login_attempt_limit_time_period: timedelta = timedelta(minutes=5)
    login_attempt_remove_successful: bool = True

    # Email
    email_from: str = "admin@example.com"
    email_from_name: str = "Aauth"

    # TOTP
    totp_enabled: bool = False
    totp_on_ip_change: bool = False
    totp_reset_password: bool = False
    totp_login: bool = False
    totp_link: str = "/account/twofactor_verification/index"

    # CAPTCHA
    captcha_enabled: bool = False
    captcha_type: str = "recaptcha"
    captcha_login_attempts: int = 6
    captcha_site_key: str = ""
    captcha_secret: str = ""

    # Groups
    group_admin: str = "admin"
    group_default: Optional[str] = "default"
    group_public: str = "public"

    modules: tuple[str, ...] = field(default_factory=tuple)

    # Soft delete
    db_soft_delete_users: bool = True
    db_soft_delete_groups: bool = True
    db_soft_delete_perms: bool = True

    def __post_init__(self) -> None:
        if self.captcha_type not in CAPTCHA_TYPES:
            raise ImproperlyConfigured(
                f"AAUTH captcha_type must be one of {CAPTCHA_TYPES}, got {self.captcha_type!r}"
            )
        if self.password_min > self.password_max:
            raise ImproperlyConfigured("AAUTH password_min must not exceed password_max")

    @property
    def enabled_modules(self) -> tuple[str, ...]:
        """Configured module names plus the ones switched on by feature flags."""
        names = [name.lower() for name in self.modules]
        if self.captcha_enabled and "captcha" not in names:
            names.append("captcha")
        if self.totp_enabled and "totp" not in names:
            names.append("totp")
        return tuple(names)

    @classmethod
    def from_settings(cls, overrides: Optional[dict[str, Any]] = None) -> "AauthConfig":
        """Build a config from ``settings.AAUTH`` with optional overrides."""
        values: dict[str, Any] = dict(getattr(settings, "AAUTH", {}))
        if overrides:
            values.update(overrides)

        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ImproperlyConfigured(f"Unknown AAUTH settings: {sorted(unknown)}")

        if "modules" in values:
            values["modules"] = tuple(values["modules"])
        return cls(**values)


__all__ = ["AauthConfig", "CAPTCHA_TYPES"]
