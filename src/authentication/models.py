"""Custom User model with bcrypt hashes plus login bookkeeping tables.

Note: Django's built-in groups/permissions (``PermissionsMixin``) are not
used; membership and grants live in the ``access_control`` tables.
"""

from typing import ClassVar, Optional

from django.contrib.auth.models import AbstractBaseUser
from django.db import models
from django.utils import timezone

from core.models import SoftDeleteModel, TimestampedModel

from .managers import UserManager


class User(AbstractBaseUser, SoftDeleteModel):
    """Account identified by email, optionally by username."""

    email = models.EmailField(unique=True)
    username = models.CharField(max_length=100, unique=True, null=True, blank=True)
    password_hash = models.CharField(max_length=128)
    banned = models.BooleanField(default=False)
    last_activity = models.DateTimeField(null=True, blank=True)
    last_ip_address = models.GenericIPAddressField(null=True, blank=True)

    USERNAME_FIELD = "email"
    EMAIL_FIELD = "email"
    REQUIRED_FIELDS: ClassVar[list[str]] = []

    objects = UserManager()
    all_objects = UserManager(include_deleted=True)

    class Meta:
        ordering = ["id"]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.email

    @property
    def is_active(self) -> bool:  # type: ignore[override]
        return not self.banned and self.deleted_at is None

    def set_password(self, raw_password: Optional[str]) -> None:  # type: ignore[override]
        """Override to ensure bcrypt hashing via manager utility."""

        if raw_password is None:
            self.password_hash = ""
        else:
            self.password_hash = UserManager.hash_password(raw_password)

    def check_password(self, raw_password: Optional[str]) -> bool:  # type: ignore[override]
        """Delegate to bcrypt verification helper."""

        if raw_password is None:
            return False
        return UserManager.verify_password(self, raw_password)


class UserVariable(TimestampedModel):
    """Key/value attribute of a user.

    ``system`` variables (verification codes, TOTP secrets) are kept apart
    from the ones a user manages through the public variable API.
    """

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="variables")
    data_key = models.CharField(max_length=100)
    data_value = models.TextField(blank=True, default="")
    system = models.BooleanField(default=False)

    class Meta:
        unique_together = ("user", "data_key", "system")

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.user_id}.{self.data_key}"


class LoginToken(TimestampedModel):
    """Persistent remember-me token; both random parts are stored hashed."""

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="login_tokens")
    random_hash = models.CharField(max_length=128)
    selector_hash = models.CharField(max_length=128)
    expires_at = models.DateTimeField()

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"token {self.pk} for user {self.user_id}"

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= timezone.now()


class LoginAttempt(TimestampedModel):
    """Failed-login counter for an (IP address, user agent hash) pair."""

    ip_address = models.GenericIPAddressField()
    user_agent = models.CharField(max_length=32)
    count = models.PositiveIntegerField(default=0)

    class Meta:
        indexes = [
            models.Index(fields=["ip_address", "user_agent", "updated_at"], name="login_attempt_lookup_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.ip_address} ({self.count})"


__all__ = ["LoginAttempt", "LoginToken", "User", "UserVariable"]
