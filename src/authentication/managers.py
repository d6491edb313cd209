"""Custom user manager handling bcrypt hashing, verification and soft delete."""

import bcrypt
from django.conf import settings
from django.contrib.auth.base_user import BaseUserManager

from core.models import SoftDeleteQuerySet

DEFAULT_ROUNDS = 12


class UserManager(BaseUserManager.from_queryset(SoftDeleteQuerySet)):
    """Manager to create users with bcrypt password hashes.

    By default soft-deleted users are hidden; ``include_deleted=True`` builds
    the unfiltered variant used for ``User.all_objects``.
    """

    use_in_migrations = True

    def __init__(self, include_deleted: bool = False):
        super().__init__()
        self.include_deleted = include_deleted

    def deconstruct(self):
        # Serialise without the constructor flag; both variants migrate alike.
        legacy, path, qs_class, args, kwargs = super().deconstruct()
        return legacy, path, qs_class, (), {}

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.include_deleted:
            return queryset
        return queryset.filter(deleted_at__isnull=True)

    def _create_user(self, email: str, password: str, **extra_fields):
        if not email:
            raise ValueError("The Email must be set")
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.password_hash = self.hash_password(password)
        user.save(using=self._db)
        return user

    def create_user(self, email: str, password: str | None = None, **extra_fields):
        """Create a regular user with bcrypt-hashed password."""
        if password is None:
            raise ValueError("Password must be provided")
        return self._create_user(email, password, **extra_fields)

    @staticmethod
    def hash_password(raw_password: str, rounds: int | None = None) -> str:
        """Hash a raw password using bcrypt and return the utf-8 string."""
        if rounds is None:
            rounds = getattr(settings, "AAUTH", {}).get("password_hash_rounds", DEFAULT_ROUNDS)
        salt = bcrypt.gensalt(rounds=rounds)
        hashed = bcrypt.hashpw(raw_password.encode(), salt)
        return hashed.decode()

    @staticmethod
    def verify_password(user, raw_password: str) -> bool:
        """Verify raw password against stored bcrypt hash."""

        if not user.password_hash:
            return False
        return bcrypt.checkpw(raw_password.encode(), user.password_hash.encode("utf-8"))


__all__ = ["UserManager"]
