"""Remember-me tokens: issuance, cookie decoding and silent re-authentication."""

import logging
from datetime import timedelta
from typing import Any, Optional

import bcrypt
import jwt
from django.conf import settings
from django.utils import timezone
from django.utils.crypto import get_random_string

from core.conf import AauthConfig
from core.context import RequestContext

from .managers import UserManager
from .models import LoginToken

logger = logging.getLogger(__name__)


class RememberTokenService:
    """Handle remember-me token issuance, validation and cleanup.

    The cookie carries a signed payload with the user id and the two raw
    random components. Only bcrypt hashes of the components are stored, so a
    leaked ``LoginToken`` table cannot be replayed.
    """

    ALGORITHM = "HS256"
    TOKEN_TYPE = "remember"
    RANDOM_LENGTH = 32
    SELECTOR_LENGTH = 16
    COOKIE_MAX_AGE = int(timedelta(days=365).total_seconds())

    def __init__(self, config: AauthConfig, context: RequestContext):
        self.config = config
        self.context = context

    @property
    def cookie_name(self) -> str:
        return self.config.login_remember_cookie

    def issue(self, user_id: int, expire: Optional[timedelta] = None) -> str:
        """Store a new token for ``user_id`` and queue the remember cookie."""
        random_string = get_random_string(self.RANDOM_LENGTH)
        selector_string = get_random_string(self.SELECTOR_LENGTH)

        LoginToken.objects.create(
            user_id=user_id,
            random_hash=UserManager.hash_password(random_string),
            selector_hash=UserManager.hash_password(selector_string),
            expires_at=timezone.now() + (expire or self.config.login_remember),
        )

        value = self.encode(user_id, random_string, selector_string)
        self.context.set_cookie(self.cookie_name, value, self.COOKIE_MAX_AGE)
        return value

    @classmethod
    def encode(cls, user_id: int, random_string: str, selector_string: str) -> str:
        payload = {
            "sub": str(user_id),
            "rnd": random_string,
            "sel": selector_string,
            "type": cls.TOKEN_TYPE,
        }
        return jwt.encode(payload, settings.SECRET_KEY, algorithm=cls.ALGORITHM)

    @classmethod
    def decode(cls, value: str) -> Optional[tuple[int, str, str]]:
        """Return ``(user_id, random, selector)`` or ``None`` for a bad cookie."""
        try:
            payload: dict[str, Any] = jwt.decode(value, settings.SECRET_KEY, algorithms=[cls.ALGORITHM])
        except jwt.InvalidTokenError:
            return None

        if payload.get("type") != cls.TOKEN_TYPE:
            return None
        user_id = str(payload.get("sub", ""))
        random_string = payload.get("rnd")
        selector_string = payload.get("sel")
        if not user_id.isdigit():
            return None
        if not isinstance(random_string, str) or len(random_string) != cls.RANDOM_LENGTH:
            return None
        if not isinstance(selector_string, str) or len(selector_string) != cls.SELECTOR_LENGTH:
            return None
        return int(user_id), random_string, selector_string

    def authenticate(self) -> Optional[int]:
        """Validate the remember cookie and return the user id it proves.

        A matching, unexpired token has its expiry pushed forward. A matching
        but expired token purges the user's expired tokens and the cookie.
        """
        value = self.context.get_cookie(self.cookie_name)
        if not value:
            return None
        decoded = self.decode(value)
        if decoded is None:
            return None
        user_id, random_string, selector_string = decoded

        for token in LoginToken.objects.filter(user_id=user_id).order_by("-id"):
            if not (_matches(random_string, token.random_hash) and _matches(selector_string, token.selector_hash)):
                continue
            if token.is_expired:
                self.delete_expired(user_id)
                self.clear_cookie()
                logger.info("Expired remember token presented for user %s", user_id)
                return None
            token.expires_at = timezone.now() + self.config.login_remember
            token.save(update_fields=["expires_at", "updated_at"])
            return user_id
        return None

    def delete_all(self, user_id: int) -> int:
        deleted, _ = LoginToken.objects.filter(user_id=user_id).delete()
        return deleted

    @staticmethod
    def delete_expired(user_id: int) -> int:
        deleted, _ = LoginToken.objects.filter(user_id=user_id, expires_at__lt=timezone.now()).delete()
        return deleted

    def clear_cookie(self) -> None:
        self.context.delete_cookie(self.cookie_name)


def _matches(raw: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(raw.encode(), hashed.encode())
    except ValueError:
        return False


__all__ = ["RememberTokenService"]
