"""Time-based one-time passwords (RFC 6238) as a second login factor."""

import base64
import hashlib
import hmac
import logging
import secrets
import struct
import time
from typing import Optional
from urllib.parse import quote, urlencode

from django.db import transaction

from core import messages as msg

from .attempts import LoginAttemptTracker
from .models import UserVariable
from .modules import AauthModule

logger = logging.getLogger(__name__)

SECRET_KEY = "totp_secret"
LAST_COUNTER_KEY = "totp_last_counter"
SESSION_FLAG = "totp_required"


def generate_secret(num_bytes: int = 20) -> str:
    """Random base32 secret (32 characters for the default 20 bytes)."""
    return base64.b32encode(secrets.token_bytes(num_bytes)).decode().rstrip("=")


def _decode_secret(secret: str) -> bytes:
    cleaned = secret.replace(" ", "").upper()
    return base64.b32decode(cleaned + "=" * (-len(cleaned) % 8))


def generate_code(secret: str, for_time: Optional[float] = None, step: int = 30, digits: int = 6) -> str:
    """HOTP over the current 30 second counter, SHA1, zero padded."""
    counter = int((time.time() if for_time is None else for_time) // step)
    digest = hmac.new(_decode_secret(secret), struct.pack(">Q", counter), hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    value = struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF
    return str(value % (10 ** digits)).zfill(digits)


def matching_counter(secret: str, code: Optional[str], window: int = 1, for_time: Optional[float] = None, step: int = 30) -> Optional[int]:
    """Time step ``code`` was generated for, searching ``window`` steps either side."""
    if not code or not code.isdigit():
        return None
    now = time.time() if for_time is None else for_time
    for drift in range(-window, window + 1):
        if hmac.compare_digest(generate_code(secret, now + drift * step, step), code):
            return int((now + drift * step) // step)
    return None


def verify_code(secret: str, code: Optional[str], window: int = 1, for_time: Optional[float] = None, step: int = 30) -> bool:
    """Accept ``code`` for the current step or ``window`` steps either side."""
    return matching_counter(secret, code, window, for_time, step) is not None


class TOTPModule(AauthModule):
    """Per-user TOTP secrets plus the login and session checks that use them."""

    name = "totp"

    # Secrets

    @staticmethod
    def get_secret(user_id: int) -> Optional[str]:
        return (
            UserVariable.objects.filter(user_id=user_id, data_key=SECRET_KEY, system=True)
            .values_list("data_value", flat=True)
            .first()
        )

    @staticmethod
    def set_secret(user_id: int, secret: str) -> None:
        UserVariable.objects.update_or_create(
            user_id=user_id, data_key=SECRET_KEY, system=True, defaults={"data_value": secret}
        )

    @staticmethod
    def remove_secret(user_id: int) -> None:
        UserVariable.objects.filter(
            user_id=user_id, data_key__in=(SECRET_KEY, LAST_COUNTER_KEY), system=True
        ).delete()

    @staticmethod
    def generate_unique_secret() -> str:
        while True:
            secret = generate_secret()
            if not UserVariable.objects.filter(data_key=SECRET_KEY, system=True, data_value=secret).exists():
                return secret

    def provisioning_uri(self, secret: str, label: str) -> str:
        issuer = self.config.email_from_name
        query = urlencode({"secret": secret, "issuer": issuer})
        return f"otpauth://totp/{quote(issuer)}:{quote(label)}?{query}"

    def verify_user_totp_code(self, code: Optional[str], user_id: int) -> bool:
        """Check ``code`` against the user's secret; users without one pass.

        Each time step is accepted once: a code for a step at or before the
        last accepted one is rejected even while it is still inside the
        drift window.
        """
        secret = self.get_secret(user_id)
        if not secret:
            return True
        counter = matching_counter(secret, code)
        if counter is None:
            return False
        with transaction.atomic():
            last, _ = UserVariable.objects.select_for_update().get_or_create(
                user_id=user_id, data_key=LAST_COUNTER_KEY, system=True, defaults={"data_value": "-1"}
            )
            if counter <= int(last.data_value):
                logger.warning("Replayed TOTP code for user %s", user_id)
                return False
            last.data_value = str(counter)
            last.save(update_fields=["data_value", "updated_at"])
        return True

    # Login integration

    def _applies_to(self, user) -> bool:
        if not self.config.totp_on_ip_change:
            return True
        return self.context.ip_address != user.last_ip_address

    def check_login(self, user, totp_code: Optional[str]) -> bool:
        """Enforce the code during login when ``totp_login`` is enabled."""
        if not self.config.totp_login or not self._applies_to(user):
            return True
        if self.get_secret(user.pk) and not totp_code:
            self.messages.error(msg.REQUIRED_TOTP_CODE)
            return False
        if not self.verify_user_totp_code(totp_code, user.pk):
            self.messages.error(msg.INVALID_TOTP_CODE)
            return False
        return True

    def after_login(self, user) -> None:
        """Defer the code check to the session when not asked at login.

        Only users holding a secret get the pending flag.
        """
        if self.config.totp_login or not self._applies_to(user):
            return
        if self.get_secret(user.pk):
            self.context.session[SESSION_FLAG] = True

    def is_totp_required(self) -> bool:
        return bool(self.context.session.get(SESSION_FLAG))

    def verify_session_totp(self, code: Optional[str]) -> bool:
        """Clear the pending flag once the current user proves a valid code.

        Tries count against the same per-client limit as password logins.
        """
        user_id = self.aauth.current_user_id()
        if not user_id:
            self.messages.error(msg.NOT_FOUND_USER)
            return False
        attempts = LoginAttemptTracker(self.config, self.context)
        if self.config.login_protection and not attempts.save_attempt():
            self.messages.error(msg.LOGIN_ATTEMPTS_EXCEEDED)
            return False
        if not self.verify_user_totp_code(code, user_id):
            self.messages.error(msg.INVALID_TOTP_CODE)
            logger.info("Invalid session TOTP code for user %s", user_id)
            return False
        attempts.delete_attempt()
        self.context.session.pop(SESSION_FLAG, None)
        return True


__all__ = ["TOTPModule", "generate_code", "generate_secret", "matching_counter", "verify_code"]
