"""Failed-login throttling, counted per client in a fixed time window."""

import logging

from django.utils import timezone

from core.conf import AauthConfig
from core.context import RequestContext

from .models import LoginAttempt

logger = logging.getLogger(__name__)


class LoginAttemptTracker:
    """Count login attempts in the database or, if configured, in a cookie.

    The database counter is keyed by client IP and an MD5 of the user agent;
    rows older than ``login_attempt_limit_time_period`` no longer count.
    """

    def __init__(self, config: AauthConfig, context: RequestContext):
        self.config = config
        self.context = context

    @property
    def uses_cookie(self) -> bool:
        return bool(self.config.login_attempt_cookie)

    def _window(self):
        cutoff = timezone.now() - self.config.login_attempt_limit_time_period
        return LoginAttempt.objects.filter(
            ip_address=self.context.ip_address,
            user_agent=self.context.user_agent_hash,
            updated_at__gte=cutoff,
        ).order_by("-updated_at")

    def find_login(self) -> int:
        """Number of attempts recorded for this client in the current window."""
        if self.uses_cookie:
            value = self.context.get_cookie(self.config.login_attempt_cookie)
            return int(value) if value and value.isdigit() else 0
        row = self._window().first()
        return row.count if row else 0

    def save_attempt(self) -> bool:
        """Record an attempt; return ``False`` once the limit is reached."""
        if self.uses_cookie:
            count = self.find_login() + 1
            max_age = int(self.config.login_attempt_limit_time_period.total_seconds())
            self.context.set_cookie(self.config.login_attempt_cookie, str(count), max_age)
        else:
            row = self._window().first()
            if row is None:
                LoginAttempt.objects.create(
                    ip_address=self.context.ip_address,
                    user_agent=self.context.user_agent_hash,
                    count=1,
                )
                return True
            row.count += 1
            row.save(update_fields=["count", "updated_at"])
            count = row.count

        # A first attempt is always let through.
        if count > 1 and count >= self.config.login_attempt_limit:
            logger.warning("Login attempt limit reached for %s", self.context.ip_address)
            return False
        return True

    def delete_attempt(self) -> None:
        if self.uses_cookie:
            self.context.delete_cookie(self.config.login_attempt_cookie)
            return
        LoginAttempt.objects.filter(
            ip_address=self.context.ip_address,
            user_agent=self.context.user_agent_hash,
        ).delete()


__all__ = ["LoginAttemptTracker"]
