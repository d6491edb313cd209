"""Per-request accessors used by the auth services.

Services never touch ``HttpRequest``/``HttpResponse`` directly. They read and
queue cookie changes through ``RequestContext``; ``AauthMiddleware`` applies
the queued changes to the outgoing response.
"""

import hashlib
from typing import Any, Optional

_DELETED = object()


class RequestContext:
    """Session, cookies and client identity of the current request."""

    def __init__(self, session, cookies: Optional[dict[str, str]] = None, ip_address: Optional[str] = None, user_agent: str = ""):
        self.session = session
        self.ip_address = ip_address or "0.0.0.0"
        self.user_agent = user_agent or ""
        self._cookies: dict[str, str] = dict(cookies or {})
        # name -> (value, max_age) or _DELETED, in the order they were queued
        self._pending: dict[str, Any] = {}

    @classmethod
    def from_request(cls, request) -> "RequestContext":
        return cls(
            session=request.session,
            cookies=request.COOKIES,
            ip_address=request.META.get("REMOTE_ADDR"),
            user_agent=request.META.get("HTTP_USER_AGENT", ""),
        )

    @property
    def user_agent_hash(self) -> str:
        return hashlib.md5(self.user_agent.encode()).hexdigest()

    def get_cookie(self, name: str) -> Optional[str]:
        """Current value of a cookie, including changes queued this request."""
        if name in self._pending:
            pending = self._pending[name]
            return None if pending is _DELETED else pending[0]
        return self._cookies.get(name)

    def set_cookie(self, name: str, value: str, max_age: int) -> None:
        self._pending[name] = (value, max_age)

    def delete_cookie(self, name: str) -> None:
        self._pending[name] = _DELETED

    def apply(self, response) -> None:
        """Write the queued cookie changes onto ``response``."""
        for name, pending in self._pending.items():
            if pending is _DELETED:
                response.delete_cookie(name)
            else:
                value, max_age = pending
                response.set_cookie(name, value, max_age=max_age, httponly=True, samesite="Lax")
        self._pending.clear()


__all__ = ["RequestContext"]
