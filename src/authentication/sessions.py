"""Redis-backed registry of logged-in sessions.

Each authenticated request refreshes ``aauth:active:<session_key>`` with the
user id and a TTL of ``user_active_time``. The registry answers "who is active"
and lets single-login mode drop every other session of a user.
"""

import logging
from datetime import timedelta
from importlib import import_module
from typing import Optional

import redis
from django.conf import settings

logger = logging.getLogger(__name__)

_client: redis.Redis | None = None


class SessionRegistryUnavailable(Exception):
    """Raised when Redis cannot be reached (fail-closed)."""


def get_redis_client() -> redis.Redis:
    """Return a singleton Redis client using REDIS_URL from settings."""

    global _client
    if _client is None:
        _client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client


class SessionRegistry:
    """Track which user owns which Django session key."""

    PREFIX = "aauth:active:"

    def __init__(self, ttl: timedelta):
        self.ttl = ttl

    def _key(self, session_key: str) -> str:
        return f"{self.PREFIX}{session_key}"

    def touch(self, session_key: Optional[str], user_id: int) -> None:
        """Mark ``session_key`` as belonging to an active ``user_id``."""
        if not session_key:
            return
        client = get_redis_client()
        try:
            client.setex(self._key(session_key), max(1, int(self.ttl.total_seconds())), str(user_id))
        except redis.RedisError as exc:
            raise SessionRegistryUnavailable("Redis unavailable while registering session") from exc

    def forget(self, session_key: Optional[str]) -> None:
        if not session_key:
            return
        client = get_redis_client()
        try:
            client.delete(self._key(session_key))
        except redis.RedisError as exc:
            raise SessionRegistryUnavailable("Redis unavailable while removing session") from exc

    def active_sessions(self) -> dict[str, int]:
        """Map of session key -> user id for every live entry."""
        client = get_redis_client()
        sessions: dict[str, int] = {}
        try:
            for key in client.scan_iter(match=f"{self.PREFIX}*"):
                value = client.get(key)
                if value is None:
                    continue
                sessions[key[len(self.PREFIX):]] = int(value)
        except redis.RedisError as exc:
            raise SessionRegistryUnavailable("Redis unavailable while listing sessions") from exc
        return sessions

    def active_user_ids(self) -> list[int]:
        return sorted(set(self.active_sessions().values()))

    def drop_user_sessions(self, user_id: int, keep: Optional[str] = None) -> int:
        """Delete every session of ``user_id`` except ``keep``; return how many."""
        store_class = import_module(settings.SESSION_ENGINE).SessionStore
        dropped = 0
        for session_key, owner in self.active_sessions().items():
            if owner != user_id or session_key == keep:
                continue
            store_class(session_key=session_key).delete()
            self.forget(session_key)
            dropped += 1
        if dropped:
            logger.info("Dropped %s other session(s) of user %s", dropped, user_id)
        return dropped


__all__ = ["SessionRegistry", "SessionRegistryUnavailable", "get_redis_client"]
