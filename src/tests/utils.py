"""Shared helpers for tests (seeding, user creation, request contexts, fake Redis)."""

from __future__ import annotations

import fnmatch
from importlib import import_module
from typing import Dict, Optional
from unittest import mock

from django.conf import settings
from django.contrib.auth import get_user_model

from authentication.managers import UserManager
from core.aauth import Aauth
from core.conf import AauthConfig
from core.context import RequestContext
from scripts.management.commands.seed_aauth import (
    create_seed_grants,
    create_seed_groups,
    create_seed_perms,
)

User = get_user_model()

PASSWORD = "Secret1234"


class FakeRedis:
    """Minimal Redis stub supporting the commands used by SessionRegistry."""

    def __init__(self):
        self._store: Dict[str, str] = {}

    def setex(self, key: str, ttl_seconds: int, value: str) -> None:
        """Mimic Redis SETEX; TTL is ignored in tests, value stored in-memory."""
        self._store[key] = value

    def get(self, key: str):
        """Return stored value for key or None, matching Redis GET semantics."""
        return self._store.get(key)

    def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self._store.pop(key, None) is not None)

    def scan_iter(self, match: str = "*"):
        return [key for key in list(self._store) if fnmatch.fnmatchcase(key, match)]

    def flushall(self) -> None:
        self._store.clear()


class FakeRedisMixin:
    """Patch the session registry's Redis client for a whole TestCase."""

    @classmethod
    def setUpClass(cls):
        """Patch Redis clients to use the in-memory fake."""
        super().setUpClass()
        cls.fake_redis = FakeRedis()
        cls.redis_patcher = mock.patch("authentication.sessions.get_redis_client", return_value=cls.fake_redis)
        cls.redis_patcher.start()

    @classmethod
    def tearDownClass(cls):
        """Stop Redis patches after the suite finishes."""
        cls.redis_patcher.stop()
        super().tearDownClass()

    def setUp(self):
        super().setUp()
        self.fake_redis.flushall()


def seed_aauth_basics(config: Optional[AauthConfig] = None):
    """Create built-in groups and administrative permissions for tests.

    Delegates to the same helpers used by the ``seed_aauth`` management
    command to keep setup logic in a single place.
    """

    config = config or AauthConfig.from_settings()
    groups = create_seed_groups(config)
    perms = create_seed_perms()
    create_seed_grants(groups, perms, config)
    return groups, perms


def create_user(email: str, password: str = PASSWORD, **extra):
    """Create a user with a bcrypt-hashed password for tests."""

    return User.objects.create(
        email=email,
        password_hash=UserManager.hash_password(password, rounds=4),
        **extra,
    )


def new_session():
    return import_module(settings.SESSION_ENGINE).SessionStore()


def make_context(session=None, cookies=None, ip_address: str = "127.0.0.1", user_agent: str = "pytest") -> RequestContext:
    return RequestContext(session if session is not None else new_session(), cookies, ip_address, user_agent)


def make_aauth(context: Optional[RequestContext] = None, **overrides) -> Aauth:
    """Build an ``Aauth`` for a fresh (or given) context with config overrides."""
    return Aauth(context or make_context(), AauthConfig.from_settings(overrides))
