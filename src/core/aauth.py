"""Per-request entry point wiring configuration, services and modules together.

``AauthMiddleware`` builds one ``Aauth`` per request and attaches it as
``request.aauth``. Views and permission classes talk to it instead of to the
individual services, and it supplies the "current user" default everywhere a
user id is optional.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from access_control.registry import NameRegistry, Reference
from access_control.resolver import PermissionResolver
from access_control.services import GroupService, PermService
from authentication.mailer import AccountMailer
from authentication.modules import AauthModule, build_modules
from authentication.services import AuthService, UserService
from authentication.sessions import SessionRegistry

from . import messages as msg
from .conf import AauthConfig
from .context import RequestContext
from .exceptions import AccessDenied
from .messages import MessageBag

logger = logging.getLogger(__name__)


class AccessOutcome(str, enum.Enum):
    ALLOWED = "allowed"
    DENIED = "denied"
    NOT_LOGGED_IN = "not_logged_in"
    TOTP_REQUIRED = "totp_required"


@dataclass(frozen=True)
class ControlResult:
    """Outcome of an access check, with an optional place to send the client."""

    outcome: AccessOutcome
    redirect: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.outcome is AccessOutcome.ALLOWED

    def __bool__(self) -> bool:
        return self.allowed


class Aauth:
    """Authentication and authorization facade for one request."""

    def __init__(self, context: RequestContext, config: Optional[AauthConfig] = None):
        self.config = config or AauthConfig.from_settings()
        self.context = context
        self.messages = MessageBag(context.session)

        self.registry = NameRegistry(admin_group=self.config.group_admin)
        self.resolver = PermissionResolver(self.registry)
        self.session_registry = SessionRegistry(self.config.user_active_time)
        self.mailer = AccountMailer(self.config, self.messages)

        self.groups = GroupService(self.config, self.registry, self.resolver, self.messages)
        self.perms = PermService(self.config, self.registry, self.resolver, self.messages)
        self.users = UserService(self.config, self.messages, self.groups, self.mailer, self.session_registry)

        self.modules: dict[str, AauthModule] = build_modules(self)
        self.auth = AuthService(
            self.config, self.context, self.messages, self.users, self.session_registry, self.modules
        )

    @classmethod
    def for_request(cls, request, config: Optional[AauthConfig] = None) -> "Aauth":
        return cls(RequestContext.from_request(request), config)

    def module(self, name: str) -> Optional[AauthModule]:
        return self.modules.get(name)

    # Session

    def login(self, identifier: str, password: str, remember: bool = False, totp_code: Optional[str] = None, captcha_response: Optional[str] = None) -> bool:
        return self.auth.login(identifier, password, remember, totp_code, captcha_response)

    def logout(self) -> None:
        self.auth.logout()

    def is_logged_in(self) -> bool:
        return self.auth.is_logged_in()

    def current_user_id(self) -> Optional[int]:
        return self.auth.current_user_id()

    def get_user_id(self, email: Optional[str] = None) -> Optional[int]:
        """Id of the account with ``email``, or of the caller when omitted."""
        if email is None:
            return self.current_user_id()
        return self.users.get_user_id(email)

    def _user_or_current(self, user_id: Optional[int]) -> Optional[int]:
        return self.current_user_id() if user_id is None else user_id

    def is_totp_required(self) -> bool:
        totp = self.module("totp")
        return totp is not None and totp.is_totp_required()

    # Authorization

    def is_member(self, group: Reference, user_id: Optional[int] = None) -> bool:
        return self.resolver.is_member(group, self._user_or_current(user_id))

    def is_admin(self, user_id: Optional[int] = None) -> bool:
        return self.resolver.is_admin(self._user_or_current(user_id))

    def is_allowed(self, perm: Reference, user_id: Optional[int] = None) -> bool:
        # A deferred second factor blocks every permission until satisfied.
        if not self.config.totp_login and self.is_totp_required():
            return False
        return self.resolver.is_allowed(perm, self._user_or_current(user_id))

    def is_group_allowed(self, perm: Reference, group: Reference = None) -> bool:
        """Resolve for ``group``; with no group, for the public and the caller.

        The group-less form allows when the caller is admin or the public
        group is allowed, and otherwise checks the caller's own groups, but
        only for a logged-in caller.
        """
        if group is not None:
            return self.resolver.is_group_allowed(perm, group)

        if self.registry.get_perm_id(perm) is None:
            return False
        if self.is_admin() or self.resolver.is_group_allowed(perm, self.config.group_public):
            return True
        if not self.is_logged_in():
            return False
        return any(
            self.resolver.is_group_allowed(perm, group_id)
            for group_id in self.resolver.get_user_groups(self.current_user_id())
        )

    def control(self, perm: Reference = None) -> ControlResult:
        """Gate the current request on login and, if given, ``perm``.

        Raises ``AccessDenied`` instead of returning when the no-permission
        link is configured as ``"error"``.
        """
        if self.is_totp_required():
            self.messages.error(msg.REQUIRED_TOTP_CODE)
            return ControlResult(AccessOutcome.TOTP_REQUIRED, redirect=self.config.totp_link)

        if not self.is_logged_in():
            return self._deny(AccessOutcome.NOT_LOGGED_IN)

        self.users.update_last_activity(self.current_user_id())

        if perm is not None and not self.is_allowed(perm):
            return self._deny(AccessOutcome.DENIED)
        return ControlResult(AccessOutcome.ALLOWED)

    def _deny(self, outcome: AccessOutcome) -> ControlResult:
        self.messages.error(msg.NO_ACCESS)
        link = self.config.link_no_permission
        if link == "error":
            raise AccessDenied()
        return ControlResult(outcome, redirect=link or None)


__all__ = ["Aauth", "AccessOutcome", "ControlResult"]
