"""User administration and the login/session state machine."""

import logging
import re
import secrets
from datetime import timedelta
from typing import Optional

from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction
from django.utils import timezone
from django.utils.crypto import get_random_string

from access_control.models import GroupToUser, PermToUser
from access_control.registry import Reference
from access_control.services import GroupService, apply_ordering, paginate
from core import messages as msg
from core.conf import AauthConfig
from core.context import RequestContext
from core.messages import MessageBag, format_message

from .attempts import LoginAttemptTracker
from .mailer import AccountMailer
from .models import LoginToken, User, UserVariable
from .modules import AauthModule
from .sessions import SessionRegistry
from .tokens import RememberTokenService

logger = logging.getLogger(__name__)

USER_FIELDS = (
    "id",
    "email",
    "username",
    "banned",
    "created_at",
    "updated_at",
    "last_activity",
    "last_ip_address",
    "last_login",
)
VERIFICATION_KEY = "verification_code"
RESET_KEY = "reset_code"
SESSION_USER_KEY = "user"


class UserService:
    """Create, validate, list and administer user accounts."""

    def __init__(
        self,
        config: AauthConfig,
        messages: MessageBag,
        groups: GroupService,
        mailer: AccountMailer,
        session_registry: SessionRegistry,
    ):
        self.config = config
        self.messages = messages
        self.groups = groups
        self.mailer = mailer
        self.session_registry = session_registry

    # Validation

    def _validate(self, email: Optional[str], password: Optional[str], username: Optional[str], user_id: Optional[int] = None, creating: bool = False) -> bool:
        errors: list[str] = []
        others = User.all_objects.all()
        if user_id is not None:
            others = others.exclude(pk=user_id)

        if email is not None or creating:
            if not email:
                errors.append(str(msg.REQUIRED_EMAIL))
            else:
                try:
                    validate_email(email)
                except ValidationError:
                    errors.append(str(msg.INVALID_EMAIL))
                else:
                    if others.filter(email__iexact=email).exists():
                        errors.append(str(msg.EXISTS_ALREADY_EMAIL))

        if password is not None or creating:
            length = len(password or "")
            if length < self.config.password_min:
                errors.append(format_message(msg.PASSWORD_MIN_LENGTH, min=self.config.password_min))
            elif length > self.config.password_max:
                errors.append(format_message(msg.PASSWORD_MAX_LENGTH, max=self.config.password_max))

        if username:
            if not re.match(self.config.user_regex_pattern, username):
                errors.append(str(msg.INVALID_USERNAME))
            elif others.filter(username=username).exists():
                errors.append(str(msg.EXISTS_ALREADY_USERNAME))
        elif creating and self.config.login_use_username:
            errors.append(str(msg.INVALID_USERNAME))

        if errors:
            self.messages.error(errors)
            return False
        return True

    # Accounts

    def create_user(self, email: str, password: str, username: Optional[str] = None) -> Optional[int]:
        if not self._validate(email, password, username, creating=True):
            return None

        with transaction.atomic():
            user = User.objects.create_user(email=email, password=password, username=username or None)
            if self.config.group_default and self.groups.get_group_id(self.config.group_default) is not None:
                self.groups.add_member(self.config.group_default, user.pk)

        logger.info("Created user %s (%s)", user.email, user.pk)

        if self.config.user_verification:
            self.send_verification(user.pk, user.email)
            self.messages.info(msg.INFO_CREATE_VERIFICATION)
        else:
            self.messages.info(msg.INFO_CREATE_SUCCESS)
        return user.pk

    def update_user(self, user_id: int, email: Optional[str] = None, password: Optional[str] = None, username: Optional[str] = None) -> bool:
        user = User.objects.filter(pk=user_id).first()
        if user is None:
            self.messages.error(msg.NOT_FOUND_USER)
            return False
        if email is None and password is None and username is None:
            return True
        if not self._validate(email, password, username, user_id=user_id):
            return False

        if email is not None:
            user.email = User.objects.normalize_email(email)
        if username is not None:
            user.username = username or None
        if password is not None:
            user.set_password(password)
        user.save()
        self.messages.info(msg.INFO_UPDATE_SUCCESS)
        return True

    def delete_user(self, user_id: int) -> bool:
        user = User.objects.filter(pk=user_id).first()
        if user is None:
            self.messages.error(msg.NOT_FOUND_USER)
            return False

        with transaction.atomic():
            GroupToUser.objects.filter(user_id=user_id).delete()
            PermToUser.objects.filter(user_id=user_id).delete()
            UserVariable.objects.filter(user_id=user_id).delete()
            LoginToken.objects.filter(user_id=user_id).delete()
            user.remove(soft=self.config.db_soft_delete_users)

        logger.info("Deleted user %s", user_id)
        return True

    def _user_listing(self, group: Reference, include_banned: bool, order_by: Optional[str]):
        queryset = User.objects.all()
        if group is not None:
            group_id = self.groups.get_group_id(group)
            if group_id is None:
                return User.objects.none()
            queryset = queryset.filter(group_links__group_id=group_id)
        if not include_banned:
            queryset = queryset.filter(banned=False)
        return apply_ordering(queryset, order_by, USER_FIELDS).values(*USER_FIELDS)

    def list_users(self, group: Reference = None, limit: int = 0, offset: int = 0, include_banned: bool = True, order_by: Optional[str] = None) -> list[dict]:
        queryset = self._user_listing(group, include_banned, order_by)
        if limit:
            return list(queryset[offset:offset + limit])
        return list(queryset[offset:])

    def list_users_paginated(self, group: Reference = None, limit: int = 10, include_banned: bool = True, order_by: Optional[str] = None, page=1) -> dict:
        users, pager = paginate(self._user_listing(group, include_banned, order_by), limit, page)
        return {"users": users, "pager": pager}

    def get_user(self, user_id: Optional[int], include_variables: bool = False, system_variables: bool = False) -> Optional[dict]:
        user = User.objects.filter(pk=user_id).values(*USER_FIELDS).first() if user_id else None
        if user is None:
            self.messages.error(msg.NOT_FOUND_USER)
            return None
        if include_variables:
            variables = UserVariable.objects.filter(user_id=user_id)
            if not system_variables:
                variables = variables.filter(system=False)
            user["variables"] = list(variables.order_by("data_key").values("data_key", "data_value"))
        return user

    @staticmethod
    def get_user_id(email: str) -> Optional[int]:
        return User.objects.filter(email__iexact=email).values_list("id", flat=True).first()

    def get_active_users_count(self) -> int:
        return len(self.session_registry.active_sessions())

    def list_active_users(self) -> list[dict]:
        user_ids = self.session_registry.active_user_ids()
        if not user_ids:
            return []
        return list(User.objects.filter(pk__in=user_ids).values(*USER_FIELDS))

    # Bans

    @staticmethod
    def is_banned(user_id: Optional[int]) -> bool:
        """Unknown users count as banned."""
        banned = User.objects.filter(pk=user_id).values_list("banned", flat=True).first() if user_id else None
        return True if banned is None else banned

    def ban_user(self, user_id: Optional[int]) -> bool:
        return self._set_banned(user_id, True)

    def unban_user(self, user_id: Optional[int]) -> bool:
        return self._set_banned(user_id, False)

    def _set_banned(self, user_id: Optional[int], banned: bool) -> bool:
        if not user_id or not User.objects.filter(pk=user_id).update(banned=banned):
            self.messages.error(msg.NOT_FOUND_USER)
            return False
        logger.info("User %s %s", user_id, "banned" if banned else "unbanned")
        return True

    # Verification and password reset

    def send_verification(self, user_id: int, email: str) -> bool:
        code = secrets.token_hex(20)
        self._set_system_var(user_id, VERIFICATION_KEY, code)
        return self.mailer.send_verification(user_id, email, code)

    @staticmethod
    def is_verification_pending(user_id: int) -> bool:
        return UserVariable.objects.filter(user_id=user_id, data_key=VERIFICATION_KEY, system=True).exists()

    def verify_user(self, code: str) -> bool:
        row = UserVariable.objects.filter(data_key=VERIFICATION_KEY, data_value=code, system=True).first() if code else None
        if row is None:
            self.messages.error(msg.INVALID_VERIFICATION_CODE)
            return False
        row.delete()
        self.messages.info(msg.INFO_VERIFICATION)
        return True

    def remind_password(self, email: str) -> bool:
        user = User.objects.filter(email__iexact=email).first() if email else None
        if user is None:
            self.messages.error(msg.NOT_FOUND_USER)
            return False

        code = secrets.token_hex(20)
        self._set_system_var(user.pk, RESET_KEY, code)
        if not self.mailer.send_remind_password(user.email, code):
            return False
        self.messages.info(msg.INFO_REMIND_SUCCESS)
        return True

    def reset_password(self, code: str) -> bool:
        row = UserVariable.objects.filter(data_key=RESET_KEY, data_value=code, system=True).first() if code else None
        if row is None:
            self.messages.error(msg.INVALID_VERIFICATION_CODE)
            return False
        user = User.objects.filter(pk=row.user_id).first()
        if user is None:
            self.messages.error(msg.NOT_FOUND_USER)
            return False

        password = get_random_string(self.config.password_min)
        with transaction.atomic():
            user.set_password(password)
            user.save(update_fields=["password_hash", "updated_at"])
            row.delete()
            if self.config.totp_enabled and self.config.totp_reset_password:
                UserVariable.objects.filter(user_id=user.pk, data_key="totp_secret", system=True).delete()

        if not self.mailer.send_reset_password(user.email, password):
            return False
        self.messages.info(msg.INFO_RESET_SUCCESS)
        return True

    # Bookkeeping

    @staticmethod
    def update_last_login(user_id: int, ip_address: Optional[str]) -> bool:
        return bool(User.objects.filter(pk=user_id).update(last_login=timezone.now(), last_ip_address=ip_address))

    @staticmethod
    def update_last_activity(user_id: Optional[int]) -> bool:
        if not user_id:
            return False
        return bool(User.objects.filter(pk=user_id).update(last_activity=timezone.now()))

    # Variables

    @staticmethod
    def _set_system_var(user_id: int, key: str, value: str) -> None:
        UserVariable.objects.update_or_create(user_id=user_id, data_key=key, system=True, defaults={"data_value": value})

    def set_user_var(self, key: str, value: str, user_id: Optional[int]) -> bool:
        if not user_id or not User.objects.filter(pk=user_id).exists():
            self.messages.error(msg.NOT_FOUND_USER)
            return False
        UserVariable.objects.update_or_create(user_id=user_id, data_key=key, system=False, defaults={"data_value": value})
        return True

    def unset_user_var(self, key: str, user_id: Optional[int]) -> bool:
        if not user_id or not User.objects.filter(pk=user_id).exists():
            self.messages.error(msg.NOT_FOUND_USER)
            return False
        deleted, _ = UserVariable.objects.filter(user_id=user_id, data_key=key, system=False).delete()
        return deleted > 0

    @staticmethod
    def get_user_var(key: str, user_id: Optional[int]) -> Optional[str]:
        if not user_id:
            return None
        return (
            UserVariable.objects.filter(user_id=user_id, data_key=key, system=False, user__deleted_at__isnull=True)
            .values_list("data_value", flat=True)
            .first()
        )

    @staticmethod
    def list_user_vars(user_id: Optional[int]) -> list[dict]:
        if not user_id:
            return []
        return list(
            UserVariable.objects.filter(user_id=user_id, system=False, user__deleted_at__isnull=True)
            .order_by("data_key")
            .values("data_key", "data_value", "created_at", "updated_at")
        )

    @staticmethod
    def get_user_var_keys(user_id: Optional[int]) -> list[str]:
        if not user_id:
            return []
        return list(
            UserVariable.objects.filter(user_id=user_id, system=False, user__deleted_at__isnull=True)
            .order_by("data_key")
            .values_list("data_key", flat=True)
        )


class AuthService:
    """Login, silent remember-me re-authentication and logout.

    State lives in the Django session under ``"user"``; a pending second
    factor is a separate ``totp_required`` flag handled by the TOTP module.
    """

    def __init__(
        self,
        config: AauthConfig,
        context: RequestContext,
        messages: MessageBag,
        users: UserService,
        session_registry: SessionRegistry,
        modules: dict[str, AauthModule],
    ):
        self.config = config
        self.context = context
        self.messages = messages
        self.users = users
        self.session_registry = session_registry
        self.modules = modules
        self.tokens = RememberTokenService(config, context)
        self.attempts = LoginAttemptTracker(config, context)

    @property
    def session(self):
        return self.context.session

    def current_user_id(self) -> Optional[int]:
        data = self.session.get(SESSION_USER_KEY) or {}
        return data.get("id") if data.get("logged_in") else None

    def login(self, identifier: str, password: str, remember: bool = False, totp_code: Optional[str] = None, captcha_response: Optional[str] = None) -> bool:
        self.tokens.clear_cookie()

        if self.config.login_protection and not self.attempts.save_attempt():
            self.messages.error(msg.LOGIN_ATTEMPTS_EXCEEDED)
            return False

        captcha = self.modules.get("captcha")
        if self.config.login_protection and captcha is not None and captcha.is_captcha_required():
            if not captcha.verify_captcha_response(captcha_response or "")["success"]:
                self.messages.error(msg.INVALID_CAPTCHA)
                return False

        user = self._find_user(identifier, password)
        if user is None:
            return False

        if self.users.is_verification_pending(user.pk):
            self.messages.error(msg.NOT_VERIFIED)
            return False
        if user.banned:
            self.messages.error(msg.INVALID_USER_BANNED)
            return False

        totp = self.modules.get("totp")
        if totp is not None and not totp.check_login(user, totp_code):
            return False

        if not user.check_password(password):
            self.messages.error(self._failure_message())
            logger.info("Failed login for user %s from %s", user.pk, self.context.ip_address)
            return False

        if self.config.login_single_mode:
            self.tokens.delete_all(user.pk)

        self._start_session(user)

        if self.config.login_single_mode:
            self.session_registry.drop_user_sessions(user.pk, keep=self.session.session_key)
        if totp is not None:
            totp.after_login(user)
        if remember:
            self.generate_remember(user.pk)

        self.users.update_last_login(user.pk, self.context.ip_address)
        if self.config.login_attempt_remove_successful:
            self.attempts.delete_attempt()

        logger.info("User %s logged in from %s", user.pk, self.context.ip_address)
        return True

    def _find_user(self, identifier: str, password: str) -> Optional[User]:
        length = len(password or "")
        bad_length = length < self.config.password_min or length > self.config.password_max

        if self.config.login_use_username:
            if not identifier or bad_length:
                self.messages.error(msg.LOGIN_FAILED_USERNAME)
                return None
            user = User.objects.filter(username=identifier).first()
        else:
            try:
                validate_email(identifier or "")
            except ValidationError:
                bad_length = True
            if bad_length:
                self.messages.error(msg.LOGIN_FAILED_EMAIL)
                return None
            user = User.objects.filter(email__iexact=identifier).first()

        if user is None:
            self.messages.error(msg.NOT_FOUND_USER if self.config.login_accurate_errors else self._failure_message())
        return user

    def _failure_message(self):
        if not self.config.login_accurate_errors:
            return msg.LOGIN_FAILED_ALL
        if self.config.login_use_username:
            return msg.LOGIN_FAILED_USERNAME
        return msg.LOGIN_FAILED_EMAIL

    def _start_session(self, user: User) -> None:
        # New key on every login against session fixation.
        self.session.cycle_key()
        self.session[SESSION_USER_KEY] = {
            "id": user.pk,
            "username": user.username,
            "email": user.email,
            "logged_in": True,
        }
        self.session_registry.touch(self.session.session_key, user.pk)

    def login_fast(self, user_id: int) -> bool:
        """Establish a session for ``user_id`` without credentials."""
        user = User.objects.filter(pk=user_id, banned=False).first()
        if user is None:
            return False
        self._start_session(user)
        return True

    def is_logged_in(self) -> bool:
        data = self.session.get(SESSION_USER_KEY) or {}
        if data.get("logged_in"):
            return True
        user_id = self.tokens.authenticate()
        if user_id is None:
            return False
        logger.info("User %s re-authenticated from remember cookie", user_id)
        return self.login_fast(user_id)

    def logout(self) -> None:
        self.tokens.clear_cookie()
        self.session_registry.forget(self.session.session_key)
        self.session.flush()

    def generate_remember(self, user_id: int, expire: Optional[timedelta] = None) -> str:
        return self.tokens.issue(user_id, expire)


__all__ = ["AuthService", "UserService"]
