"""Login state machine, remember-me cookie, attempt throttling and access control."""

from __future__ import annotations

from datetime import timedelta

from django.test import TestCase
from django.utils import timezone

from access_control.models import Permission
from authentication.models import LoginAttempt, LoginToken, User
from authentication.services import SESSION_USER_KEY
from authentication.tokens import RememberTokenService
from core import messages as msg
from core.aauth import AccessOutcome
from core.exceptions import AccessDenied
from tests.utils import PASSWORD, FakeRedisMixin, create_user, make_aauth, make_context, new_session


class LoginTests(FakeRedisMixin, TestCase):
    """Credential checks and session establishment."""

    @classmethod
    def setUpTestData(cls):
        cls.user = create_user("login@test.com", username="loginuser")

    def test_successful_login_starts_session(self):
        aauth = make_aauth()

        self.assertTrue(aauth.login("login@test.com", PASSWORD))

        self.assertTrue(aauth.is_logged_in())
        self.assertEqual(aauth.current_user_id(), self.user.pk)
        self.assertEqual(aauth.context.session[SESSION_USER_KEY]["email"], "login@test.com")
        self.user.refresh_from_db()
        self.assertIsNotNone(self.user.last_login)
        self.assertEqual(self.user.last_ip_address, "127.0.0.1")
        self.assertEqual(self.fake_redis.get(f"aauth:active:{aauth.context.session.session_key}"), str(self.user.pk))

    def test_wrong_password_gives_generic_error(self):
        aauth = make_aauth()

        self.assertFalse(aauth.login("login@test.com", "WrongPass1"))

        self.assertFalse(aauth.is_logged_in())
        self.assertEqual(aauth.messages.get_errors_array(), [str(msg.LOGIN_FAILED_ALL)])

    def test_accurate_errors(self):
        aauth = make_aauth(login_accurate_errors=True)

        self.assertFalse(aauth.login("missing@test.com", PASSWORD))
        self.assertFalse(aauth.login("login@test.com", "WrongPass1"))

        self.assertEqual(
            aauth.messages.get_errors_array(),
            [str(msg.NOT_FOUND_USER), str(msg.LOGIN_FAILED_EMAIL)],
        )

    def test_malformed_identifier_or_password_length(self):
        aauth = make_aauth()

        self.assertFalse(aauth.login("not-an-email", PASSWORD))
        self.assertFalse(aauth.login("login@test.com", "short"))

        self.assertEqual(aauth.messages.get_errors_array(), [str(msg.LOGIN_FAILED_EMAIL)] * 2)

    def test_login_with_username(self):
        aauth = make_aauth(login_use_username=True)

        self.assertTrue(aauth.login("loginuser", PASSWORD))
        self.assertEqual(aauth.current_user_id(), self.user.pk)

    def test_banned_user_cannot_log_in(self):
        User.objects.filter(pk=self.user.pk).update(banned=True)
        aauth = make_aauth()

        self.assertFalse(aauth.login("login@test.com", PASSWORD))
        self.assertEqual(aauth.messages.get_errors_array(), [str(msg.INVALID_USER_BANNED)])

    def test_unverified_user_cannot_log_in(self):
        aauth = make_aauth()
        aauth.users.send_verification(self.user.pk, self.user.email)

        self.assertFalse(aauth.login("login@test.com", PASSWORD))
        self.assertEqual(aauth.messages.get_errors_array(), [str(msg.NOT_VERIFIED)])

    def test_login_rotates_session_key(self):
        session = new_session()
        session["seed"] = True
        session.save()
        old_key = session.session_key
        aauth = make_aauth(make_context(session=session))

        aauth.login("login@test.com", PASSWORD)

        self.assertNotEqual(aauth.context.session.session_key, old_key)

    def test_logout_clears_session_and_cookie(self):
        aauth = make_aauth()
        aauth.login("login@test.com", PASSWORD, remember=True)
        session_key = aauth.context.session.session_key

        aauth.logout()

        self.assertFalse(aauth.is_logged_in())
        self.assertIsNone(aauth.context.get_cookie("remember"))
        self.assertIsNone(self.fake_redis.get(f"aauth:active:{session_key}"))

    def test_login_fast(self):
        aauth = make_aauth()

        self.assertTrue(aauth.auth.login_fast(self.user.pk))
        self.assertEqual(aauth.current_user_id(), self.user.pk)
        self.assertFalse(make_aauth().auth.login_fast(999999))

    def test_single_mode_drops_other_sessions(self):
        first = make_aauth(login_single_mode=True)
        first.login("login@test.com", PASSWORD, remember=True)
        first.context.session.save()
        first_key = first.context.session.session_key

        second = make_aauth(login_single_mode=True)
        self.assertTrue(second.login("login@test.com", PASSWORD))

        self.assertFalse(new_session().exists(first_key))
        self.assertIsNone(self.fake_redis.get(f"aauth:active:{first_key}"))
        self.assertFalse(LoginToken.objects.filter(user=self.user).exists())


class RememberTokenTests(FakeRedisMixin, TestCase):
    """Silent re-authentication from the remember cookie."""

    @classmethod
    def setUpTestData(cls):
        cls.user = create_user("remember@test.com")

    def _remember_cookie(self) -> str:
        aauth = make_aauth()
        aauth.login("remember@test.com", PASSWORD, remember=True)
        return aauth.context.get_cookie("remember")

    def test_cookie_logs_in_fresh_session(self):
        cookie = self._remember_cookie()
        token = LoginToken.objects.get(user=self.user)
        token.expires_at = timezone.now() + timedelta(minutes=1)
        token.save()

        aauth = make_aauth(make_context(cookies={"remember": cookie}))

        self.assertTrue(aauth.is_logged_in())
        self.assertEqual(aauth.current_user_id(), self.user.pk)
        token.refresh_from_db()
        self.assertGreater(token.expires_at, timezone.now() + timedelta(days=13))

    def test_expired_token_is_purged(self):
        cookie = self._remember_cookie()
        LoginToken.objects.filter(user=self.user).update(expires_at=timezone.now() - timedelta(seconds=1))

        aauth = make_aauth(make_context(cookies={"remember": cookie}))

        self.assertFalse(aauth.is_logged_in())
        self.assertFalse(LoginToken.objects.filter(user=self.user).exists())
        self.assertIsNone(aauth.context.get_cookie("remember"))

    def test_tampered_or_unknown_cookie_is_ignored(self):
        cookie = self._remember_cookie()
        forged = RememberTokenService.encode(self.user.pk, "x" * 32, "y" * 16)

        self.assertFalse(make_aauth(make_context(cookies={"remember": cookie + "x"})).is_logged_in())
        self.assertFalse(make_aauth(make_context(cookies={"remember": forged})).is_logged_in())

    def test_banned_user_cookie_does_not_log_in(self):
        cookie = self._remember_cookie()
        User.objects.filter(pk=self.user.pk).update(banned=True)

        self.assertFalse(make_aauth(make_context(cookies={"remember": cookie})).is_logged_in())

    def test_decode_rejects_wrong_shapes(self):
        self.assertIsNone(RememberTokenService.decode("garbage"))
        self.assertIsNone(RememberTokenService.decode(RememberTokenService.encode(1, "short", "y" * 16)))
        self.assertEqual(
            RememberTokenService.decode(RememberTokenService.encode(7, "x" * 32, "y" * 16)),
            (7, "x" * 32, "y" * 16),
        )


class LoginAttemptTests(FakeRedisMixin, TestCase):
    """Failed-login throttling per client."""

    @classmethod
    def setUpTestData(cls):
        cls.user = create_user("throttle@test.com")

    def test_database_counter_locks_after_limit(self):
        aauth = make_aauth(login_attempt_limit=3)

        self.assertFalse(aauth.login("throttle@test.com", "WrongPass1"))
        self.assertFalse(aauth.login("throttle@test.com", "WrongPass1"))
        self.assertFalse(aauth.login("throttle@test.com", PASSWORD))

        self.assertEqual(aauth.messages.get_errors_array()[-1], str(msg.LOGIN_ATTEMPTS_EXCEEDED))
        self.assertEqual(aauth.auth.attempts.find_login(), 3)
        # Another client is unaffected.
        other = make_aauth(make_context(ip_address="10.0.0.2"), login_attempt_limit=3)
        self.assertTrue(other.login("throttle@test.com", PASSWORD))

    def test_successful_login_resets_counter(self):
        aauth = make_aauth(login_attempt_limit=3)
        aauth.login("throttle@test.com", "WrongPass1")

        self.assertTrue(aauth.login("throttle@test.com", PASSWORD))

        self.assertFalse(LoginAttempt.objects.exists())

    def test_old_attempts_fall_out_of_window(self):
        aauth = make_aauth(login_attempt_limit=3)
        aauth.login("throttle@test.com", "WrongPass1")
        aauth.login("throttle@test.com", "WrongPass1")
        LoginAttempt.objects.update(updated_at=timezone.now() - timedelta(minutes=10))

        self.assertEqual(aauth.auth.attempts.find_login(), 0)
        self.assertTrue(aauth.login("throttle@test.com", PASSWORD))

    def test_cookie_counter(self):
        aauth = make_aauth(login_attempt_limit=3, login_attempt_cookie="attempts")

        aauth.login("throttle@test.com", "WrongPass1")
        aauth.login("throttle@test.com", "WrongPass1")

        self.assertEqual(aauth.context.get_cookie("attempts"), "2")
        self.assertFalse(LoginAttempt.objects.exists())
        self.assertFalse(aauth.login("throttle@test.com", PASSWORD))


class ControlTests(FakeRedisMixin, TestCase):
    """``Aauth.control`` outcomes."""

    @classmethod
    def setUpTestData(cls):
        cls.user = create_user("control@test.com")
        Permission.objects.create(name="publish")

    def _logged_in(self, **overrides):
        aauth = make_aauth(**overrides)
        aauth.login("control@test.com", PASSWORD)
        return aauth

    def test_anonymous_is_not_logged_in(self):
        result = make_aauth(link_no_permission="/login").control()

        self.assertEqual(result.outcome, AccessOutcome.NOT_LOGGED_IN)
        self.assertEqual(result.redirect, "/login")
        self.assertFalse(result)

    def test_error_mode_raises(self):
        with self.assertRaises(AccessDenied):
            make_aauth(link_no_permission="error").control()

    def test_logged_in_without_and_with_permission(self):
        aauth = self._logged_in()

        self.assertEqual(aauth.control().outcome, AccessOutcome.ALLOWED)
        self.assertEqual(aauth.control("publish").outcome, AccessOutcome.DENIED)
        self.assertEqual(aauth.control("unknown").outcome, AccessOutcome.DENIED)

        aauth.perms.allow_user("publish", self.user.pk)
        self.assertTrue(aauth.control("publish"))
        self.user.refresh_from_db()
        self.assertIsNotNone(self.user.last_activity)

    def test_group_allowed_without_group_uses_public_and_own_groups(self):
        aauth = self._logged_in()
        aauth.groups.create_group("public")
        aauth.groups.create_group("staff")
        aauth.groups.add_member("staff", self.user.pk)

        self.assertFalse(aauth.is_group_allowed("publish"))
        aauth.perms.allow_group("publish", "staff")
        self.assertTrue(aauth.is_group_allowed("publish"))

        anonymous = make_aauth()
        self.assertFalse(anonymous.is_group_allowed("publish"))
        anonymous.perms.allow_group("publish", "public")
        self.assertTrue(anonymous.is_group_allowed("publish"))
