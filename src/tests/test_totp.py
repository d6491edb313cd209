"""TOTP codes and both second-factor modes (at login, or deferred to the session)."""

from __future__ import annotations

from django.test import TestCase

from authentication.totp import SESSION_FLAG, generate_code, generate_secret, matching_counter, verify_code
from core import messages as msg
from core.aauth import AccessOutcome
from tests.utils import PASSWORD, FakeRedisMixin, create_user, make_aauth, make_context

# RFC 6238 appendix B seed "12345678901234567890" in base32.
RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"


class TOTPCodeTests(TestCase):
    def test_rfc6238_vectors(self):
        self.assertEqual(generate_code(RFC_SECRET, for_time=59), "287082")
        self.assertEqual(generate_code(RFC_SECRET, for_time=1111111109), "081804")
        self.assertEqual(generate_code(RFC_SECRET, for_time=1234567890), "005924")
        self.assertEqual(generate_code(RFC_SECRET, for_time=2000000000), "279037")

    def test_verify_accepts_one_step_of_drift(self):
        now = 1_700_000_000
        previous = generate_code(RFC_SECRET, for_time=now - 30)
        stale = generate_code(RFC_SECRET, for_time=now - 90)

        self.assertTrue(verify_code(RFC_SECRET, previous, for_time=now))
        self.assertEqual(matching_counter(RFC_SECRET, previous, for_time=now), now // 30 - 1)
        self.assertFalse(verify_code(RFC_SECRET, stale, for_time=now))
        self.assertFalse(verify_code(RFC_SECRET, "", for_time=now))
        self.assertFalse(verify_code(RFC_SECRET, "abcdef", for_time=now))

    def test_generated_secrets_are_base32(self):
        secret = generate_secret()

        self.assertEqual(len(secret), 32)
        self.assertEqual(len(generate_code(secret)), 6)


class TOTPLoginTests(FakeRedisMixin, TestCase):
    """Second factor demanded with the password."""

    @classmethod
    def setUpTestData(cls):
        cls.user = create_user("totp@test.com")
        cls.plain = create_user("plain@test.com")

    def setUp(self):
        super().setUp()
        self.aauth = make_aauth(totp_enabled=True, totp_login=True)
        self.totp = self.aauth.module("totp")
        self.secret = self.totp.generate_unique_secret()
        self.totp.set_secret(self.user.pk, self.secret)

    def test_missing_and_invalid_codes(self):
        self.assertFalse(self.aauth.login("totp@test.com", PASSWORD))
        wrong = f"{(int(generate_code(self.secret)) + 500000) % 1000000:06d}"
        self.assertFalse(self.aauth.login("totp@test.com", PASSWORD, totp_code=wrong))

        self.assertEqual(
            self.aauth.messages.get_errors_array(),
            [str(msg.REQUIRED_TOTP_CODE), str(msg.INVALID_TOTP_CODE)],
        )

    def test_valid_code_logs_in_without_pending_flag(self):
        self.assertTrue(self.aauth.login("totp@test.com", PASSWORD, totp_code=generate_code(self.secret)))

        self.assertFalse(self.aauth.is_totp_required())

    def test_accepted_code_cannot_be_reused(self):
        code = generate_code(self.secret)
        self.assertTrue(self.aauth.login("totp@test.com", PASSWORD, totp_code=code))

        replay = make_aauth(totp_enabled=True, totp_login=True)
        self.assertFalse(replay.login("totp@test.com", PASSWORD, totp_code=code))
        self.assertEqual(replay.messages.get_errors_array(), [str(msg.INVALID_TOTP_CODE)])

    def test_users_without_secret_skip_the_code(self):
        self.assertTrue(self.aauth.login("plain@test.com", PASSWORD))

    def test_provisioning_uri(self):
        uri = self.totp.provisioning_uri(self.secret, "totp@test.com")

        self.assertTrue(uri.startswith("otpauth://totp/Aauth:totp%40test.com?"))
        self.assertIn(f"secret={self.secret}", uri)


class TOTPSessionTests(FakeRedisMixin, TestCase):
    """Second factor deferred to the session after a password login."""

    @classmethod
    def setUpTestData(cls):
        cls.user = create_user("deferred@test.com")

    def _login(self, **overrides):
        aauth = make_aauth(totp_enabled=True, **overrides)
        secret = aauth.module("totp").generate_unique_secret()
        aauth.module("totp").set_secret(self.user.pk, secret)
        self.assertTrue(aauth.login("deferred@test.com", PASSWORD))
        return aauth, secret

    def test_pending_flag_blocks_access_until_verified(self):
        aauth, secret = self._login()
        aauth.perms.create_perm("publish")
        aauth.perms.allow_user("publish", self.user.pk)

        self.assertTrue(aauth.context.session[SESSION_FLAG])
        self.assertFalse(aauth.is_allowed("publish"))
        result = aauth.control("publish")
        self.assertEqual(result.outcome, AccessOutcome.TOTP_REQUIRED)
        self.assertEqual(result.redirect, aauth.config.totp_link)

        totp = aauth.module("totp")
        self.assertFalse(totp.verify_session_totp("abc"))
        self.assertTrue(totp.verify_session_totp(generate_code(secret)))

        self.assertFalse(aauth.is_totp_required())
        self.assertTrue(aauth.control("publish"))

    def test_session_code_tries_share_the_login_attempt_limit(self):
        aauth, secret = self._login(login_attempt_limit=3)
        totp = aauth.module("totp")

        self.assertFalse(totp.verify_session_totp("abc"))
        self.assertFalse(totp.verify_session_totp("abc"))
        self.assertFalse(totp.verify_session_totp(generate_code(secret)))

        self.assertEqual(
            aauth.messages.get_errors_array(),
            [str(msg.INVALID_TOTP_CODE), str(msg.INVALID_TOTP_CODE), str(msg.LOGIN_ATTEMPTS_EXCEEDED)],
        )
        self.assertTrue(aauth.is_totp_required())

    def test_ip_change_mode_only_asks_from_new_addresses(self):
        aauth, _ = self._login(totp_on_ip_change=True)
        # First login: no previous address on record.
        self.assertTrue(aauth.is_totp_required())

        again = make_aauth(make_context(ip_address="127.0.0.1"), totp_enabled=True, totp_on_ip_change=True)
        self.assertTrue(again.login("deferred@test.com", PASSWORD))
        self.assertFalse(again.is_totp_required())

        moved = make_aauth(make_context(ip_address="10.1.1.1"), totp_enabled=True, totp_on_ip_change=True)
        self.assertTrue(moved.login("deferred@test.com", PASSWORD))
        self.assertTrue(moved.is_totp_required())

    def test_reset_password_can_drop_secret(self):
        aauth, _ = self._login(totp_reset_password=True)
        aauth.users.remind_password("deferred@test.com")
        user = aauth.users.get_user(self.user.pk, include_variables=True, system_variables=True)
        reset_code = next(row["data_value"] for row in user["variables"] if row["data_key"] == "reset_code")

        self.assertTrue(aauth.users.reset_password(reset_code))

        self.assertIsNone(aauth.module("totp").get_secret(self.user.pk))
