"""User-facing message catalogue and the error/info accumulator."""

from typing import Sequence, Union

from django.utils.translation import gettext_lazy as _

# Errors
LOGIN_ATTEMPTS_EXCEEDED = _("You have exceeded your login attempts, your account has now been locked.")
INVALID_CAPTCHA = _("The CAPTCHA response is invalid.")
LOGIN_FAILED_EMAIL = _("Email and password do not match.")
LOGIN_FAILED_USERNAME = _("Username and password do not match.")
LOGIN_FAILED_ALL = _("Email, username or password do not match.")
NOT_FOUND_USER = _("User does not exist.")
NOT_FOUND_GROUP = _("Group does not exist.")
NOT_FOUND_SUBGROUP = _("Subgroup does not exist.")
NOT_FOUND_PERM = _("Permission does not exist.")
NOT_VERIFIED = _("Please verify your account.")
INVALID_USER_BANNED = _("This user is banned, please contact the system administrator.")
REQUIRED_TOTP_CODE = _("A two-factor authentication code is required.")
INVALID_TOTP_CODE = _("The two-factor authentication code is invalid.")
INVALID_VERIFICATION_CODE = _("Invalid verification code.")
NO_ACCESS = _("Sorry, you do not have access to the resource you requested.")
SUBGROUP_SELF = _("A group cannot be its own subgroup.")
SUBGROUP_EXISTS = _("This group is already a subgroup.")
SUBGROUP_CYCLE = _("The subgroup already contains this group.")

# Validation
REQUIRED_EMAIL = _("Email address is required.")
INVALID_EMAIL = _("Email address is not valid.")
EXISTS_ALREADY_EMAIL = _("Email address already exists.")
INVALID_USERNAME = _("Username contains invalid characters.")
EXISTS_ALREADY_USERNAME = _("Username already exists.")
PASSWORD_MIN_LENGTH = _("Password must be at least %(min)d characters long.")
PASSWORD_MAX_LENGTH = _("Password must not exceed %(max)d characters.")
REQUIRED_GROUP_NAME = _("Group name is required.")
EXISTS_ALREADY_GROUP = _("Group name already exists.")
REQUIRED_PERM_NAME = _("Permission name is required.")
EXISTS_ALREADY_PERM = _("Permission name already exists.")
INVALID_ORDERING = _("Cannot order by '%(field)s'.")

# Infos
INFO_CREATE_SUCCESS = _("Your account has successfully been created. You can now login.")
INFO_CREATE_VERIFICATION = _("Your account has successfully been created. A verification email has been sent.")
INFO_UPDATE_SUCCESS = _("Your account has successfully updated.")
INFO_VERIFICATION = _("Your account has been verified successfully, you can now login.")
INFO_REMIND_SUCCESS = _("A password reset email has been sent.")
INFO_RESET_SUCCESS = _("A new password has been sent to your email address.")
ALREADY_MEMBER_GROUP = _("User is already member of group.")

# Mail subjects
SUBJECT_VERIFICATION = _("Account Verification")
SUBJECT_RESET = _("Reset Password")
SUBJECT_RESET_SUCCESS = _("Successful Password Reset")

Message = Union[str, Sequence[str]]


class MessageBag:
    """Collect errors and infos for the current request.

    Messages can also be promoted to session flash data so they survive one
    redirect, mirroring a classic server-rendered login flow.
    """

    ERRORS_KEY = "errors"
    INFOS_KEY = "infos"

    def __init__(self, session=None):
        self.session = session
        self.errors: list[str] = []
        self.infos: list[str] = []
        self._flash: dict[str, list[str]] = {self.ERRORS_KEY: [], self.INFOS_KEY: []}
        # Flash data lives exactly one request: take what the previous one left.
        self._previous: dict[str, list[str]] = {self.ERRORS_KEY: [], self.INFOS_KEY: []}
        if session is not None:
            for key in self._previous:
                self._previous[key] = list(session.pop(self._session_key(key), []))

    def error(self, message: Message, flashdata: bool = False) -> None:
        self._add(self.errors, self.ERRORS_KEY, message, flashdata)

    def info(self, message: Message, flashdata: bool = False) -> None:
        self._add(self.infos, self.INFOS_KEY, message, flashdata)

    def _add(self, target: list[str], key: str, message: Message, flashdata: bool) -> None:
        if isinstance(message, (list, tuple)):
            items = [str(item) for item in message]
        else:
            items = [str(message)]
        target.extend(items)
        if flashdata:
            self._flash[key].extend(items)
            self._write_flash(key, self._flash[key])

    def keep_errors(self, include_non_flash: bool = False) -> None:
        """Carry flash errors over one more request."""
        self._keep(self.ERRORS_KEY, self.errors, include_non_flash)

    def keep_infos(self, include_non_flash: bool = False) -> None:
        """Carry flash infos over one more request."""
        self._keep(self.INFOS_KEY, self.infos, include_non_flash)

    def _keep(self, key: str, current: list[str], include_non_flash: bool) -> None:
        previous = self.flashed(key)
        if include_non_flash:
            self._flash[key] = previous + current
        else:
            self._flash[key] = previous
        self._write_flash(key, self._flash[key])

    def flashed(self, key: str) -> list[str]:
        """Return flash messages stored by the previous request."""
        return list(self._previous[key])

    def get_errors_array(self) -> list[str]:
        return list(self.errors)

    def get_infos_array(self) -> list[str]:
        return list(self.infos)

    def print_errors(self, divider: str = "<br />") -> str:
        return divider.join(self.errors)

    def print_infos(self, divider: str = "<br />") -> str:
        return divider.join(self.infos)

    def clear_errors(self) -> None:
        self._clear(self.ERRORS_KEY)
        self.errors = []

    def clear_infos(self) -> None:
        self._clear(self.INFOS_KEY)
        self.infos = []

    def _clear(self, key: str) -> None:
        self._flash[key] = []
        if self.session is not None:
            self.session.pop(self._session_key(key), None)

    def _write_flash(self, key: str, values: list[str]) -> None:
        if self.session is not None:
            self.session[self._session_key(key)] = list(values)

    @staticmethod
    def _session_key(key: str) -> str:
        return f"_flash_{key}"


def format_message(message, **params) -> str:
    """Interpolate a catalogue message with ``%(name)`` parameters."""
    text = str(message)
    return text % params if params else text


__all__ = ["MessageBag", "format_message"]
