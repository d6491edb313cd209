"""DRF permission class gating views through ``Aauth.control``."""

from rest_framework import permissions
from rest_framework.exceptions import NotAuthenticated

from core import messages as msg
from core.aauth import AccessOutcome
from core.exceptions import TOTPRequired

# Permissions guarding the administrative API.
MANAGE_GROUPS = "manage_groups"
MANAGE_PERMS = "manage_perms"
MANAGE_USERS = "manage_users"
ADMIN_PERMISSIONS = {
    MANAGE_GROUPS: "Create, edit and delete groups, members and subgroups.",
    MANAGE_PERMS: "Create, edit and delete permissions and grants.",
    MANAGE_USERS: "List, ban and inspect other users.",
}


class AauthPermission(permissions.BasePermission):
    """Require a logged in session and the view's ``required_permission``.

    ``required_permission`` names a permission (or its id); ``None`` only
    requires login. A pending second factor is reported as ``TOTPRequired``
    and a missing login as ``NotAuthenticated`` so clients can tell the
    three refusals apart.
    """

    message = msg.NO_ACCESS

    def has_permission(self, request, view) -> bool:
        required = getattr(view, "required_permission", None)
        result = request.aauth.control(required)

        if result.outcome is AccessOutcome.TOTP_REQUIRED:
            raise TOTPRequired()
        if result.outcome is AccessOutcome.NOT_LOGGED_IN:
            raise NotAuthenticated()
        return result.allowed


__all__ = ["ADMIN_PERMISSIONS", "AauthPermission", "MANAGE_GROUPS", "MANAGE_PERMS", "MANAGE_USERS"]
