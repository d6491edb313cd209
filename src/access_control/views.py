"""Administrative endpoints for groups, permissions, grants and access checks."""

from typing import Any

from rest_framework import status
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.response import Response

from authentication.services import USER_FIELDS
from core import messages as msg
from core.messages import format_message
from core.response import BaseAPIView, api_response, error_response

from .models import PermState
from .permissions import MANAGE_GROUPS, MANAGE_PERMS, MANAGE_USERS, AauthPermission
from .serializers import (
    STATE_CHOICES,
    AccessCheckSerializer,
    GrantSerializer,
    GroupSerializer,
    MemberSerializer,
    NamedEntityWriteSerializer,
    PermissionSerializer,
    SubgroupSerializer,
)
from .services import GROUP_FIELDS, PERM_FIELDS

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def _page_payload(items: list[Any], pager) -> dict[str, Any]:
    return {
        "results": items,
        "count": pager.paginator.count,
        "page": pager.number,
        "num_pages": pager.paginator.num_pages,
    }


class AdminAPIView(BaseAPIView):
    """Base for views gated by ``AauthPermission`` with shared lookups."""

    permission_classes = [AauthPermission]
    required_permission: str | None = None

    def page_params(self, ordering_fields: tuple[str, ...] = ()) -> tuple[int, Any, str | None]:
        """``limit``, ``page`` and ``order_by``; ordering must name one of ``ordering_fields``."""
        params = self.request.query_params
        try:
            limit = int(params.get("limit", DEFAULT_PAGE_SIZE))
        except ValueError:
            limit = DEFAULT_PAGE_SIZE
        order_by = params.get("order_by") or None
        if order_by is not None and order_by.removeprefix("-") not in ordering_fields:
            raise ValidationError([format_message(msg.INVALID_ORDERING, field=order_by)])
        return min(max(limit, 1), MAX_PAGE_SIZE), params.get("page", 1), order_by

    def group_id_or_404(self, group: str) -> int:
        group_id = self.aauth.groups.get_group_id(group)
        if group_id is None:
            raise NotFound(msg.NOT_FOUND_GROUP)
        return group_id

    def perm_id_or_404(self, perm: str) -> int:
        perm_id = self.aauth.perms.get_perm_id(perm)
        if perm_id is None:
            raise NotFound(msg.NOT_FOUND_PERM)
        return perm_id

    def user_id_or_404(self, user_id: int) -> int:
        if not self.aauth.resolver.user_exists(user_id):
            raise NotFound(msg.NOT_FOUND_USER)
        return user_id


# Groups


class GroupListView(AdminAPIView):
    required_permission = MANAGE_GROUPS
    serializer_class = GroupSerializer

    def get(self, request):
        """List groups, paginated with ``limit``, ``page`` and ``order_by``."""
        limit, page, order_by = self.page_params(GROUP_FIELDS)
        result = self.aauth.groups.list_groups_paginated(limit, order_by, page)
        return api_response(_page_payload(result["groups"], result["pager"]))

    def post(self, request):
        """Create a group."""
        serializer = NamedEntityWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        group_id = self.aauth.groups.create_group(data.get("name", ""), data.get("definition", ""))
        if group_id is None:
            return error_response(self.aauth.messages.get_errors_array())
        return api_response(self.aauth.groups.get_group(group_id), status=status.HTTP_201_CREATED)


class GroupDetailView(AdminAPIView):
    required_permission = MANAGE_GROUPS
    serializer_class = GroupSerializer

    def get(self, request, group: str):
        group_id = self.group_id_or_404(group)
        payload = dict(self.aauth.groups.get_group(group_id))
        payload["subgroups"] = self.aauth.groups.get_subgroups(group_id)
        payload["variables"] = self.aauth.groups.list_group_vars(group_id)
        return api_response(payload)

    def patch(self, request, group: str):
        group_id = self.group_id_or_404(group)
        serializer = NamedEntityWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        ok = self.aauth.groups.update_group(group_id, data.get("name"), data.get("definition"))
        return self.service_response(ok, self.aauth.groups.get_group(group_id))

    def delete(self, request, group: str):
        group_id = self.group_id_or_404(group)
        if not self.aauth.groups.delete_group(group_id):
            return error_response(self.aauth.messages.get_errors_array())
        return Response(status=status.HTTP_204_NO_CONTENT)


class GroupMembersView(AdminAPIView):
    required_permission = MANAGE_GROUPS
    serializer_class = MemberSerializer

    def get(self, request, group: str):
        """Direct members of the group."""
        group_id = self.group_id_or_404(group)
        return api_response(self.aauth.users.list_users(group=group_id))

    def post(self, request, group: str):
        group_id = self.group_id_or_404(group)
        serializer = MemberSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ok = self.aauth.groups.add_member(group_id, serializer.validated_data["user_id"])
        return self.service_response(ok, status=status.HTTP_201_CREATED)


class GroupMemberDetailView(AdminAPIView):
    required_permission = MANAGE_GROUPS

    def delete(self, request, group: str, user_id: int):
        group_id = self.group_id_or_404(group)
        if not self.aauth.groups.remove_member(group_id, user_id):
            raise NotFound(msg.NOT_FOUND_USER)
        return Response(status=status.HTTP_204_NO_CONTENT)


class GroupSubgroupsView(AdminAPIView):
    required_permission = MANAGE_GROUPS
    serializer_class = SubgroupSerializer

    def get(self, request, group: str):
        """All groups, each flagged with whether it is a direct subgroup."""
        group_id = self.group_id_or_404(group)
        return api_response(self.aauth.groups.list_group_subgroups(group_id))

    def post(self, request, group: str):
        group_id = self.group_id_or_404(group)
        serializer = SubgroupSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ok = self.aauth.groups.add_subgroup(group_id, serializer.validated_data["subgroup"])
        return self.service_response(ok, status=status.HTTP_201_CREATED)


class GroupSubgroupDetailView(AdminAPIView):
    required_permission = MANAGE_GROUPS

    def delete(self, request, group: str, subgroup: str):
        group_id = self.group_id_or_404(group)
        if not self.aauth.groups.remove_subgroup(group_id, subgroup):
            raise NotFound(msg.NOT_FOUND_SUBGROUP)
        return Response(status=status.HTTP_204_NO_CONTENT)


class GroupPermsView(AdminAPIView):
    required_permission = MANAGE_PERMS
    serializer_class = GrantSerializer

    def get(self, request, group: str):
        """Every permission with this group's state: 1 allow, 0 deny, -1 none."""
        group_id = self.group_id_or_404(group)
        return api_response(self.aauth.perms.list_group_perms(group_id))

    def post(self, request, group: str):
        group_id = self.group_id_or_404(group)
        serializer = GrantSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        if STATE_CHOICES[data["state"]] == PermState.ALLOW:
            ok = self.aauth.perms.allow_group(data["perm"], group_id)
        else:
            ok = self.aauth.perms.deny_group(data["perm"], group_id)
        return self.service_response(ok, status=status.HTTP_201_CREATED)


class GroupPermDetailView(AdminAPIView):
    required_permission = MANAGE_PERMS

    def delete(self, request, group: str, perm: str):
        group_id = self.group_id_or_404(group)
        if not self.aauth.perms.remove_group_perm(perm, group_id):
            return error_response(self.aauth.messages.get_errors_array() or [str(msg.NOT_FOUND_PERM)], status.HTTP_404_NOT_FOUND)
        return Response(status=status.HTTP_204_NO_CONTENT)


# Permissions


class PermListView(AdminAPIView):
    required_permission = MANAGE_PERMS
    serializer_class = PermissionSerializer

    def get(self, request):
        limit, page, order_by = self.page_params(PERM_FIELDS)
        result = self.aauth.perms.list_perms_paginated(limit, order_by, page)
        return api_response(_page_payload(result["perms"], result["pager"]))

    def post(self, request):
        serializer = NamedEntityWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        perm_id = self.aauth.perms.create_perm(data.get("name", ""), data.get("definition", ""))
        if perm_id is None:
            return error_response(self.aauth.messages.get_errors_array())
        return api_response(self.aauth.perms.get_perm(perm_id), status=status.HTTP_201_CREATED)


class PermDetailView(AdminAPIView):
    required_permission = MANAGE_PERMS
    serializer_class = PermissionSerializer

    def get(self, request, perm: str):
        perm_id = self.perm_id_or_404(perm)
        return api_response(self.aauth.perms.get_perm(perm_id))

    def patch(self, request, perm: str):
        perm_id = self.perm_id_or_404(perm)
        serializer = NamedEntityWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        ok = self.aauth.perms.update_perm(perm_id, data.get("name"), data.get("definition"))
        return self.service_response(ok, self.aauth.perms.get_perm(perm_id))

    def delete(self, request, perm: str):
        perm_id = self.perm_id_or_404(perm)
        if not self.aauth.perms.delete_perm(perm_id):
            return error_response(self.aauth.messages.get_errors_array())
        return Response(status=status.HTTP_204_NO_CONTENT)


# Users


class UserListView(AdminAPIView):
    required_permission = MANAGE_USERS

    def get(self, request):
        """Users, optionally restricted to a ``group`` and to unbanned ones."""
        limit, page, order_by = self.page_params(USER_FIELDS)
        params = request.query_params
        group = params.get("group") or None
        if group is not None:
            group = self.group_id_or_404(group)
        include_banned = params.get("include_banned", "true").lower() != "false"
        result = self.aauth.users.list_users_paginated(group, limit, include_banned, order_by, page)
        return api_response(_page_payload(result["users"], result["pager"]))


class UserBanView(AdminAPIView):
    required_permission = MANAGE_USERS

    def post(self, request, user_id: int):
        self.user_id_or_404(user_id)
        return self.service_response(self.aauth.users.ban_user(user_id), {"banned": True})

    def delete(self, request, user_id: int):
        self.user_id_or_404(user_id)
        return self.service_response(self.aauth.users.unban_user(user_id), {"banned": False})


class UserPermsView(AdminAPIView):
    required_permission = MANAGE_PERMS
    serializer_class = GrantSerializer

    def get(self, request, user_id: int):
        """Every permission with this user's direct state: 1 allow, 0 deny, -1 none."""
        self.user_id_or_404(user_id)
        return api_response(self.aauth.perms.list_user_perms(user_id))

    def post(self, request, user_id: int):
        self.user_id_or_404(user_id)
        serializer = GrantSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        if STATE_CHOICES[data["state"]] == PermState.ALLOW:
            ok = self.aauth.perms.allow_user(data["perm"], user_id)
        else:
            ok = self.aauth.perms.deny_user(data["perm"], user_id)
        return self.service_response(ok, status=status.HTTP_201_CREATED)


class UserPermDetailView(AdminAPIView):
    required_permission = MANAGE_PERMS

    def delete(self, request, user_id: int, perm: str):
        self.user_id_or_404(user_id)
        if not self.aauth.perms.remove_user_perm(perm, user_id):
            return error_response(self.aauth.messages.get_errors_array() or [str(msg.NOT_FOUND_PERM)], status.HTTP_404_NOT_FOUND)
        return Response(status=status.HTTP_204_NO_CONTENT)


# Checks


class AccessCheckView(AdminAPIView):
    """Resolve a permission for the caller, another user or a group.

    Checking anyone but yourself needs ``manage_users``.
    """

    required_permission = None
    serializer_class = AccessCheckSerializer

    def get(self, request):
        serializer = AccessCheckSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        perm = data["perm"]
        user_id = data.get("user_id")
        group = data.get("group")

        if (group is not None or (user_id is not None and user_id != request.user.pk)) and not self.aauth.is_allowed(MANAGE_USERS):
            self.permission_denied(request, message=msg.NO_ACCESS)

        if group is not None:
            allowed = self.aauth.is_group_allowed(perm, group)
            return api_response({"perm": perm, "group": group, "allowed": allowed})

        user_id = user_id or request.user.pk
        allowed = self.aauth.is_allowed(perm, user_id)
        return api_response({"perm": perm, "user_id": user_id, "allowed": allowed})


__all__ = [
    "AccessCheckView",
    "AdminAPIView",
    "GroupDetailView",
    "GroupListView",
    "GroupMemberDetailView",
    "GroupMembersView",
    "GroupPermDetailView",
    "GroupPermsView",
    "GroupSubgroupDetailView",
    "GroupSubgroupsView",
    "PermDetailView",
    "PermListView",
    "UserBanView",
    "UserListView",
    "UserPermDetailView",
    "UserPermsView",
]
