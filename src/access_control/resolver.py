"""Permission resolution over users, groups and the subgroup hierarchy.

Precedence, applied identically at every level:

1. membership in (or being) the admin group allows unconditionally;
2. an explicit deny on the subject denies;
3. an explicit allow on the subject allows;
4. otherwise a user inherits from its groups and a group from its subgroups,
   allowed as soon as one of them resolves allowed.

Subgroup traversal is a memoized depth-first search. A group that is reached
again while it is still being resolved contributes "not allowed", so cyclic
hierarchies terminate.
"""

import logging
from typing import Optional

from django.contrib.auth import get_user_model

from .models import GroupToGroup, GroupToUser, PermState, PermToGroup, PermToUser
from .registry import NameRegistry, Reference

logger = logging.getLogger(__name__)


class PermissionResolver:
    """Answer membership and permission questions for users and groups."""

    def __init__(self, registry: NameRegistry):
        self.registry = registry

    # Membership

    @staticmethod
    def user_exists(user_id: Optional[int]) -> bool:
        if not user_id:
            return False
        return get_user_model().objects.filter(pk=user_id).exists()

    def get_user_groups(self, user_id: Optional[int]) -> list[int]:
        """Ids of the live groups the user is a direct member of."""
        if not self.user_exists(user_id):
            return []
        return list(
            GroupToUser.objects.filter(user_id=user_id, group__deleted_at__isnull=True)
            .order_by("group_id")
            .values_list("group_id", flat=True)
        )

    def get_subgroups(self, group: Reference) -> list[int]:
        """Ids of the direct (one hop) live subgroups of a group."""
        group_id = self.registry.get_group_id(group)
        if group_id is None:
            return []
        return list(
            GroupToGroup.objects.filter(group_id=group_id, subgroup__deleted_at__isnull=True)
            .order_by("subgroup_id")
            .values_list("subgroup_id", flat=True)
        )

    def is_member(self, group: Reference, user_id: Optional[int]) -> bool:
        group_id = self.registry.get_group_id(group)
        if group_id is None or not user_id:
            return False
        return GroupToUser.objects.filter(group_id=group_id, user_id=user_id).exists()

    def is_admin(self, user_id: Optional[int]) -> bool:
        return self.is_member(self.registry.admin_group, user_id)

    # Permissions

    def is_allowed(self, perm: Reference, user_id: Optional[int]) -> bool:
        """Resolve ``perm`` for a user: admin, then user overrides, then groups."""
        if not self.user_exists(user_id):
            return False
        if self.is_admin(user_id):
            return True

        perm_id = self.registry.get_perm_id(perm)
        if perm_id is None:
            return False

        state = self._user_state(perm_id, user_id)
        if state is not None:
            return state == PermState.ALLOW

        memo: dict[int, bool] = {}
        for group_id in self.get_user_groups(user_id):
            if self._group_allowed(perm_id, group_id, memo, frozenset()):
                return True
        return False

    def is_group_allowed(self, perm: Reference, group: Reference) -> bool:
        """Resolve ``perm`` for a single group and its subgroups."""
        perm_id = self.registry.get_perm_id(perm)
        if perm_id is None:
            return False
        group_id = self.registry.get_group_id(group)
        if group_id is None:
            return False
        return self._group_allowed(perm_id, group_id, {}, frozenset())

    def _group_allowed(self, perm_id: int, group_id: int, memo: dict[int, bool], path: frozenset) -> bool:
        if group_id in memo:
            return memo[group_id]
        if self.registry.is_admin_group(group_id):
            memo[group_id] = True
            return True
        if group_id in path:
            logger.warning("Subgroup cycle detected through group %s", group_id)
            return False

        state = self._group_state(perm_id, group_id)
        if state is not None:
            allowed = state == PermState.ALLOW
        else:
            allowed = False
            for subgroup_id in self.get_subgroups(group_id):
                if self._group_allowed(perm_id, subgroup_id, memo, path | {group_id}):
                    allowed = True
                    break

        memo[group_id] = allowed
        return allowed

    @staticmethod
    def _user_state(perm_id: int, user_id: int) -> Optional[int]:
        # Deny is looked up first so it wins should both rows ever exist.
        states = set(PermToUser.objects.filter(perm_id=perm_id, user_id=user_id).values_list("state", flat=True))
        if PermState.DENY in states:
            return PermState.DENY
        if PermState.ALLOW in states:
            return PermState.ALLOW
        return None

    @staticmethod
    def _group_state(perm_id: int, group_id: int) -> Optional[int]:
        states = set(PermToGroup.objects.filter(perm_id=perm_id, group_id=group_id).values_list("state", flat=True))
        if PermState.DENY in states:
            return PermState.DENY
        if PermState.ALLOW in states:
            return PermState.ALLOW
        return None

    def reaches(self, group_id: int, target_id: int) -> bool:
        """True if ``target_id`` is ``group_id`` or one of its (transitive) subgroups."""
        seen: set[int] = set()
        stack = [group_id]
        while stack:
            current = stack.pop()
            if current == target_id:
                return True
            if current in seen:
                continue
            seen.add(current)
            stack.extend(
                GroupToGroup.objects.filter(group_id=current).values_list("subgroup_id", flat=True)
            )
        return False


__all__ = ["PermissionResolver"]
