"""Group and permission administration.

Every operation reports failures through the shared ``MessageBag`` and
returns ``False``/``None``; nothing here raises for expected conditions.
"""

import logging
from typing import Any, Optional

from django.core.paginator import Paginator
from django.db import IntegrityError, transaction
from django.db.models import Exists, IntegerField, OuterRef, Subquery, Value
from django.db.models.functions import Coalesce

from core import messages as msg
from core.conf import AauthConfig
from core.messages import MessageBag

from .models import (
    Group,
    GroupToGroup,
    GroupToUser,
    GroupVariable,
    Permission,
    PermState,
    PermToGroup,
    PermToUser,
)
from .registry import NameRegistry, Reference, normalize_name
from .resolver import PermissionResolver

logger = logging.getLogger(__name__)

GROUP_FIELDS = ("id", "name", "definition", "created_at", "updated_at")
PERM_FIELDS = ("id", "name", "definition", "created_at", "updated_at")
SUBGROUP_LISTING_FIELDS = ("id", "name", "definition", "subgroup")
MEMBERSHIP_LISTING_FIELDS = ("id", "name", "definition", "member")
STATE_LISTING_FIELDS = ("id", "name", "definition", "state")


def apply_ordering(queryset, order_by: Optional[str], fields):
    """Order by one of ``fields``, descending with a leading ``-``.

    Any other value keeps the default order.
    """
    if order_by and order_by.removeprefix("-") in fields:
        return queryset.order_by(order_by)
    return queryset


def paginate(queryset, limit: int, page: Any = 1):
    """Return ``(items, page)`` for a queryset using Django's paginator."""
    paginator = Paginator(queryset, max(limit, 1))
    page_obj = paginator.get_page(page)
    return list(page_obj.object_list), page_obj


class _NamedEntityService:
    """Shared create/update plumbing for groups and permissions."""

    model: Any = None
    required_message = None
    exists_message = None

    def __init__(self, config: AauthConfig, registry: NameRegistry, resolver: PermissionResolver, messages: MessageBag):
        self.config = config
        self.registry = registry
        self.resolver = resolver
        self.messages = messages

    def _validate_name(self, name: Optional[str], exclude_id: Optional[int] = None) -> bool:
        if name is None or not name.strip():
            self.messages.error(self.required_message)
            return False
        # Compared the way the registry keys names; soft-deleted rows keep
        # theirs reserved.
        key = normalize_name(name)
        names = self.model.all_objects.values_list("name", flat=True)
        if exclude_id is not None:
            names = names.exclude(pk=exclude_id)
        if any(normalize_name(existing) == key for existing in names):
            self.messages.error(self.exists_message)
            return False
        return True

    def _insert(self, name: str, definition: str) -> Optional[int]:
        if not self._validate_name(name):
            return None
        try:
            row = self.model.objects.create(name=name.strip(), definition=definition)
        except IntegrityError:
            self.messages.error(self.exists_message)
            return None
        return row.pk

    def _update(self, pk: int, name: Optional[str], definition: Optional[str]) -> bool:
        row = self.model.objects.get(pk=pk)
        if name is not None:
            if not self._validate_name(name, exclude_id=pk):
                return False
            row.name = name.strip()
        if definition is not None:
            row.definition = definition
        row.save()
        return True


class GroupService(_NamedEntityService):
    """Create, modify and query groups, memberships and subgroups."""

    model = Group
    required_message = msg.REQUIRED_GROUP_NAME
    exists_message = msg.EXISTS_ALREADY_GROUP

    def create_group(self, name: str, definition: str = "") -> Optional[int]:
        group_id = self._insert(name, definition)
        if group_id is not None:
            self.registry.refresh_groups()
            logger.info("Created group %s (%s)", name, group_id)
        return group_id

    def update_group(self, group: Reference, name: Optional[str] = None, definition: Optional[str] = None) -> bool:
        if name is None and definition is None:
            return True
        group_id = self.registry.get_group_id(group)
        if group_id is None:
            self.messages.error(msg.NOT_FOUND_GROUP)
            return False
        if not self._update(group_id, name, definition):
            return False
        self.registry.refresh_groups()
        return True

    def delete_group(self, group: Reference) -> bool:
        group_id = self.registry.get_group_id(group)
        if group_id is None:
            self.messages.error(msg.NOT_FOUND_GROUP)
            return False

        with transaction.atomic():
            GroupToGroup.objects.filter(group_id=group_id).delete()
            GroupToGroup.objects.filter(subgroup_id=group_id).delete()
            GroupToUser.objects.filter(group_id=group_id).delete()
            PermToGroup.objects.filter(group_id=group_id).delete()
            GroupVariable.objects.filter(group_id=group_id).delete()
            Group.objects.get(pk=group_id).remove(soft=self.config.db_soft_delete_groups)

        self.registry.refresh_groups()
        logger.info("Deleted group %s", group_id)
        return True

    # Membership

    def add_member(self, group: Reference, user_id: int) -> bool:
        group_id = self.registry.get_group_id(group)
        if group_id is None:
            self.messages.error(msg.NOT_FOUND_GROUP)
            return False
        if not self.resolver.user_exists(user_id):
            self.messages.error(msg.NOT_FOUND_USER)
            return False
        _, created = GroupToUser.objects.get_or_create(group_id=group_id, user_id=user_id)
        if not created:
            self.messages.info(msg.ALREADY_MEMBER_GROUP)
        return True

    def remove_member(self, group: Reference, user_id: int) -> bool:
        group_id = self.registry.get_group_id(group)
        if group_id is None:
            return False
        deleted, _ = GroupToUser.objects.filter(group_id=group_id, user_id=user_id).delete()
        return deleted > 0

    def remove_member_from_all(self, user_id: int) -> bool:
        GroupToUser.objects.filter(user_id=user_id).delete()
        return True

    def get_user_groups(self, user_id: Optional[int]) -> list[int]:
        return self.resolver.get_user_groups(user_id)

    # Subgroups

    def add_subgroup(self, group: Reference, subgroup: Reference) -> bool:
        group_id = self.registry.get_group_id(group)
        subgroup_id = self.registry.get_group_id(subgroup)
        if group_id is None:
            self.messages.error(msg.NOT_FOUND_GROUP)
            return False
        if subgroup_id is None:
            self.messages.error(msg.NOT_FOUND_SUBGROUP)
            return False
        if group_id == subgroup_id:
            self.messages.error(msg.SUBGROUP_SELF)
            return False
        if GroupToGroup.objects.filter(group_id=group_id, subgroup_id=subgroup_id).exists():
            self.messages.error(msg.SUBGROUP_EXISTS)
            return False
        # Refuse any edge that would close a cycle, whatever its length.
        if self.resolver.reaches(subgroup_id, group_id):
            self.messages.error(msg.SUBGROUP_CYCLE)
            return False
        GroupToGroup.objects.create(group_id=group_id, subgroup_id=subgroup_id)
        return True

    def remove_subgroup(self, group: Reference, subgroup: Reference) -> bool:
        group_id = self.registry.get_group_id(group)
        subgroup_id = self.registry.get_group_id(subgroup)
        if group_id is None or subgroup_id is None:
            return False
        deleted, _ = GroupToGroup.objects.filter(group_id=group_id, subgroup_id=subgroup_id).delete()
        return deleted > 0

    def get_subgroups(self, group: Reference) -> list[int]:
        return self.resolver.get_subgroups(group)

    def _subgroup_listing(self, group_id: int):
        is_subgroup = GroupToGroup.objects.filter(group_id=group_id, subgroup_id=OuterRef("pk"))
        return Group.objects.annotate(subgroup=Exists(is_subgroup)).values(*SUBGROUP_LISTING_FIELDS)

    def list_group_subgroups(self, group: Reference) -> list[dict]:
        """All groups, flagged with whether each is a direct subgroup of ``group``."""
        group_id = self.registry.get_group_id(group)
        if group_id is None:
            return []
        return list(self._subgroup_listing(group_id))

    def list_group_subgroups_paginated(self, group: Reference, limit: int = 10, order_by: Optional[str] = None, page=1) -> dict:
        group_id = self.registry.get_group_id(group)
        if group_id is None:
            return {}
        queryset = self._subgroup_listing(group_id)
        queryset = apply_ordering(queryset, order_by, SUBGROUP_LISTING_FIELDS)
        groups, pager = paginate(queryset, limit, page)
        return {"groups": groups, "pager": pager}

    # Listing

    def list_groups(self) -> list[dict]:
        return list(Group.objects.values(*GROUP_FIELDS))

    def list_groups_paginated(self, limit: int = 10, order_by: Optional[str] = None, page=1) -> dict:
        queryset = Group.objects.values(*GROUP_FIELDS)
        queryset = apply_ordering(queryset, order_by, GROUP_FIELDS)
        groups, pager = paginate(queryset, limit, page)
        return {"groups": groups, "pager": pager}

    def get_group(self, group: Reference) -> Optional[dict]:
        group_id = self.registry.get_group_id(group)
        if group_id is None:
            return None
        return Group.objects.filter(pk=group_id).values(*GROUP_FIELDS).first()

    def get_group_id(self, group: Reference) -> Optional[int]:
        return self.registry.get_group_id(group)

    def get_group_name(self, group_id: int) -> Optional[str]:
        return Group.objects.filter(pk=group_id).values_list("name", flat=True).first()

    def _user_group_listing(self, user_id: int):
        is_member = GroupToUser.objects.filter(user_id=user_id, group_id=OuterRef("pk"))
        return Group.objects.annotate(member=Exists(is_member)).values(*MEMBERSHIP_LISTING_FIELDS)

    def list_user_groups(self, user_id: Optional[int]) -> list[dict]:
        """All groups, flagged with whether ``user_id`` is a member."""
        if not self.resolver.user_exists(user_id):
            return []
        return list(self._user_group_listing(user_id))

    def list_user_groups_paginated(self, user_id: Optional[int], limit: int = 10, order_by: Optional[str] = None, page=1) -> dict:
        if not self.resolver.user_exists(user_id):
            return {}
        queryset = self._user_group_listing(user_id)
        queryset = apply_ordering(queryset, order_by, MEMBERSHIP_LISTING_FIELDS)
        groups, pager = paginate(queryset, limit, page)
        return {"groups": groups, "pager": pager}

    # Variables

    def set_group_var(self, key: str, value: str, group: Reference) -> bool:
        group_id = self.registry.get_group_id(group)
        if group_id is None:
            return False
        GroupVariable.objects.update_or_create(
            group_id=group_id, data_key=key, system=False, defaults={"data_value": value}
        )
        return True

    def unset_group_var(self, key: str, group: Reference) -> bool:
        group_id = self.registry.get_group_id(group)
        if group_id is None:
            return False
        deleted, _ = GroupVariable.objects.filter(group_id=group_id, data_key=key, system=False).delete()
        return deleted > 0

    def get_group_var(self, key: str, group: Reference) -> Optional[str]:
        group_id = self.registry.get_group_id(group)
        if group_id is None:
            return None
        return (
            GroupVariable.objects.filter(group_id=group_id, data_key=key, system=False)
            .values_list("data_value", flat=True)
            .first()
        )

    def list_group_vars(self, group: Reference) -> list[dict]:
        group_id = self.registry.get_group_id(group)
        if group_id is None:
            return []
        return list(
            GroupVariable.objects.filter(group_id=group_id, system=False)
            .order_by("data_key")
            .values("data_key", "data_value", "created_at", "updated_at")
        )

    def get_group_var_keys(self, group: Reference) -> list[str]:
        group_id = self.registry.get_group_id(group)
        if group_id is None:
            return []
        return list(
            GroupVariable.objects.filter(group_id=group_id, system=False)
            .order_by("data_key")
            .values_list("data_key", flat=True)
        )


class PermService(_NamedEntityService):
    """Create, modify and grant permissions."""

    model = Permission
    required_message = msg.REQUIRED_PERM_NAME
    exists_message = msg.EXISTS_ALREADY_PERM

    def create_perm(self, name: str, definition: str = "") -> Optional[int]:
        perm_id = self._insert(name, definition)
        if perm_id is not None:
            self.registry.refresh_perms()
            logger.info("Created permission %s (%s)", name, perm_id)
        return perm_id

    def update_perm(self, perm: Reference, name: Optional[str] = None, definition: Optional[str] = None) -> bool:
        if name is None and definition is None:
            return True
        perm_id = self.registry.get_perm_id(perm)
        if perm_id is None:
            self.messages.error(msg.NOT_FOUND_PERM)
            return False
        if not self._update(perm_id, name, definition):
            return False
        self.registry.refresh_perms()
        return True

    def delete_perm(self, perm: Reference) -> bool:
        perm_id = self.registry.get_perm_id(perm)
        if perm_id is None:
            self.messages.error(msg.NOT_FOUND_PERM)
            return False

        with transaction.atomic():
            PermToGroup.objects.filter(perm_id=perm_id).delete()
            PermToUser.objects.filter(perm_id=perm_id).delete()
            Permission.objects.get(pk=perm_id).remove(soft=self.config.db_soft_delete_perms)

        self.registry.refresh_perms()
        logger.info("Deleted permission %s", perm_id)
        return True

    # User grants

    def allow_user(self, perm: Reference, user_id: int) -> bool:
        return self._grant_user(perm, user_id, PermState.ALLOW)

    def deny_user(self, perm: Reference, user_id: int) -> bool:
        return self._grant_user(perm, user_id, PermState.DENY)

    def _grant_user(self, perm: Reference, user_id: int, state: PermState) -> bool:
        perm_id = self.registry.get_perm_id(perm)
        if perm_id is None:
            self.messages.error(msg.NOT_FOUND_PERM)
            return False
        if not self.resolver.user_exists(user_id):
            self.messages.error(msg.NOT_FOUND_USER)
            return False
        PermToUser.objects.update_or_create(perm_id=perm_id, user_id=user_id, defaults={"state": state})
        return True

    def remove_user_perm(self, perm: Reference, user_id: int) -> bool:
        perm_id = self.registry.get_perm_id(perm)
        if perm_id is None:
            self.messages.error(msg.NOT_FOUND_PERM)
            return False
        if not self.resolver.user_exists(user_id):
            self.messages.error(msg.NOT_FOUND_USER)
            return False
        deleted, _ = PermToUser.objects.filter(perm_id=perm_id, user_id=user_id).delete()
        return deleted > 0

    # Group grants

    def allow_group(self, perm: Reference, group: Reference) -> bool:
        return self._grant_group(perm, group, PermState.ALLOW)

    def deny_group(self, perm: Reference, group: Reference) -> bool:
        return self._grant_group(perm, group, PermState.DENY)

    def _grant_group(self, perm: Reference, group: Reference, state: PermState) -> bool:
        perm_id = self.registry.get_perm_id(perm)
        if perm_id is None:
            self.messages.error(msg.NOT_FOUND_PERM)
            return False
        group_id = self.registry.get_group_id(group)
        if group_id is None:
            self.messages.error(msg.NOT_FOUND_GROUP)
            return False
        PermToGroup.objects.update_or_create(perm_id=perm_id, group_id=group_id, defaults={"state": state})
        return True

    def remove_group_perm(self, perm: Reference, group: Reference) -> bool:
        perm_id = self.registry.get_perm_id(perm)
        if perm_id is None:
            self.messages.error(msg.NOT_FOUND_PERM)
            return False
        group_id = self.registry.get_group_id(group)
        if group_id is None:
            self.messages.error(msg.NOT_FOUND_GROUP)
            return False
        deleted, _ = PermToGroup.objects.filter(perm_id=perm_id, group_id=group_id).delete()
        return deleted > 0

    # Listing

    def list_perms(self) -> list[dict]:
        return list(Permission.objects.values(*PERM_FIELDS))

    def list_perms_paginated(self, limit: int = 10, order_by: Optional[str] = None, page=1) -> dict:
        queryset = Permission.objects.values(*PERM_FIELDS)
        queryset = apply_ordering(queryset, order_by, PERM_FIELDS)
        perms, pager = paginate(queryset, limit, page)
        return {"perms": perms, "pager": pager}

    def get_perm(self, perm: Reference) -> Optional[dict]:
        perm_id = self.registry.get_perm_id(perm)
        if perm_id is None:
            return None
        return Permission.objects.filter(pk=perm_id).values(*PERM_FIELDS).first()

    def get_perm_id(self, perm: Reference) -> Optional[int]:
        return self.registry.get_perm_id(perm)

    def get_user_perms(self, user_id: int, state: Optional[int] = None) -> list[dict]:
        """Direct grants of a user, optionally filtered to one state."""
        if not self.resolver.user_exists(user_id):
            return []
        queryset = PermToUser.objects.filter(user_id=user_id, perm__deleted_at__isnull=True)
        if state is not None:
            queryset = queryset.filter(state=state)
        return list(queryset.order_by("perm_id").values("perm_id", "state"))

    def get_group_perms(self, group: Reference, state: Optional[int] = None) -> list[dict]:
        """Direct grants of a group, optionally filtered to one state."""
        group_id = self.registry.get_group_id(group)
        if group_id is None:
            return []
        queryset = PermToGroup.objects.filter(group_id=group_id, perm__deleted_at__isnull=True)
        if state is not None:
            queryset = queryset.filter(state=state)
        return list(queryset.order_by("perm_id").values("perm_id", "state"))

    @staticmethod
    def _state_listing(grants):
        """All permissions annotated with a grant state: 1 allow, 0 deny, -1 none."""
        state = Subquery(grants.filter(perm_id=OuterRef("pk")).values("state")[:1], output_field=IntegerField())
        return Permission.objects.annotate(state=Coalesce(state, Value(-1))).values(*STATE_LISTING_FIELDS)

    def list_group_perms(self, group: Reference) -> list[dict]:
        group_id = self.registry.get_group_id(group)
        if group_id is None:
            return []
        return list(self._state_listing(PermToGroup.objects.filter(group_id=group_id)))

    def list_group_perms_paginated(self, group: Reference, limit: int = 10, order_by: Optional[str] = None, page=1) -> dict:
        group_id = self.registry.get_group_id(group)
        if group_id is None:
            return {}
        queryset = self._state_listing(PermToGroup.objects.filter(group_id=group_id))
        queryset = apply_ordering(queryset, order_by, STATE_LISTING_FIELDS)
        perms, pager = paginate(queryset, limit, page)
        return {"perms": perms, "pager": pager}

    def list_user_perms(self, user_id: Optional[int]) -> list[dict]:
        if not self.resolver.user_exists(user_id):
            return []
        return list(self._state_listing(PermToUser.objects.filter(user_id=user_id)))

    def list_user_perms_paginated(self, user_id: Optional[int], limit: int = 10, order_by: Optional[str] = None, page=1) -> dict:
        if not self.resolver.user_exists(user_id):
            return {}
        queryset = self._state_listing(PermToUser.objects.filter(user_id=user_id))
        queryset = apply_ordering(queryset, order_by, STATE_LISTING_FIELDS)
        perms, pager = paginate(queryset, limit, page)
        return {"perms": perms, "pager": pager}


__all__ = ["GroupService", "PermService", "apply_ordering", "paginate"]
