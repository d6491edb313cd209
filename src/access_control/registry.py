"""In-memory name <-> id cache for groups and permissions.

The cache is loaded once per ``Aauth`` instance (one per request) and must
be refreshed explicitly after any create/update/delete of a group or
permission. Soft-deleted rows are never cached.
"""

from typing import Optional, Union

from .models import Group, Permission

Reference = Union[int, str, None]


def normalize_name(name: str) -> str:
    """Lower-case and strip all whitespace so lookups ignore formatting."""
    return "".join(name.split()).lower()


class NameRegistry:
    """Resolve group/permission references given either by id or by name."""

    def __init__(self, admin_group: str = "admin"):
        self.admin_group = admin_group
        self._group_ids: dict[str, int] = {}
        self._group_names: dict[int, str] = {}
        self._perm_ids: dict[str, int] = {}
        self._perm_names: dict[int, str] = {}
        self.refresh()

    def refresh(self) -> None:
        self.refresh_groups()
        self.refresh_perms()

    def refresh_groups(self) -> None:
        rows = Group.objects.order_by("id").values_list("id", "name")
        self._group_ids = self._index(rows)
        self._group_names = {pk: name for pk, name in rows}

    def refresh_perms(self) -> None:
        rows = Permission.objects.order_by("id").values_list("id", "name")
        self._perm_ids = self._index(rows)
        self._perm_names = {pk: name for pk, name in rows}

    @staticmethod
    def _index(rows) -> dict[str, int]:
        # The oldest row keeps a normalized name if rows ever collide.
        ids: dict[str, int] = {}
        for pk, name in rows:
            ids.setdefault(normalize_name(name), pk)
        return ids

    def get_group_id(self, group: Reference) -> Optional[int]:
        return self._lookup(group, self._group_ids, self._group_names)

    def get_perm_id(self, perm: Reference) -> Optional[int]:
        return self._lookup(perm, self._perm_ids, self._perm_names)

    def get_group_name(self, group_id: int) -> Optional[str]:
        return self._group_names.get(group_id)

    def get_perm_name(self, perm_id: int) -> Optional[str]:
        return self._perm_names.get(perm_id)

    def is_admin_group(self, group: Reference) -> bool:
        group_id = self.get_group_id(group)
        if group_id is None:
            return False
        return self._group_names[group_id].casefold() == self.admin_group.casefold()

    @staticmethod
    def _lookup(reference: Reference, ids: dict[str, int], names: dict[int, str]) -> Optional[int]:
        if reference is None or isinstance(reference, bool):
            return None
        if isinstance(reference, int):
            return reference if reference in names else None
        if reference.strip().isdigit():
            pk = int(reference)
            if pk in names:
                return pk
        return ids.get(normalize_name(reference))


__all__ = ["NameRegistry", "normalize_name"]
