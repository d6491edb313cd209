"""Group/permission models: groups, permissions, memberships and grants."""

from django.conf import settings
from django.db import models

from core.models import SoftDeleteModel, TimestampedModel


class Group(SoftDeleteModel):
    """Named collection of users; may contain other groups as subgroups."""

    name = models.CharField(max_length=100, unique=True)
    definition = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["id"]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.name


class Permission(SoftDeleteModel):
    """Named permission that can be allowed or denied to users and groups."""

    name = models.CharField(max_length=100, unique=True)
    definition = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["id"]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.name


class GroupToUser(models.Model):
    group = models.ForeignKey(Group, on_delete=models.CASCADE, related_name="user_links")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="group_links")

    class Meta:
        unique_together = ("group", "user")

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.group_id} <- user {self.user_id}"


class GroupToGroup(models.Model):
    """Single parent -> child edge; the hierarchy is resolved at query time."""

    group = models.ForeignKey(Group, on_delete=models.CASCADE, related_name="subgroup_links")
    subgroup = models.ForeignKey(Group, on_delete=models.CASCADE, related_name="parent_links")

    class Meta:
        unique_together = ("group", "subgroup")
        constraints = [
            models.CheckConstraint(
                condition=~models.Q(group=models.F("subgroup")),
                name="group_not_own_subgroup",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.group_id} -> {self.subgroup_id}"


class PermState(models.IntegerChoices):
    DENY = 0, "deny"
    ALLOW = 1, "allow"


class PermToUser(models.Model):
    perm = models.ForeignKey(Permission, on_delete=models.CASCADE, related_name="user_grants")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="perm_grants")
    state = models.PositiveSmallIntegerField(choices=PermState.choices, default=PermState.ALLOW)

    class Meta:
        unique_together = ("perm", "user")

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.perm_id} -> user {self.user_id}: {self.get_state_display()}"


class PermToGroup(models.Model):
    perm = models.ForeignKey(Permission, on_delete=models.CASCADE, related_name="group_grants")
    group = models.ForeignKey(Group, on_delete=models.CASCADE, related_name="perm_grants")
    state = models.PositiveSmallIntegerField(choices=PermState.choices, default=PermState.ALLOW)

    class Meta:
        unique_together = ("perm", "group")

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.perm_id} -> group {self.group_id}: {self.get_state_display()}"


class GroupVariable(TimestampedModel):
    """Free-form key/value attribute attached to a group."""

    group = models.ForeignKey(Group, on_delete=models.CASCADE, related_name="variables")
    data_key = models.CharField(max_length=100)
    data_value = models.TextField(blank=True, default="")
    system = models.BooleanField(default=False)

    class Meta:
        unique_together = ("group", "data_key", "system")

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.group_id}.{self.data_key}"


__all__ = [
    "Group",
    "GroupToGroup",
    "GroupToUser",
    "GroupVariable",
    "Permission",
    "PermState",
    "PermToGroup",
    "PermToUser",
]
