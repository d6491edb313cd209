"""Serializers for group and permission administration."""

from rest_framework import serializers

from .models import Group, Permission, PermState

STATE_CHOICES = {"allow": PermState.ALLOW, "deny": PermState.DENY}


class GroupSerializer(serializers.ModelSerializer):
    class Meta:
        model = Group
        fields = ["id", "name", "definition", "created_at", "updated_at"]
        read_only_fields = fields


class PermissionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Permission
        fields = ["id", "name", "definition", "created_at", "updated_at"]
        read_only_fields = fields


class NamedEntityWriteSerializer(serializers.Serializer):
    """Create or rename a group/permission.

    Uniqueness and blank-name checks are left to the services so the API
    reports the same messages as direct callers get.
    """

    name = serializers.CharField(required=False, allow_blank=True)
    definition = serializers.CharField(required=False, allow_blank=True)


class MemberSerializer(serializers.Serializer):
    user_id = serializers.IntegerField(min_value=1)


class SubgroupSerializer(serializers.Serializer):
    subgroup = serializers.CharField(help_text="Subgroup id or name.")


class GrantSerializer(serializers.Serializer):
    """Allow or deny a permission to the subject in the URL."""

    perm = serializers.CharField(help_text="Permission id or name.")
    state = serializers.ChoiceField(choices=list(STATE_CHOICES), default="allow")


class AccessCheckSerializer(serializers.Serializer):
    perm = serializers.CharField()
    user_id = serializers.IntegerField(required=False, min_value=1)
    group = serializers.CharField(required=False)


__all__ = [
    "AccessCheckSerializer",
    "GrantSerializer",
    "GroupSerializer",
    "MemberSerializer",
    "NamedEntityWriteSerializer",
    "PermissionSerializer",
    "STATE_CHOICES",
    "SubgroupSerializer",
]
