"""Serializers for authentication flows (register, login, profile, codes).

Field-level checks stay shallow here; format, uniqueness and length rules
are enforced by ``UserService`` so every caller gets the same messages.
"""

from django.contrib.auth import get_user_model
from rest_framework import serializers

User = get_user_model()


class RegisterSerializer(serializers.Serializer):
    """Input for account creation."""

    email = serializers.CharField()
    password = serializers.CharField(write_only=True)
    repeat_password = serializers.CharField(write_only=True)
    username = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate(self, attrs):
        """Ensure provided passwords match before creation."""
        if attrs.get("password") != attrs.get("repeat_password"):
            raise serializers.ValidationError("Passwords do not match")
        return attrs


class LoginSerializer(serializers.Serializer):
    """Credentials plus the optional second factor and remember flag."""

    identifier = serializers.CharField(allow_blank=True)
    password = serializers.CharField(write_only=True, allow_blank=True)
    remember = serializers.BooleanField(required=False, default=False)
    totp_code = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class UserDetailSerializer(serializers.ModelSerializer):
    """Read-only user profile payload for responses."""

    class Meta:
        """Expose identity and login bookkeeping fields."""
        model = User
        fields = [
            "id",
            "email",
            "username",
            "banned",
            "last_login",
            "last_activity",
            "last_ip_address",
            "created_at",
        ]
        read_only_fields = fields


class ProfileUpdateSerializer(serializers.Serializer):
    """Patchable fields for /auth/me updates."""

    email = serializers.CharField(required=False)
    username = serializers.CharField(required=False, allow_blank=True)
    password = serializers.CharField(required=False, write_only=True)


class CodeSerializer(serializers.Serializer):
    """A verification, reset or TOTP code."""

    code = serializers.CharField()


class EmailSerializer(serializers.Serializer):
    email = serializers.CharField()


class TOTPSetupSerializer(serializers.Serializer):
    secret = serializers.CharField(read_only=True)
    provisioning_uri = serializers.CharField(read_only=True)


__all__ = [
    "CodeSerializer",
    "EmailSerializer",
    "LoginSerializer",
    "ProfileUpdateSerializer",
    "RegisterSerializer",
    "TOTPSetupSerializer",
    "UserDetailSerializer",
]
