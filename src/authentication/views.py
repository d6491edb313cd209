"""Authentication endpoints: register, login, logout, profile, codes and TOTP."""

from typing import Any

from django.contrib.auth import get_user_model
from rest_framework import status
from rest_framework.exceptions import NotAuthenticated, NotFound
from rest_framework.response import Response

from access_control.permissions import AauthPermission
from core.response import BaseAPIView, api_response, error_response
from .serializers import (
    CodeSerializer,
    EmailSerializer,
    LoginSerializer,
    ProfileUpdateSerializer,
    RegisterSerializer,
    TOTPSetupSerializer,
    UserDetailSerializer,
)

User = get_user_model()


class RegisterView(BaseAPIView):
    permission_classes: list[Any] = []
    serializer_class = RegisterSerializer

    def post(self, request):
        """Create an account; infos say whether verification mail went out."""
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        user_id = self.aauth.users.create_user(data["email"], data["password"], data.get("username") or None)
        if user_id is None:
            return error_response(self.aauth.messages.get_errors_array())
        user = User.objects.get(pk=user_id)
        return self.service_response(True, UserDetailSerializer(user).data, status=status.HTTP_201_CREATED)


class LoginView(BaseAPIView):
    permission_classes: list[Any] = []
    serializer_class = LoginSerializer

    def post(self, request):
        """Log in with the session; optionally set the remember-me cookie."""
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        captcha = self.aauth.module("captcha")
        captcha_response = request.data.get(captcha.response_field) if captcha is not None else None

        ok = self.aauth.login(
            data["identifier"],
            data["password"],
            remember=data["remember"],
            totp_code=data.get("totp_code") or None,
            captcha_response=captcha_response,
        )
        if not ok:
            return error_response(self.aauth.messages.get_errors_array(), status=status.HTTP_401_UNAUTHORIZED)

        user = User.objects.get(pk=self.aauth.current_user_id())
        payload = dict(UserDetailSerializer(user).data)
        payload["totp_required"] = self.aauth.is_totp_required()
        return api_response(payload)


class LogoutView(BaseAPIView):
    """Drop the session and the remember-me cookie."""

    permission_classes: list[Any] = []

    def post(self, request):
        """Log out and return 204 No Content."""
        self.aauth.logout()
        # 204 responses must not include a body.
        return Response(status=status.HTTP_204_NO_CONTENT)


class MeView(BaseAPIView):
    permission_classes = [AauthPermission]
    required_permission = None
    serializer_class = UserDetailSerializer

    def get(self, request):
        """Return the current user's profile."""
        return api_response(UserDetailSerializer(request.user).data)

    def patch(self, request):
        """Update e-mail, username or password of the current user."""
        serializer = ProfileUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        ok = self.aauth.users.update_user(
            request.user.pk,
            email=data.get("email"),
            password=data.get("password"),
            username=data.get("username"),
        )
        request.user.refresh_from_db()
        return self.service_response(ok, UserDetailSerializer(request.user).data)

    def delete(self, request):
        """Delete the current user's account and log out."""
        self.aauth.users.delete_user(request.user.pk)
        self.aauth.logout()
        return Response(status=status.HTTP_204_NO_CONTENT)


class VerifyView(BaseAPIView):
    permission_classes: list[Any] = []
    serializer_class = CodeSerializer

    def post(self, request):
        """Confirm an account with the code from the verification mail."""
        serializer = CodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ok = self.aauth.users.verify_user(serializer.validated_data["code"])
        return self.service_response(ok)


class RemindPasswordView(BaseAPIView):
    permission_classes: list[Any] = []
    serializer_class = EmailSerializer

    def post(self, request):
        """Mail a password reset code to the account's address."""
        serializer = EmailSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ok = self.aauth.users.remind_password(serializer.validated_data["email"])
        return self.service_response(ok)


class ResetPasswordView(BaseAPIView):
    permission_classes: list[Any] = []
    serializer_class = CodeSerializer

    def post(self, request):
        """Exchange a reset code for a new mailed password."""
        serializer = CodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ok = self.aauth.users.reset_password(serializer.validated_data["code"])
        return self.service_response(ok)


class TOTPVerifyView(BaseAPIView):
    """Satisfy a session's pending second factor."""

    permission_classes: list[Any] = []
    serializer_class = CodeSerializer

    def post(self, request):
        totp = self.aauth.module("totp")
        if totp is None:
            raise NotFound("Two-factor authentication is not enabled.")
        if not self.aauth.is_logged_in():
            raise NotAuthenticated()
        serializer = CodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ok = totp.verify_session_totp(serializer.validated_data["code"])
        return self.service_response(ok, {"totp_required": totp.is_totp_required()})


class TOTPSetupView(BaseAPIView):
    """Create or remove the current user's TOTP secret."""

    permission_classes = [AauthPermission]
    required_permission = None
    serializer_class = TOTPSetupSerializer

    def _module(self):
        totp = self.aauth.module("totp")
        if totp is None:
            raise NotFound("Two-factor authentication is not enabled.")
        return totp

    def post(self, request):
        totp = self._module()
        secret = totp.generate_unique_secret()
        totp.set_secret(request.user.pk, secret)
        data = {"secret": secret, "provisioning_uri": totp.provisioning_uri(secret, request.user.email)}
        return api_response(data, status=status.HTTP_201_CREATED)

    def delete(self, request):
        self._module().remove_secret(request.user.pk)
        return Response(status=status.HTTP_204_NO_CONTENT)


__all__ = [
    "LoginView",
    "LogoutView",
    "MeView",
    "RegisterView",
    "RemindPasswordView",
    "ResetPasswordView",
    "TOTPSetupView",
    "TOTPVerifyView",
    "VerifyView",
]
