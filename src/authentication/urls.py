"""URL patterns for authentication endpoints."""

from django.urls import path

from .views import (
    LoginView,
    LogoutView,
    MeView,
    RegisterView,
    RemindPasswordView,
    ResetPasswordView,
    TOTPSetupView,
    TOTPVerifyView,
    VerifyView,
)

urlpatterns = [
    path("register/", RegisterView.as_view(), name="auth-register"),
    path("login/", LoginView.as_view(), name="auth-login"),
    path("logout/", LogoutView.as_view(), name="auth-logout"),
    path("me/", MeView.as_view(), name="auth-me"),
    path("verify/", VerifyView.as_view(), name="auth-verify"),
    path("remind-password/", RemindPasswordView.as_view(), name="auth-remind-password"),
    path("reset-password/", ResetPasswordView.as_view(), name="auth-reset-password"),
    path("totp/", TOTPVerifyView.as_view(), name="auth-totp"),
    path("totp/setup/", TOTPSetupView.as_view(), name="auth-totp-setup"),
]
