"""Custom exception handling to enforce the API error envelope."""

from typing import Any

from django.conf import settings
from django.db import DatabaseError
from rest_framework import status
from rest_framework.exceptions import AuthenticationFailed, NotAuthenticated, PermissionDenied
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from authentication.sessions import SessionRegistryUnavailable

from . import messages as msg


class AccessDenied(PermissionDenied):
    """Raised by ``Aauth.control`` when configured to error on no access."""

    default_detail = msg.NO_ACCESS
    default_code = "no_access"


class TOTPRequired(PermissionDenied):
    """The session still owes a second-factor code."""

    default_detail = msg.REQUIRED_TOTP_CODE
    default_code = "totp_required"


def _normalize_errors(payload: Any) -> list[Any]:
    """Convert DRF's response.data into a list for the envelope."""

    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and "detail" in payload:
        # Common DRF pattern: {"detail": "..."}
        return [payload["detail"]]
    return [payload]


def custom_exception_handler(exc: Exception, context: dict[str, Any]) -> Response | None:
    """Wrap DRF errors in `{ "data": null, "errors": [...] }` shape.

    - Uses DRF's default handler to produce the base response.
    - Normalizes common auth/permission messages.
    - Optionally exposes more detailed auth errors when DEBUG_AUTH_ERRORS is enabled.
    """

    # The session registry is consulted on login and logout; losing it must
    # fail closed with 503 rather than silently skipping single-login mode.
    if isinstance(exc, SessionRegistryUnavailable):
        return Response(
            {"data": None, "errors": ["Authentication service unavailable (session registry)."]},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    # Treat database errors as a temporary service outage and still respect the
    # global envelope format instead of returning Django's HTML 500 page.
    if isinstance(exc, DatabaseError):
        return Response(
            {"data": None, "errors": ["Service temporarily unavailable."]},
            status=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    response = drf_exception_handler(exc, context)

    if response is None:
        return response

    # Normalize auth-related status codes to 401, regardless of DRF's default
    # mapping, so that AuthenticationFailed/NotAuthenticated consistently
    # produce 401 responses.
    if isinstance(exc, (AuthenticationFailed, NotAuthenticated)):
        response.status_code = status.HTTP_401_UNAUTHORIZED

    if response.status_code >= 400:
        base_errors = response.data

        if response.status_code == status.HTTP_401_UNAUTHORIZED:
            if getattr(settings, "DEBUG_AUTH_ERRORS", False):
                errors = _normalize_errors(base_errors)
            else:
                errors = ["Authentication credentials were not provided or are invalid."]
        elif isinstance(exc, TOTPRequired):
            errors = [str(msg.REQUIRED_TOTP_CODE)]
        elif response.status_code == status.HTTP_403_FORBIDDEN:
            errors = [str(msg.NO_ACCESS)]
        else:
            errors = _normalize_errors(base_errors)

        response.data = {"data": None, "errors": errors}

    return response


__all__ = ["AccessDenied", "TOTPRequired", "custom_exception_handler"]
