"""Middleware building the per-request ``Aauth`` and resolving ``request.user``."""

import logging
from typing import Optional

from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin
from rest_framework import status

from authentication.sessions import SessionRegistryUnavailable

from .aauth import Aauth

logger = logging.getLogger(__name__)


class AauthMiddleware(MiddlewareMixin):
    """Attach ``request.aauth`` and the session (or remember-me) user.

    Must run after ``SessionMiddleware``. Cookie changes queued by the auth
    services during the request are written onto the response here.
    """

    def process_request(self, request):  # type: ignore[override]
        aauth = Aauth.for_request(request)
        request.aauth = aauth
        request.user = AnonymousUser()

        try:
            if not aauth.is_logged_in():
                return None

            user = self._get_user(aauth.current_user_id())
            if user is None:
                # Deleted or banned since the session was created.
                aauth.logout()
                return None

            aauth.session_registry.touch(request.session.session_key, user.pk)
        except SessionRegistryUnavailable:
            logger.error("Session registry unavailable")
            return _service_unavailable()

        request.user = user
        return None

    def process_response(self, request, response):  # type: ignore[override]
        aauth: Optional[Aauth] = getattr(request, "aauth", None)
        if aauth is not None:
            aauth.context.apply(response)
        return response

    @staticmethod
    def _get_user(user_id: Optional[int]):
        if not user_id:
            return None
        return get_user_model().objects.filter(pk=user_id, banned=False).first()


def _service_unavailable() -> JsonResponse:
    return JsonResponse(
        {"data": None, "errors": ["Authentication service unavailable (session registry)."]},
        status=status.HTTP_503_SERVICE_UNAVAILABLE,
    )


__all__ = ["AauthMiddleware"]
