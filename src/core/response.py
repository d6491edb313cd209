"""Response helpers and base classes for consistent API envelopes."""

from typing import Any, Optional

from rest_framework import status as http_status
from rest_framework.response import Response
from rest_framework.views import APIView


def api_response(data: Any, status: int = 200, infos: Optional[list[str]] = None) -> Response:
    """Return data wrapped in the standard envelope.

    All successful JSON responses should use this helper to ensure the
    `{ "data": ..., "errors": [] }` shape. Service infos ride along under
    ``infos`` when there are any.
    """

    body: dict[str, Any] = {"data": data, "errors": []}
    if infos:
        body["infos"] = list(infos)
    return Response(body, status=status)


def error_response(errors: list[str], status: int = http_status.HTTP_400_BAD_REQUEST) -> Response:
    """Envelope for failures reported through the message bag."""
    return Response({"data": None, "errors": list(errors) or ["Request failed."]}, status=status)


def _is_enveloped(payload: Any) -> bool:
    return isinstance(payload, dict) and "data" in payload and "errors" in payload


class EnvelopeMixin:
    """Mixin to wrap successful responses in the standard envelope."""

    def finalize_response(self, request, response, *args, **kwargs):  # type: ignore[override]
        """Ensure non-error responses include the `{data, errors}` envelope."""
        if hasattr(response, "data") and response.status_code and response.status_code < 400:
            if response.status_code != 204 and not _is_enveloped(response.data):
                response.data = {"data": response.data, "errors": []}
        # DRF's APIView provides finalize_response; the mixin alone doesn't.
        return super().finalize_response(request, response, *args, **kwargs)  # type: ignore[attr-defined]


class BaseAPIView(EnvelopeMixin, APIView):
    """APIView that ensures successful responses use the standard envelope."""

    @property
    def aauth(self):
        return self.request.aauth

    def service_response(self, ok: bool, data: Any = None, status: int = 200, failure_status: int = http_status.HTTP_400_BAD_REQUEST) -> Response:
        """Turn a service call's boolean result and messages into a response."""
        messages = self.aauth.messages
        if not ok:
            return error_response(messages.get_errors_array(), status=failure_status)
        return api_response(data, status=status, infos=messages.get_infos_array())


__all__ = ["BaseAPIView", "EnvelopeMixin", "api_response", "error_response"]
