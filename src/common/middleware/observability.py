"""Request-scoped logging context."""

import typing as t
import uuid

import structlog
from django.http import HttpRequest, HttpResponse


class StructlogContextMiddleware:
    """Binds request metadata to structlog's context for the life of a request.

    The context is cleared on the way in and on the way out, so identifiers bound
    while handling one request (``user_id`` from ``PurchaserJWTAuth``, say) never
    leak into the next request served by the same worker thread.
    """

    def __init__(self, get_response: t.Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        request_id = str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()

        context: dict[str, t.Any] = {
            "request_id": request_id,
            "method": request.method,
            "path": request.path,
            "ip_address": self._get_client_ip(request),
        }
        if hasattr(request, "user") and request.user.is_authenticated:
            context["user_id"] = str(request.user.pk)

        structlog.contextvars.bind_contextvars(**context)

        try:
            response = self.get_response(request)
        finally:
            structlog.contextvars.clear_contextvars()

        response["X-Request-ID"] = request_id
        return response

    def _get_client_ip(self, request: HttpRequest) -> str:
        """First hop of X-Forwarded-For when proxied, else REMOTE_ADDR."""
        x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
        if x_forwarded_for:
            return str(x_forwarded_for.split(",")[0].strip())
        return str(request.META.get("REMOTE_ADDR", "unknown"))
