import typing as t

import structlog
from django.http import HttpRequest
from ninja_jwt.authentication import JWTAuth

logger = structlog.get_logger(__name__)


class PurchaserJWTAuth(JWTAuth):
    """JWT authentication that tags the request's log context with the caller.

    The identity provider issues the bearer token; once it validates, every log
    line emitted while handling the request carries ``user_id`` so support can
    trace a purchase end to end.

    Usage:
        @route.post("/claim", auth=PurchaserJWTAuth())
        def claim(self, payload): ...
    """

    def authenticate(self, request: HttpRequest, token: str) -> t.Any:
        """Authenticate the request and bind the user to structlog's context.

        Raises:
            AuthenticationFailed: If authentication fails
            InvalidToken: If the token is invalid
        """
        user = super().authenticate(request, token)
        if user is not None:
            structlog.contextvars.bind_contextvars(user_id=str(user.pk))
        return user
