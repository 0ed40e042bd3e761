import typing as t
import uuid
from unittest.mock import patch

import orjson
import pytest
import structlog
from django.http import HttpRequest, HttpResponse
from django.test import RequestFactory
from django.test.client import Client
from django.urls import reverse

from accounts.models import EcclesiaUser
from common.middleware.observability import StructlogContextMiddleware
from events.exceptions import NotFoundError


@pytest.fixture
def request_factory() -> RequestFactory:
    return RequestFactory()


@pytest.fixture(autouse=True)
def clean_context() -> t.Iterator[None]:
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


class TestStructlogContextMiddleware:
    def test_binds_request_metadata(self, request_factory: RequestFactory) -> None:
        seen: dict[str, t.Any] = {}

        def view(request: HttpRequest) -> HttpResponse:
            seen.update(structlog.contextvars.get_contextvars())
            return HttpResponse()

        response = StructlogContextMiddleware(view)(
            request_factory.post("/api/stripe/webhook", HTTP_X_FORWARDED_FOR="203.0.113.7, 10.0.0.1")
        )

        assert seen["method"] == "POST"
        assert seen["path"] == "/api/stripe/webhook"
        assert seen["ip_address"] == "203.0.113.7"
        assert response["X-Request-ID"] == seen["request_id"]

    def test_consecutive_requests_do_not_share_user(self, request_factory: RequestFactory) -> None:
        seen: list[dict[str, t.Any]] = []

        def authenticated_view(request: HttpRequest) -> HttpResponse:
            structlog.contextvars.bind_contextvars(user_id="a-purchaser")
            seen.append(structlog.contextvars.get_contextvars())
            return HttpResponse()

        def anonymous_view(request: HttpRequest) -> HttpResponse:
            seen.append(structlog.contextvars.get_contextvars())
            return HttpResponse()

        StructlogContextMiddleware(authenticated_view)(request_factory.post("/api/tickets/claim"))
        StructlogContextMiddleware(anonymous_view)(request_factory.post("/api/stripe/webhook"))

        assert seen[0]["user_id"] == "a-purchaser"
        assert "user_id" not in seen[1]
        assert seen[0]["request_id"] != seen[1]["request_id"]
        assert structlog.contextvars.get_contextvars() == {}

    def test_clears_leftover_context(self, request_factory: RequestFactory) -> None:
        structlog.contextvars.bind_contextvars(user_id="left-over", task_id="abc")
        seen: dict[str, t.Any] = {}

        def view(request: HttpRequest) -> HttpResponse:
            seen.update(structlog.contextvars.get_contextvars())
            return HttpResponse()

        StructlogContextMiddleware(view)(request_factory.get("/api/version"))

        assert "user_id" not in seen
        assert "task_id" not in seen

    def test_clears_context_when_view_raises(self, request_factory: RequestFactory) -> None:
        def view(request: HttpRequest) -> HttpResponse:
            structlog.contextvars.bind_contextvars(user_id="a-purchaser")
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            StructlogContextMiddleware(view)(request_factory.get("/api/version"))

        assert structlog.contextvars.get_contextvars() == {}


@pytest.mark.django_db
def test_webhook_after_authenticated_request_logs_without_purchaser(
    user_client: Client, user: EcclesiaUser
) -> None:
    seen: list[dict[str, t.Any]] = []

    def record_and_miss(**kwargs: t.Any) -> None:
        seen.append(structlog.contextvars.get_contextvars())
        raise NotFoundError("Ticket not found.")

    def record_and_ignore() -> None:
        seen.append(structlog.contextvars.get_contextvars())

    with patch("events.service.ticket_service.cancel_ticket", side_effect=record_and_miss):
        cancelled = user_client.post(reverse("api:cancel_ticket", kwargs={"ticket_id": uuid.uuid4()}))
    with patch("events.controllers.stripe_webhook.StripeEventHandler.handle", side_effect=record_and_ignore):
        delivered = Client().post(
            reverse("api:stripe_webhook"),
            data=orjson.dumps({"id": "evt_test", "type": "customer.created", "data": {"object": {"id": "cus_1"}}}),
            content_type="application/json",
        )

    assert cancelled.status_code == 404
    assert delivered.status_code == 200
    assert seen[0]["user_id"] == str(user.pk)
    assert "user_id" not in seen[1]
