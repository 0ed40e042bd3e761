"""Tests for the Stripe webhook endpoint."""

import hashlib
import hmac
import time
import typing as t

import orjson
import pytest
from django.test.client import Client
from django.urls import reverse

from accounts.models import EcclesiaUser
from events.models import Event, Ticket, TicketType

pytestmark = pytest.mark.django_db

WEBHOOK_SECRET = "whsec_test_secret"


def _delivery(event_type: str, session: dict[str, t.Any]) -> bytes:
    return orjson.dumps(
        {"id": "evt_test", "object": "event", "type": event_type, "data": {"object": session}}
    )


def _sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def _post(payload: bytes, **headers: str) -> t.Any:
    return Client().post(reverse("api:stripe_webhook"), data=payload, content_type="application/json", **headers)


class TestSignedDeliveries:
    @pytest.fixture(autouse=True)
    def webhook_secret(self, settings: t.Any) -> None:
        settings.STRIPE_WEBHOOK_SECRET = WEBHOOK_SECRET

    def test_completed_checkout_issues_ticket(
        self, paid_event: Event, user: EcclesiaUser, make_session: t.Callable[..., dict[str, t.Any]]
    ) -> None:
        payload = _delivery("checkout.session.completed", make_session(user=user, event=paid_event))

        response = _post(payload, HTTP_STRIPE_SIGNATURE=_sign(payload))

        assert response.status_code == 200, response.content
        ticket = Ticket.objects.get(payment_id="sess_123")
        assert response.json() == {"received": True, "ticket_id": str(ticket.id)}

    def test_redelivery_is_idempotent(
        self, paid_event: Event, user: EcclesiaUser, make_session: t.Callable[..., dict[str, t.Any]]
    ) -> None:
        payload = _delivery("checkout.session.completed", make_session(user=user, event=paid_event))

        first = _post(payload, HTTP_STRIPE_SIGNATURE=_sign(payload))
        second = _post(payload, HTTP_STRIPE_SIGNATURE=_sign(payload))

        assert first.status_code == second.status_code == 200
        assert first.json()["ticket_id"] == second.json()["ticket_id"]
        assert Ticket.objects.count() == 1

    def test_missing_signature(
        self, paid_event: Event, user: EcclesiaUser, make_session: t.Callable[..., dict[str, t.Any]]
    ) -> None:
        payload = _delivery("checkout.session.completed", make_session(user=user, event=paid_event))

        response = _post(payload)

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_signature"
        assert not Ticket.objects.exists()

    def test_wrong_signature(
        self, paid_event: Event, user: EcclesiaUser, make_session: t.Callable[..., dict[str, t.Any]]
    ) -> None:
        payload = _delivery("checkout.session.completed", make_session(user=user, event=paid_event))

        response = _post(payload, HTTP_STRIPE_SIGNATURE=_sign(payload, secret="whsec_someone_else"))

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_signature"
        assert not Ticket.objects.exists()

    def test_stale_signature(
        self, paid_event: Event, user: EcclesiaUser, make_session: t.Callable[..., dict[str, t.Any]]
    ) -> None:
        payload = _delivery("checkout.session.completed", make_session(user=user, event=paid_event))

        response = _post(payload, HTTP_STRIPE_SIGNATURE=_sign(payload, timestamp=int(time.time()) - 3600))

        assert response.status_code == 400
        assert not Ticket.objects.exists()

    def test_signed_event_without_object(self) -> None:
        payload = orjson.dumps({"id": "evt_test", "object": "event", "type": "checkout.session.completed", "data": {}})

        response = _post(payload, HTTP_STRIPE_SIGNATURE=_sign(payload))

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_payload"


class TestUnsignedDeliveries:
    def test_accepted_without_secret(
        self, paid_event: Event, user: EcclesiaUser, make_session: t.Callable[..., dict[str, t.Any]]
    ) -> None:
        payload = _delivery("checkout.session.async_payment_succeeded", make_session(user=user, event=paid_event))

        response = _post(payload)

        assert response.status_code == 200
        assert Ticket.objects.filter(payment_id="sess_123").exists()

    @pytest.mark.parametrize(
        "payload",
        [
            b"not json",
            b"[]",
            b'{"type": "checkout.session.completed"}',
            b'{"type": "checkout.session.completed", "data": {}}',
            b'{"type": "checkout.session.completed", "data": "sess_123"}',
        ],
    )
    def test_malformed_payload(self, payload: bytes) -> None:
        response = _post(payload)

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_payload"

    def test_unhandled_event_type(self) -> None:
        payload = _delivery("customer.created", {"id": "cus_123", "object": "customer"})

        response = _post(payload)

        assert response.status_code == 200
        assert response.json() == {"received": True, "ticket_id": None}

    def test_unpaid_session(
        self, paid_event: Event, user: EcclesiaUser, make_session: t.Callable[..., dict[str, t.Any]]
    ) -> None:
        payload = _delivery(
            "checkout.session.completed", make_session(user=user, event=paid_event, payment_status="unpaid")
        )

        response = _post(payload)

        assert response.status_code == 200
        assert response.json()["ticket_id"] is None
        assert not Ticket.objects.exists()

    def test_reconciliation_failure_still_acknowledged(
        self,
        concert: Event,
        adult_ticket_type: TicketType,
        user: EcclesiaUser,
        make_session: t.Callable[..., dict[str, t.Any]],
    ) -> None:
        TicketType.objects.filter(pk=adult_ticket_type.pk).update(is_active=False)
        payload = _delivery(
            "checkout.session.completed", make_session(user=user, event=concert, ticket_type=adult_ticket_type)
        )

        response = _post(payload)

        assert response.status_code == 200
        assert response.json()["ticket_id"] is None
        assert not Ticket.objects.exists()

    def test_unparseable_metadata_is_rejected(
        self, paid_event: Event, user: EcclesiaUser, make_session: t.Callable[..., dict[str, t.Any]]
    ) -> None:
        payload = _delivery(
            "checkout.session.completed", make_session(user=user, event=paid_event, metadata={"note": "created by hand"})
        )

        response = _post(payload)

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_checkout_metadata"
        assert not Ticket.objects.exists()
