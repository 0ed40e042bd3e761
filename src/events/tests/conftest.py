import typing as t
from datetime import time, timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from accounts.models import EcclesiaUser
from common.models import SiteSettings
from events.models import Event, TicketType


@pytest.fixture
def event(site_settings: SiteSettings) -> Event:
    """A free legacy event: no ticket types, a single price of zero."""
    return Event.objects.create(
        title="Sunday Service",
        date=timezone.localdate() + timedelta(days=7),
        time=time(10, 30),
        location="St Mary's, Oxford",
        price=Decimal("0"),
        available_tickets=200,
    )


@pytest.fixture
def general_ticket_type(event: Event) -> TicketType:
    return TicketType.objects.create(
        event=event,
        name="General",
        price=Decimal("0"),
        quantity_available=100,
        max_per_order=2,
    )


@pytest.fixture
def paid_event(site_settings: SiteSettings) -> Event:
    """A priced legacy event without ticket types."""
    return Event.objects.create(
        title="Harvest Supper",
        date=timezone.localdate() + timedelta(days=14),
        time=time(18, 0),
        location="Church Hall",
        price=Decimal("5.00"),
        available_tickets=50,
    )


@pytest.fixture
def concert(site_settings: SiteSettings) -> Event:
    return Event.objects.create(
        title="Advent Choir Concert",
        date=timezone.localdate() + timedelta(days=30),
        location="Cathedral",
        price=Decimal("0"),
    )


@pytest.fixture
def adult_ticket_type(concert: Event) -> TicketType:
    return TicketType.objects.create(
        event=concert,
        name="Adult",
        price=Decimal("12.50"),
        quantity_available=10,
        max_per_order=4,
    )


SessionFactory = t.Callable[..., dict[str, t.Any]]


@pytest.fixture
def make_session() -> SessionFactory:
    """Build a Stripe checkout session payload as the API returns it."""

    def _make(
        *,
        user: EcclesiaUser,
        event: Event,
        ticket_type: TicketType | None = None,
        session_id: str = "sess_123",
        quantity: int = 1,
        payment_status: str = "paid",
        amount_total: int = 1000,
        currency: str = "gbp",
        customer_email: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> dict[str, t.Any]:
        session_metadata = {
            "event_id": str(event.id),
            "event_slug": event.slug,
            "user_id": str(user.id),
            "quantity": str(quantity),
            "ticket_type_id": str(ticket_type.id) if ticket_type else "",
            "ticket_type_name": ticket_type.name if ticket_type else "",
            "event_title": event.title,
            "event_date": event.date.isoformat(),
            "event_location": event.location,
        }
        if metadata is not None:
            session_metadata = metadata
        return {
            "id": session_id,
            "object": "checkout.session",
            "payment_status": payment_status,
            "status": "complete" if payment_status == "paid" else "open",
            "amount_total": amount_total,
            "currency": currency,
            "payment_intent": f"pi_{session_id}",
            "customer_details": {"email": customer_email} if customer_email else None,
            "metadata": session_metadata,
            "url": f"https://checkout.stripe.com/c/pay/{session_id}",
        }

    return _make
