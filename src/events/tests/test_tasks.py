import uuid

import pytest
from django.core import mail

from accounts.models import EcclesiaUser
from events.models import Event, Ticket
from events.tasks import send_ticket_confirmation

pytestmark = pytest.mark.django_db


def test_send_ticket_confirmation(event: Event, user: EcclesiaUser) -> None:
    ticket = Ticket.objects.create(event=event, user=user)

    result = send_ticket_confirmation(str(ticket.id))

    assert result["ok"] is True
    assert result["message_id"]
    assert len(mail.outbox) == 1


def test_send_ticket_confirmation_missing_ticket(site_settings: object) -> None:
    result = send_ticket_confirmation(str(uuid.uuid4()))

    assert result == {"ok": False, "skipped": True}
    assert mail.outbox == []
