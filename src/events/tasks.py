"""Celery tasks for ticketing."""

import typing as t
from dataclasses import asdict

import structlog
from celery import shared_task

from events.models import Ticket
from events.service import ticket_notification_service

logger = structlog.get_logger(__name__)


@shared_task
def send_ticket_confirmation(ticket_id: str, contact_email: str | None = None) -> dict[str, t.Any]:
    """Deliver the confirmation email for a newly issued ticket."""
    ticket = Ticket.objects.full().filter(pk=ticket_id).first()
    if ticket is None:
        logger.warning("ticket_confirmation_skipped", ticket_id=ticket_id, reason="ticket_missing")
        return {"ok": False, "skipped": True}
    return asdict(ticket_notification_service.notify(ticket, contact_email=contact_email))
