"""Ticket confirmation delivery.

Confirmations are best effort. Nothing in this module raises past ``notify``
or ``dispatch_ticket_confirmation``: a ticket that was issued stays issued
whatever happens to the email.
"""

import typing as t
from dataclasses import dataclass

import structlog
from django.conf import settings
from django.db import transaction
from django.template.loader import render_to_string
from django.utils.module_loading import import_string
from django.utils.translation import gettext as _
from kombu.exceptions import OperationalError

from common.mail import deliver_email
from common.models import SiteSettings
from events.exceptions import NotificationFailedError
from events.models import Ticket
from events.service.tokens import build_verification_url, verification_code_for
from events.utils import qr_code_data_uri

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DeliveryResult:
    ok: bool
    message_id: str | None = None
    error: str | None = None
    skipped: bool = False


@dataclass(frozen=True)
class ConfirmationMessage:
    subject: str
    text_body: str
    html_body: str


class MessageSender(t.Protocol):
    def send(self, *, to: str, subject: str, html_body: str, text_body: str) -> DeliveryResult: ...


class DjangoEmailSender:
    """Deliver through Django's configured email backend and keep an ``EmailLog``."""

    def send(self, *, to: str, subject: str, html_body: str, text_body: str) -> DeliveryResult:
        message_id = deliver_email(to=to, subject=subject, body=text_body, html_body=html_body)
        return DeliveryResult(ok=True, message_id=message_id)


def get_message_sender() -> MessageSender:
    """Instantiate the sender named by ``TICKETING_MESSAGE_SENDER``."""
    sender_class = import_string(settings.TICKETING_MESSAGE_SENDER)
    return t.cast(MessageSender, sender_class())


def resolve_recipient(ticket: Ticket, contact_email: str | None = None) -> str | None:
    """Contact email captured at checkout first, then the account email."""
    return contact_email or ticket.user.email or None


def render_ticket_confirmation(ticket: Ticket, *, qr_data_uri: str, verification_url: str) -> ConfirmationMessage:
    event = ticket.event
    frontend_base_url = SiteSettings.get_solo().frontend_base_url.rstrip("/")
    context = {
        "holder_name": ticket.user.get_display_name() or _("Guest"),
        "event_title": event.title,
        "event_date": event.date,
        "event_time": event.time,
        "event_location": event.location,
        "event_url": f"{frontend_base_url}/events/{event.slug}",
        "ticket_type_name": ticket.ticket_type.name if ticket.ticket_type else None,
        "quantity": ticket.quantity,
        "ticket_id": str(ticket.id),
        "qr_data_uri": qr_data_uri,
        "verification_url": verification_url,
        "site_name": settings.SITE_NAME,
    }
    return ConfirmationMessage(
        subject=_("Ticket Confirmed - {event_title}").format(event_title=event.title),
        text_body=render_to_string("events/email/ticket_confirmation.txt", context),
        html_body=render_to_string("events/email/ticket_confirmation.html", context),
    )


def _deliver(ticket: Ticket, sender: MessageSender, recipient: str) -> DeliveryResult:
    _payload, code = verification_code_for(ticket)
    verification_url = build_verification_url(ticket, code=code)
    message = render_ticket_confirmation(
        ticket, qr_data_uri=qr_code_data_uri(verification_url), verification_url=verification_url
    )
    try:
        result = sender.send(
            to=recipient, subject=message.subject, html_body=message.html_body, text_body=message.text_body
        )
    except Exception as e:
        raise NotificationFailedError(str(e) or e.__class__.__name__, ticket_id=str(ticket.id)) from e
    if not result.ok:
        raise NotificationFailedError(result.error, ticket_id=str(ticket.id))
    return result


def notify(ticket: Ticket, sender: MessageSender | None = None, *, contact_email: str | None = None) -> DeliveryResult:
    """Send the confirmation for ``ticket``. Never raises."""
    recipient = resolve_recipient(ticket, contact_email)
    if not recipient:
        logger.warning("ticket_confirmation_skipped", ticket_id=str(ticket.id), reason="no_recipient")
        return DeliveryResult(ok=False, skipped=True)

    try:
        result = _deliver(ticket, sender or get_message_sender(), recipient)
    except NotificationFailedError as e:
        logger.error("ticket_confirmation_failed", ticket_id=str(ticket.id), error=e.message, exc_info=True)
        return DeliveryResult(ok=False, error=e.message)
    except Exception as e:
        logger.exception("ticket_confirmation_failed", ticket_id=str(ticket.id))
        return DeliveryResult(ok=False, error=str(e))

    logger.info("ticket_confirmation_sent", ticket_id=str(ticket.id), message_id=result.message_id)
    return result


def dispatch_ticket_confirmation(ticket: Ticket, contact_email: str | None = None) -> None:
    """Queue the confirmation once the surrounding transaction commits."""
    ticket_id = str(ticket.id)

    def enqueue() -> None:
        from events.tasks import send_ticket_confirmation

        try:
            send_ticket_confirmation.delay(ticket_id, contact_email)
        except OperationalError:
            logger.exception("ticket_confirmation_enqueue_failed", ticket_id=ticket_id)

    transaction.on_commit(enqueue, robust=True)
