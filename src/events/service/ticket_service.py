"""Ticket issuance.

Both purchase paths end in ``issue_ticket``: the free claim builds an
``IssueRequest`` from the authenticated caller, the paid path builds one from
the checkout session metadata (see ``stripe_service``).
"""

import typing as t
from dataclasses import dataclass, field
from enum import StrEnum
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, transaction
from django.utils import timezone
from ninja_extra.exceptions import PermissionDenied

from accounts.models import EcclesiaUser
from events.exceptions import (
    InvalidQuantityError,
    NotFoundError,
    PaymentRequiredError,
    TicketNotCancellableError,
    TicketTypeRequiredError,
    UnauthenticatedError,
)
from events.models import Event, EventRegistration, Ticket, TicketType
from events.service.allocation import allocate, release
from events.service.idempotency import IdempotencyKey, PaymentKey, PurchaserKey, issue_once
from events.service.ticket_notification_service import dispatch_ticket_confirmation

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class IssueRequest:
    event: Event
    purchaser: EcclesiaUser
    quantity: int = 1
    ticket_type: TicketType | None = None
    payment_reference: str | None = None
    payment_metadata: dict[str, t.Any] = field(default_factory=dict)
    contact_email: str | None = None
    contact_name: str | None = None

    @property
    def idempotency_key(self) -> IdempotencyKey | None:
        """Payment reference for paid tickets, (event, purchaser) for legacy free ones.

        Free claims on a ticket type have no key: a purchaser may hold several.
        """
        if self.payment_reference:
            return PaymentKey(self.payment_reference)
        if self.ticket_type is None:
            return PurchaserKey(event_id=self.event.id, user_id=self.purchaser.id)
        return None


@dataclass(frozen=True)
class ReconciliationResult:
    class Outcome(StrEnum):
        CREATED = "created"
        ALREADY_PROCESSED = "already_processed"
        NOT_PAID = "not_paid"

    outcome: Outcome
    ticket: Ticket | None = None
    payment_status: str | None = None

    @property
    def ticket_id(self) -> UUID | None:
        return self.ticket.id if self.ticket else None

    @property
    def already_existed(self) -> bool:
        return self.outcome == self.Outcome.ALREADY_PROCESSED


def resolve_event(*, event_id: UUID | str | None = None, event_slug: str | None = None) -> Event:
    """Find an event by id, falling back to slug.

    Raises:
        NotFoundError: If neither identifies an event.
    """
    event = None
    if event_id:
        event = Event.objects.filter(pk=event_id).first()
    if event is None and event_slug:
        event = Event.objects.filter(slug=event_slug).first()
    if event is None:
        raise NotFoundError(event_id=str(event_id) if event_id else None, event_slug=event_slug)
    return event


def resolve_ticket_type(event: Event, ticket_type_id: UUID | str) -> TicketType:
    ticket_type = TicketType.objects.select_related("event").filter(pk=ticket_type_id, event=event).first()
    if ticket_type is None:
        raise NotFoundError("Ticket type not found.", ticket_type_id=str(ticket_type_id))
    return ticket_type


def upsert_registration(event: Event, user: EcclesiaUser) -> EventRegistration:
    """Register ``user`` for ``event``, reviving a cancelled registration."""
    registration, _ = EventRegistration.objects.update_or_create(
        event=event,
        user=user,
        defaults={"status": EventRegistration.RegistrationStatus.REGISTERED},
    )
    return registration


def _create_ticket(request: IssueRequest) -> Ticket:
    allocation = allocate(request.ticket_type or request.event, request.quantity)
    payment_metadata = dict(request.payment_metadata)
    if allocation.ticket_type is None and allocation.counted:
        payment_metadata["capacity_counted"] = True
    return Ticket.objects.create(
        event=request.event,
        ticket_type=request.ticket_type,
        user=request.purchaser,
        quantity=request.quantity,
        status=Ticket.TicketStatus.CONFIRMED,
        payment_id=request.payment_reference,
        payment_metadata=payment_metadata,
    )


def issue_ticket(request: IssueRequest) -> ReconciliationResult:
    """Issue exactly one ticket for ``request``.

    Inventory and the ticket row commit together. The registration and the
    confirmation email are ancillary: their failures are logged and never undo
    the ticket.
    """
    ticket, created = issue_once(request.idempotency_key, lambda: _create_ticket(request))
    log = logger.bind(ticket_id=str(ticket.id), event_id=str(request.event.id), user_id=str(request.purchaser.id))

    if not created:
        log.info("ticket_already_processed", payment_reference=request.payment_reference)
        return ReconciliationResult(outcome=ReconciliationResult.Outcome.ALREADY_PROCESSED, ticket=ticket)

    log.info(
        "ticket_created",
        quantity=ticket.quantity,
        ticket_type_id=str(ticket.ticket_type_id) if ticket.ticket_type_id else None,
        payment_reference=request.payment_reference,
    )

    try:
        with transaction.atomic():
            upsert_registration(request.event, request.purchaser)
    except (DatabaseError, DjangoValidationError):
        log.exception("registration_upsert_failed")

    dispatch_ticket_confirmation(ticket, contact_email=request.contact_email)
    return ReconciliationResult(outcome=ReconciliationResult.Outcome.CREATED, ticket=ticket)


def claim_free_ticket(
    *,
    purchaser: EcclesiaUser | None,
    event_id: UUID | str | None = None,
    event_slug: str | None = None,
    ticket_type_id: UUID | str | None = None,
    quantity: int = 1,
) -> ReconciliationResult:
    """Claim a free ticket.

    Events sold through ticket types need a ``ticket_type_id``; the one-ticket-
    per-person rule only applies to legacy events without ticket types.

    Raises:
        UnauthenticatedError: No authenticated purchaser.
        NotFoundError: Unknown event or ticket type.
        TicketTypeRequiredError: The event sells through ticket types and none was given.
        PaymentRequiredError: The ticket type or event is not free.
        InvalidQuantityError, OrderLimitExceededError, TicketTypeInactiveError, OutOfStockError:
            See ``allocation.allocate``.
    """
    if purchaser is None or not purchaser.is_authenticated:
        raise UnauthenticatedError()
    if quantity < 1:
        raise InvalidQuantityError(quantity=quantity)

    event = resolve_event(event_id=event_id, event_slug=event_slug)
    ticket_type = resolve_ticket_type(event, ticket_type_id) if ticket_type_id else None
    if ticket_type is None and event.has_ticket_types():
        raise TicketTypeRequiredError(event_id=str(event.id))

    price = ticket_type.price if ticket_type else event.price
    if price != 0:
        raise PaymentRequiredError(price=str(price))

    request = IssueRequest(
        event=event,
        ticket_type=ticket_type,
        purchaser=purchaser,
        quantity=quantity,
        payment_metadata={"source": "free_claim"},
        contact_email=purchaser.email or None,
        contact_name=purchaser.get_display_name(),
    )
    return issue_ticket(request)


@transaction.atomic
def cancel_ticket(*, ticket_id: UUID | str, user: EcclesiaUser) -> Ticket:
    """Cancel a holder's own ticket and give its inventory back.

    Cancelling twice is a no-op.

    Raises:
        NotFoundError: Unknown ticket.
        PermissionDenied: The ticket belongs to someone else.
        TicketNotCancellableError: Already checked in, or the event is over.
    """
    ticket = Ticket.objects.select_for_update().select_related("event").filter(pk=ticket_id).first()
    if ticket is None:
        raise NotFoundError("Ticket not found.", ticket_id=str(ticket_id))
    if ticket.user_id != user.id:
        raise PermissionDenied("You don't have permission to cancel this ticket.")
    if ticket.status == Ticket.TicketStatus.CANCELLED:
        logger.info("ticket_already_cancelled", ticket_id=str(ticket.id))
        return ticket
    if ticket.check_in_status == Ticket.CheckInStatus.CHECKED_IN:
        raise TicketNotCancellableError("Cannot cancel a ticket that has already been checked in.")
    if ticket.event.is_past():
        raise TicketNotCancellableError("Cannot cancel a ticket for a past event.")

    ticket.status = Ticket.TicketStatus.CANCELLED
    ticket.cancelled_at = timezone.now()
    ticket.save(update_fields=["status", "cancelled_at", "updated_at"])
    release(ticket)

    # Other live tickets keep the holder registered.
    if not Ticket.objects.confirmed().filter(event_id=ticket.event_id, user=user).exists():
        EventRegistration.objects.filter(event_id=ticket.event_id, user=user).update(
            status=EventRegistration.RegistrationStatus.CANCELLED, updated_at=timezone.now()
        )

    logger.info("ticket_cancelled", ticket_id=str(ticket.id), event_id=str(ticket.event_id))
    return ticket
