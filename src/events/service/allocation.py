"""Inventory allocation.

Counters only move through single conditional UPDATE statements, so the
database row is the arbiter when two purchases race for the last ticket.
Callers run ``allocate`` in the same transaction as the ticket insert.
"""

from dataclasses import dataclass

import structlog
from django.conf import settings
from django.db.models import F
from django.db.models.functions import Greatest
from django.utils import timezone

from events.exceptions import (
    InvalidQuantityError,
    OrderLimitExceededError,
    OutOfStockError,
    TicketTypeInactiveError,
)
from events.models import Event, Ticket, TicketType

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Allocation:
    event: Event
    quantity: int
    ticket_type: TicketType | None = None
    # False when nothing was counted (legacy capacity not enforced).
    counted: bool = True


def allocate(target: TicketType | Event, quantity: int) -> Allocation:
    """Reserve ``quantity`` tickets of a ticket type or a legacy single-price event.

    Raises:
        InvalidQuantityError: quantity below one.
        OrderLimitExceededError: quantity above the per-order cap.
        TicketTypeInactiveError: the ticket type is off sale.
        OutOfStockError: not enough inventory left.
    """
    if quantity < 1:
        raise InvalidQuantityError(quantity=quantity)
    if isinstance(target, TicketType):
        return _allocate_ticket_type(target, quantity)
    return _allocate_legacy(target, quantity)


def _allocate_ticket_type(ticket_type: TicketType, quantity: int) -> Allocation:
    if not ticket_type.is_active:
        raise TicketTypeInactiveError(ticket_type_id=str(ticket_type.pk))
    if quantity > ticket_type.max_per_order:
        raise OrderLimitExceededError(
            f"You can buy at most {ticket_type.max_per_order} tickets of this type per order.",
            max_per_order=ticket_type.max_per_order,
            quantity=quantity,
        )

    updated = TicketType.objects.filter(
        pk=ticket_type.pk,
        is_active=True,
        quantity_sold__lte=F("quantity_available") - quantity,
    ).update(quantity_sold=F("quantity_sold") + quantity, updated_at=timezone.now())

    ticket_type.refresh_from_db(fields=["quantity_sold", "quantity_available", "is_active"])
    if not updated:
        if not ticket_type.is_active:
            raise TicketTypeInactiveError(ticket_type_id=str(ticket_type.pk))
        logger.info(
            "ticket_type_out_of_stock",
            ticket_type_id=str(ticket_type.pk),
            requested=quantity,
            remaining=ticket_type.quantity_remaining,
        )
        raise OutOfStockError(remaining=ticket_type.quantity_remaining, quantity=quantity)

    logger.debug("ticket_type_allocated", ticket_type_id=str(ticket_type.pk), quantity=quantity)
    return Allocation(event=ticket_type.event, quantity=quantity, ticket_type=ticket_type)


def _allocate_legacy(event: Event, quantity: int) -> Allocation:
    max_per_order = settings.TICKETING_LEGACY_MAX_PER_ORDER
    if quantity > max_per_order:
        raise OrderLimitExceededError(
            f"You can buy at most {max_per_order} tickets per order.",
            max_per_order=max_per_order,
            quantity=quantity,
        )
    if not settings.TICKETING_ENFORCE_LEGACY_CAPACITY or event.available_tickets is None:
        return Allocation(event=event, quantity=quantity, counted=False)

    updated = Event.objects.filter(pk=event.pk, available_tickets__gte=quantity).update(
        available_tickets=F("available_tickets") - quantity, updated_at=timezone.now()
    )
    event.refresh_from_db(fields=["available_tickets"])
    if not updated:
        logger.info("event_out_of_stock", event_id=str(event.pk), requested=quantity)
        raise OutOfStockError(remaining=event.available_tickets or 0, quantity=quantity)
    return Allocation(event=event, quantity=quantity)


def release(ticket: Ticket) -> None:
    """Give a cancelled ticket's inventory back. Never drives a counter below zero."""
    if ticket.ticket_type_id is not None:
        TicketType.objects.filter(pk=ticket.ticket_type_id).update(
            quantity_sold=Greatest(F("quantity_sold") - ticket.quantity, 0), updated_at=timezone.now()
        )
        logger.info("ticket_type_released", ticket_type_id=str(ticket.ticket_type_id), quantity=ticket.quantity)
        return
    if settings.TICKETING_ENFORCE_LEGACY_CAPACITY and ticket.payment_metadata.get("capacity_counted"):
        Event.objects.filter(pk=ticket.event_id, available_tickets__isnull=False).update(
            available_tickets=F("available_tickets") + ticket.quantity, updated_at=timezone.now()
        )
        logger.info("event_capacity_released", event_id=str(ticket.event_id), quantity=ticket.quantity)
