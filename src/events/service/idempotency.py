"""Exactly-once ticket issuance.

Two keys identify a ticket that must not be issued twice: the payment
reference of a paid purchase, and the (event, purchaser) pair of a free claim
on an event without ticket types. The lookup here is the fast path; the
partial unique constraints on ``Ticket`` are what actually hold under
concurrent invocations, and ``issue_once`` turns a lost race into the same
answer the lookup would have given.
"""

import typing as t
from dataclasses import dataclass
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import QuerySet

from events.models import Ticket

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PaymentKey:
    reference: str


@dataclass(frozen=True)
class PurchaserKey:
    event_id: UUID
    user_id: UUID


IdempotencyKey = PaymentKey | PurchaserKey


@dataclass(frozen=True)
class IdempotencyOutcome:
    ticket: Ticket | None = None

    @property
    def already_processed(self) -> bool:
        return self.ticket is not None


def _matching_tickets(key: IdempotencyKey) -> QuerySet[Ticket]:
    if isinstance(key, PaymentKey):
        # A payment maps to one ticket for good, even after it is cancelled.
        return Ticket.objects.filter(payment_id=key.reference)
    return Ticket.objects.confirmed().filter(
        event_id=key.event_id,
        user_id=key.user_id,
        ticket_type__isnull=True,
        payment_id__isnull=True,
    )


def ensure_not_duplicate(key: IdempotencyKey) -> IdempotencyOutcome:
    """Look up the ticket already issued for ``key``, if any."""
    ticket = _matching_tickets(key).order_by("created_at").first()
    return IdempotencyOutcome(ticket=ticket)


def issue_once(key: IdempotencyKey | None, create: t.Callable[[], Ticket]) -> tuple[Ticket, bool]:
    """Run ``create`` unless a ticket for ``key`` exists.

    ``create`` runs inside a savepoint, so a uniqueness violation rolls back
    whatever it did (inventory included). When the violation comes from a
    concurrent winner the winner's ticket is returned.

    Returns:
        The ticket and whether this call created it.
    """
    if key is not None:
        outcome = ensure_not_duplicate(key)
        if outcome.already_processed:
            assert outcome.ticket is not None
            return outcome.ticket, False

    try:
        with transaction.atomic():
            return create(), True
    except (IntegrityError, DjangoValidationError):
        # full_clean() reports the constraint before the insert when the winner
        # has already committed; the database reports it when both are in flight.
        if key is None:
            raise
        outcome = ensure_not_duplicate(key)
        if not outcome.already_processed:
            raise
        assert outcome.ticket is not None
        logger.info("ticket_issue_race_lost", key=repr(key), ticket_id=str(outcome.ticket.id))
        return outcome.ticket, False
