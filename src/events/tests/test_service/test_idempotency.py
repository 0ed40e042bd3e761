"""Tests for exactly-once ticket issuance."""

from unittest.mock import Mock, patch

import pytest
from django.db import IntegrityError

from accounts.models import EcclesiaUser
from events.models import Event, Ticket
from events.service.idempotency import (
    IdempotencyOutcome,
    PaymentKey,
    PurchaserKey,
    ensure_not_duplicate,
    issue_once,
)

pytestmark = pytest.mark.django_db


def _ticket(event: Event, user: EcclesiaUser, **kwargs: object) -> Ticket:
    return Ticket.objects.create(event=event, user=user, **kwargs)


class TestEnsureNotDuplicate:
    def test_no_match(self, event: Event, user: EcclesiaUser) -> None:
        outcome = ensure_not_duplicate(PurchaserKey(event_id=event.id, user_id=user.id))

        assert outcome.already_processed is False
        assert outcome.ticket is None

    def test_free_ticket_matches_purchaser_key(self, event: Event, user: EcclesiaUser) -> None:
        ticket = _ticket(event, user)

        outcome = ensure_not_duplicate(PurchaserKey(event_id=event.id, user_id=user.id))

        assert outcome.already_processed is True
        assert outcome.ticket == ticket

    def test_cancelled_free_ticket_does_not_match(self, event: Event, user: EcclesiaUser) -> None:
        _ticket(event, user, status=Ticket.TicketStatus.CANCELLED)

        assert ensure_not_duplicate(PurchaserKey(event_id=event.id, user_id=user.id)).already_processed is False

    def test_paid_ticket_does_not_match_purchaser_key(self, paid_event: Event, user: EcclesiaUser) -> None:
        _ticket(paid_event, user, payment_id="sess_abc")

        assert ensure_not_duplicate(PurchaserKey(event_id=paid_event.id, user_id=user.id)).already_processed is False

    def test_payment_key_matches_reference(self, paid_event: Event, user: EcclesiaUser) -> None:
        ticket = _ticket(paid_event, user, payment_id="sess_abc")

        outcome = ensure_not_duplicate(PaymentKey("sess_abc"))

        assert outcome.ticket == ticket
        assert ensure_not_duplicate(PaymentKey("sess_other")).already_processed is False

    def test_payment_key_matches_cancelled_ticket(self, paid_event: Event, user: EcclesiaUser) -> None:
        """A refunded or cancelled payment is never turned into a second ticket."""
        ticket = _ticket(paid_event, user, payment_id="sess_abc", status=Ticket.TicketStatus.CANCELLED)

        assert ensure_not_duplicate(PaymentKey("sess_abc")).ticket == ticket


class TestIssueOnce:
    def test_creates_when_no_match(self, event: Event, user: EcclesiaUser) -> None:
        key = PurchaserKey(event_id=event.id, user_id=user.id)

        ticket, created = issue_once(key, lambda: _ticket(event, user))

        assert created is True
        assert Ticket.objects.get() == ticket

    def test_short_circuits_on_match(self, event: Event, user: EcclesiaUser) -> None:
        existing = _ticket(event, user)
        create = Mock()

        ticket, created = issue_once(PurchaserKey(event_id=event.id, user_id=user.id), create)

        assert created is False
        assert ticket == existing
        create.assert_not_called()

    def test_lost_race_returns_winner(self, paid_event: Event, user: EcclesiaUser) -> None:
        """The guard saw nothing, but a concurrent caller committed first."""
        winner = _ticket(paid_event, user, payment_id="sess_race")

        def create() -> Ticket:
            raise IntegrityError("duplicate key value violates unique constraint")

        with patch(
            "events.service.idempotency.ensure_not_duplicate",
            side_effect=[IdempotencyOutcome(), IdempotencyOutcome(ticket=winner)],
        ):
            ticket, created = issue_once(PaymentKey("sess_race"), create)

        assert created is False
        assert ticket == winner

    def test_constraint_violation_reported_by_full_clean(self, event: Event, user: EcclesiaUser) -> None:
        """The model-level check of the unique constraint is treated like the database one."""
        existing = _ticket(event, user)

        with patch(
            "events.service.idempotency.ensure_not_duplicate",
            side_effect=[IdempotencyOutcome(), IdempotencyOutcome(ticket=existing)],
        ):
            ticket, created = issue_once(PurchaserKey(event_id=event.id, user_id=user.id), lambda: _ticket(event, user))

        assert created is False
        assert ticket == existing
        assert Ticket.objects.count() == 1

    def test_unrelated_integrity_error_propagates(self, event: Event, user: EcclesiaUser) -> None:
        def create() -> Ticket:
            raise IntegrityError("something else")

        with pytest.raises(IntegrityError):
            issue_once(PurchaserKey(event_id=event.id, user_id=user.id), create)

    def test_no_key_propagates(self, event: Event, user: EcclesiaUser) -> None:
        def create() -> Ticket:
            raise IntegrityError("boom")

        with pytest.raises(IntegrityError):
            issue_once(None, create)
