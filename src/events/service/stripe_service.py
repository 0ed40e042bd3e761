"""Stripe hosted checkout and payment reconciliation.

A paid ticket is issued from the checkout session alone: the metadata set in
``create_checkout_session`` comes back on the webhook and on the client's
verify call, and both paths converge on ``reconcile_checkout_session``. The
session id is the payment reference, so whichever path arrives second finds
the ticket the first one issued.
"""

import typing as t
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

import stripe
import structlog
from django.conf import settings
from django.utils import timezone
from stripe.checkout import Session

from accounts.models import EcclesiaUser
from common.models import SiteSettings
from events.exceptions import (
    InvalidCheckoutMetadataError,
    InvalidQuantityError,
    NoPaymentRequiredError,
    NotFoundError,
    OrderLimitExceededError,
    OutOfStockError,
    PaymentProviderError,
    SessionOwnershipMismatchError,
    TicketTypeInactiveError,
    TicketTypeRequiredError,
    UnauthenticatedError,
)
from events.models import Event, TicketType
from events.schema.checkout import CheckoutMetadata
from events.service.ticket_service import (
    IssueRequest,
    ReconciliationResult,
    issue_ticket,
    resolve_event,
    resolve_ticket_type,
)

logger = structlog.get_logger(__name__)

stripe.api_key = settings.STRIPE_SECRET_KEY

PAID_STATUSES = frozenset({"paid", "no_payment_required"})


def _minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _redirect_url(candidate: str | None, default: str, frontend_base_url: str) -> str:
    # Only send purchasers back to our own frontend.
    if candidate and candidate.startswith(frontend_base_url):
        return candidate
    return default


def _check_stock(event: Event, ticket_type: TicketType | None, quantity: int) -> Decimal:
    """Validate the order ahead of payment and return the unit price.

    Nothing is reserved here; the authoritative check is the allocation at
    reconciliation time.
    """
    if ticket_type is not None:
        if not ticket_type.is_active:
            raise TicketTypeInactiveError(ticket_type_id=str(ticket_type.id))
        if quantity > ticket_type.max_per_order:
            raise OrderLimitExceededError(
                f"You can buy at most {ticket_type.max_per_order} tickets of this type per order.",
                max_per_order=ticket_type.max_per_order,
            )
        if quantity > ticket_type.quantity_remaining:
            raise OutOfStockError(remaining=ticket_type.quantity_remaining, quantity=quantity)
        return ticket_type.price

    if quantity > settings.TICKETING_LEGACY_MAX_PER_ORDER:
        raise OrderLimitExceededError(
            f"You can buy at most {settings.TICKETING_LEGACY_MAX_PER_ORDER} tickets per order.",
            max_per_order=settings.TICKETING_LEGACY_MAX_PER_ORDER,
        )
    if (
        settings.TICKETING_ENFORCE_LEGACY_CAPACITY
        and event.available_tickets is not None
        and quantity > event.available_tickets
    ):
        raise OutOfStockError(remaining=event.available_tickets, quantity=quantity)
    return event.price


def build_checkout_metadata(
    event: Event, ticket_type: TicketType | None, purchaser: EcclesiaUser, quantity: int
) -> CheckoutMetadata:
    return CheckoutMetadata(
        user_id=purchaser.id,
        quantity=quantity,
        event_id=event.id,
        event_slug=event.slug,
        ticket_type_id=ticket_type.id if ticket_type else None,
        ticket_type_name=ticket_type.name if ticket_type else None,
        event_title=event.title,
        event_date=event.date.isoformat(),
        event_time=event.time.strftime("%H:%M") if event.time else None,
        event_location=event.location or None,
        user_email=purchaser.email or None,
        user_name=purchaser.get_display_name() or None,
    )


def create_checkout_session(
    *,
    purchaser: EcclesiaUser | None,
    event_id: UUID | str | None = None,
    event_slug: str | None = None,
    ticket_type_id: UUID | str | None = None,
    quantity: int = 1,
    success_url: str | None = None,
    cancel_url: str | None = None,
) -> Session:
    """Start a hosted checkout for a paid ticket.

    Raises:
        UnauthenticatedError, NotFoundError, TicketTypeRequiredError: As for free claims.
        NoPaymentRequiredError: The ticket is free.
        InvalidQuantityError, OrderLimitExceededError, TicketTypeInactiveError, OutOfStockError:
            The order cannot be fulfilled as things stand.
        PaymentProviderError: Stripe refused or could not be reached.
    """
    if purchaser is None or not purchaser.is_authenticated:
        raise UnauthenticatedError()
    if quantity < 1:
        raise InvalidQuantityError(quantity=quantity)

    event = resolve_event(event_id=event_id, event_slug=event_slug)
    ticket_type = resolve_ticket_type(event, ticket_type_id) if ticket_type_id else None
    if ticket_type is None and event.has_ticket_types():
        raise TicketTypeRequiredError(event_id=str(event.id))

    unit_price = _check_stock(event, ticket_type, quantity)
    if unit_price <= 0:
        raise NoPaymentRequiredError(event_id=str(event.id))

    metadata = build_checkout_metadata(event, ticket_type, purchaser, quantity).to_stripe_metadata()
    product_name = f"Ticket: {event.title}" + (f" ({ticket_type.name})" if ticket_type else "")
    frontend_base_url = SiteSettings.get_solo().frontend_base_url.rstrip("/")
    event_url = f"{frontend_base_url}/events/{event.slug}"
    expires_at = timezone.now() + timedelta(minutes=settings.CHECKOUT_SESSION_EXPIRY_MINUTES)

    try:
        session = Session.create(
            mode="payment",
            line_items=[
                {
                    "price_data": {
                        "currency": event.currency.lower(),
                        "product_data": {"name": product_name, "description": "Event ticket purchase"},
                        "unit_amount": _minor_units(unit_price),
                    },
                    "quantity": quantity,
                }
            ],
            customer_email=purchaser.email or None,
            client_reference_id=str(purchaser.id),
            success_url=_redirect_url(
                success_url,
                f"{event_url}?payment=success&session_id={{CHECKOUT_SESSION_ID}}",
                frontend_base_url,
            ),
            cancel_url=_redirect_url(cancel_url, f"{event_url}?payment=canceled", frontend_base_url),
            metadata=metadata,
            payment_intent_data={"metadata": metadata},
            expires_at=int(expires_at.timestamp()),
        )
    except stripe.StripeError as e:
        logger.error("stripe_checkout_create_failed", event_id=str(event.id), error=str(e))
        raise PaymentProviderError(str(e.user_message or e)) from e

    logger.info(
        "stripe_checkout_created",
        session_id=session.id,
        event_id=str(event.id),
        ticket_type_id=str(ticket_type.id) if ticket_type else None,
        quantity=quantity,
        amount=_minor_units(unit_price) * quantity,
    )
    return session


def retrieve_checkout_session(session_id: str) -> Session:
    """Fetch a checkout session from Stripe.

    Raises:
        NotFoundError: Stripe does not know the session.
        PaymentProviderError: Any other Stripe failure.
    """
    try:
        return Session.retrieve(session_id)
    except stripe.InvalidRequestError as e:
        logger.info("stripe_session_not_found", session_id=session_id)
        raise NotFoundError("Checkout session not found.", session_id=session_id) from e
    except stripe.StripeError as e:
        logger.error("stripe_session_retrieve_failed", session_id=session_id, error=str(e))
        raise PaymentProviderError() from e


def _payment_snapshot(session: t.Mapping[str, t.Any], metadata: CheckoutMetadata) -> dict[str, t.Any]:
    customer_details = session.get("customer_details") or {}
    snapshot = {
        "stripe_session_id": session["id"],
        "payment_intent": session.get("payment_intent"),
        "amount_total": session.get("amount_total"),
        "currency": session.get("currency"),
        "customer_email": customer_details.get("email") or session.get("customer_email"),
        "ticket_type_name": metadata.ticket_type_name,
        "event_title": metadata.event_title,
        "event_date": metadata.event_date,
        "event_time": metadata.event_time,
        "event_location": metadata.event_location,
    }
    return {key: value for key, value in snapshot.items() if value is not None}


def _check_owner(metadata: CheckoutMetadata, user: EcclesiaUser, session_id: str) -> None:
    if metadata.user_id != user.id:
        logger.warning(
            "stripe_session_ownership_mismatch",
            session_id=session_id,
            session_user_id=str(metadata.user_id),
            user_id=str(user.id),
        )
        raise SessionOwnershipMismatchError()


def reconcile_checkout_session(
    session: t.Mapping[str, t.Any], *, expected_user: EcclesiaUser | None = None
) -> ReconciliationResult:
    """Turn a completed checkout session into exactly one ticket.

    An unpaid session is not an error: nothing is touched and the outcome is
    ``NOT_PAID``.

    Raises:
        SessionOwnershipMismatchError: ``expected_user`` is not the purchaser named in the session.
        InvalidCheckoutMetadataError: The session metadata does not describe a purchase.
        NotFoundError: The event or ticket type is gone.
        OutOfStockError, TicketTypeInactiveError: Inventory moved on since checkout.
    """
    session_id = session["id"]
    payment_status = session.get("payment_status")
    metadata: CheckoutMetadata | None = None

    if expected_user is not None:
        metadata = CheckoutMetadata.parse(session.get("metadata"))
        _check_owner(metadata, expected_user, session_id)

    if payment_status not in PAID_STATUSES:
        logger.info("stripe_session_unpaid", session_id=session_id, payment_status=payment_status)
        return ReconciliationResult(outcome=ReconciliationResult.Outcome.NOT_PAID, payment_status=payment_status)

    metadata = metadata or CheckoutMetadata.parse(session.get("metadata"))
    purchaser = EcclesiaUser.objects.filter(pk=metadata.user_id).first()
    if purchaser is None:
        raise InvalidCheckoutMetadataError("The purchaser on this checkout session does not exist.", fields=["user_id"])

    event = resolve_event(event_id=metadata.event_id, event_slug=metadata.event_slug)
    ticket_type = resolve_ticket_type(event, metadata.ticket_type_id) if metadata.ticket_type_id else None
    snapshot = _payment_snapshot(session, metadata)

    result = issue_ticket(
        IssueRequest(
            event=event,
            ticket_type=ticket_type,
            purchaser=purchaser,
            quantity=metadata.quantity,
            payment_reference=session_id,
            payment_metadata=snapshot,
            contact_email=snapshot.get("customer_email") or metadata.user_email,
            contact_name=metadata.user_name,
        )
    )
    return ReconciliationResult(outcome=result.outcome, ticket=result.ticket, payment_status=payment_status)


def verify_checkout_session(*, session_id: str, user: EcclesiaUser) -> ReconciliationResult:
    """Client-initiated reconciliation for a purchaser back from checkout before the webhook."""
    session = retrieve_checkout_session(session_id)
    return reconcile_checkout_session(session, expected_user=user)
