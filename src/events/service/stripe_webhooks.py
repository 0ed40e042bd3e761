"""Stripe webhook event handlers."""

import stripe
import structlog
from django.db import transaction

from events.exceptions import InvalidCheckoutMetadataError, TicketingError
from events.service import stripe_service
from events.service.ticket_service import ReconciliationResult

logger = structlog.get_logger(__name__)


class StripeEventHandler:
    """Handles the business logic for different types of Stripe webhook events."""

    def __init__(self, event: stripe.Event):
        """Initialize the Stripe event handler."""
        self.event = event

    def handle(self) -> ReconciliationResult | None:
        """Routes the event to the appropriate handler based on its type."""
        event_type = self.event.type
        handler_method = getattr(self, f"handle_{event_type.replace('.', '_')}", self.handle_unknown_event)
        return handler_method(self.event)  # type: ignore[no-any-return]

    def handle_unknown_event(self, event: stripe.Event) -> None:
        """Log unhandled event types for future development."""
        logger.info("stripe_webhook_unhandled_event", event_type=event.type, event_id=event.id)

    def handle_checkout_session_completed(self, event: stripe.Event) -> ReconciliationResult | None:
        """A checkout finished; card payments are already paid at this point."""
        return self._reconcile(event)

    def handle_checkout_session_async_payment_succeeded(self, event: stripe.Event) -> ReconciliationResult | None:
        """A delayed payment method (bank debit and the like) cleared."""
        return self._reconcile(event)

    def _reconcile(self, event: stripe.Event) -> ReconciliationResult | None:
        session = event.data.object
        try:
            with transaction.atomic():
                return stripe_service.reconcile_checkout_session(session)
        except InvalidCheckoutMetadataError:
            logger.warning("stripe_webhook_invalid_metadata", event_id=event.id, session_id=session.get("id"))
            raise
        except TicketingError as e:
            # Stripe retries anything but a 2xx; retrying cannot fix these.
            logger.error(
                "stripe_webhook_reconciliation_failed",
                event_id=event.id,
                session_id=session.get("id"),
                code=e.code,
                error=e.message,
                **e.context,
            )
            return None
