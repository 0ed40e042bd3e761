"""Ticketing errors.

Every error a purchase or reconciliation can end in is a ``TicketingError``
subclass carrying a stable ``code`` and the HTTP status the API maps it to.
Replays of an already-processed payment are not errors; see
``ReconciliationResult.Outcome.ALREADY_PROCESSED``.
"""

import typing as t


class TicketingError(Exception):
    """Base class for expected ticketing failures."""

    code: t.ClassVar[str] = "ticketing_error"
    status_code: t.ClassVar[int] = 400
    default_message: t.ClassVar[str] = "The ticket could not be issued."

    def __init__(self, message: str | None = None, **context: t.Any) -> None:
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)


class UnauthenticatedError(TicketingError):
    code = "unauthenticated"
    status_code = 401
    default_message = "Authentication required."


class NotFoundError(TicketingError):
    code = "not_found"
    status_code = 404
    default_message = "Event not found."


class PaymentRequiredError(TicketingError):
    code = "payment_required"
    status_code = 402
    default_message = "This event requires payment."


class OutOfStockError(TicketingError):
    code = "out_of_stock"
    status_code = 409
    default_message = "Not enough tickets available."


class OrderLimitExceededError(TicketingError):
    code = "order_limit_exceeded"
    status_code = 400
    default_message = "Too many tickets requested in a single order."


class InvalidQuantityError(TicketingError):
    code = "invalid_quantity"
    status_code = 400
    default_message = "At least one ticket must be requested."


class TicketTypeInactiveError(TicketingError):
    code = "ticket_type_inactive"
    status_code = 409
    default_message = "This ticket type is no longer on sale."


class TicketTypeRequiredError(TicketingError):
    code = "ticket_type_required"
    status_code = 400
    default_message = "Please choose a ticket type for this event."


class InvalidSignatureError(TicketingError):
    code = "invalid_signature"
    status_code = 400
    default_message = "Invalid signature."


class InvalidPayloadError(TicketingError):
    code = "invalid_payload"
    status_code = 400
    default_message = "Invalid webhook payload."


class InvalidCheckoutMetadataError(TicketingError):
    code = "invalid_checkout_metadata"
    status_code = 400
    default_message = "The checkout session is missing ticket information."


class NoPaymentRequiredError(TicketingError):
    code = "no_payment_required"
    status_code = 400
    default_message = "This ticket is free. Claim it instead of paying."


class SessionOwnershipMismatchError(TicketingError):
    code = "session_ownership_mismatch"
    status_code = 403
    default_message = "This checkout session does not belong to the current user."


class TicketNotCancellableError(TicketingError):
    code = "ticket_not_cancellable"
    status_code = 400
    default_message = "This ticket can no longer be cancelled."


class InvalidVerificationCodeError(TicketingError):
    code = "invalid_verification_code"
    status_code = 400
    default_message = "Invalid ticket verification code."


class PaymentProviderError(TicketingError):
    code = "payment_provider_error"
    status_code = 502
    default_message = "The payment provider could not be reached."


class NotificationFailedError(TicketingError):
    """Raised inside the notification dispatcher only; never surfaces to a caller."""

    code = "notification_failed"
    status_code = 500
    default_message = "The ticket confirmation could not be delivered."
