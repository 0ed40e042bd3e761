from uuid import UUID

from django.utils.translation import gettext as _
from ninja_extra import api_controller, route

from common.authentication import PurchaserJWTAuth
from common.schema import ErrorResponse, ResponseMessage
from common.throttling import WriteThrottle
from events import schema
from events.exceptions import NotFoundError
from events.models import Ticket
from events.service import stripe_service, ticket_service, tokens

from .user_aware_controller import UserAwareController


@api_controller("/tickets", auth=PurchaserJWTAuth(), tags=["Tickets"])
class TicketController(UserAwareController):
    @route.post(
        "/claim",
        url_name="claim_free_ticket",
        response={200: schema.FreeClaimResponse, 400: ErrorResponse, 402: ErrorResponse, 404: ErrorResponse},
        throttle=WriteThrottle(),
    )
    def claim_free_ticket(self, payload: schema.FreeClaimPayload) -> schema.FreeClaimResponse:
        """Claim a free ticket.

        Legacy events without ticket types allow one ticket per person: claiming again
        returns the existing ticket with `already_existed=true`. Events with ticket types
        need a `ticket_type_id` and allow several claims, each capped by the type's
        `max_per_order`. Priced tickets answer 402; use the checkout endpoint instead.
        """
        result = ticket_service.claim_free_ticket(
            purchaser=self.user(),
            event_id=payload.event_id,
            event_slug=payload.event_slug,
            ticket_type_id=payload.ticket_type_id,
            quantity=payload.quantity,
        )
        assert result.ticket_id is not None
        message = _("You already have a ticket for this event.") if result.already_existed else _("Ticket claimed.")
        return schema.FreeClaimResponse(
            ticket_id=result.ticket_id, already_existed=result.already_existed, message=message
        )

    @route.post(
        "/checkout",
        url_name="create_ticket_checkout",
        response={200: schema.CheckoutResponse, 400: ErrorResponse, 404: ErrorResponse, 409: ErrorResponse},
        throttle=WriteThrottle(),
    )
    def create_checkout(self, payload: schema.CheckoutPayload) -> schema.CheckoutResponse:
        """Start a Stripe hosted checkout for a paid ticket and return its URL.

        No ticket exists until the payment is confirmed, by webhook or by
        `POST /tickets/verify-session`.
        """
        session = stripe_service.create_checkout_session(
            purchaser=self.user(),
            event_id=payload.event_id,
            event_slug=payload.event_slug,
            ticket_type_id=payload.ticket_type_id,
            quantity=payload.quantity,
            success_url=payload.success_url,
            cancel_url=payload.cancel_url,
        )
        return schema.CheckoutResponse(checkout_url=session.url, session_id=session.id)

    @route.post(
        "/verify-session",
        url_name="verify_checkout_session",
        response={200: schema.VerifySessionResponse, 400: ErrorResponse, 403: ErrorResponse, 404: ErrorResponse},
        throttle=WriteThrottle(),
    )
    def verify_session(self, payload: schema.VerifySessionPayload) -> schema.VerifySessionResponse:
        """Confirm a checkout the purchaser just returned from.

        Safe to call any number of times and in any order with the webhook: exactly one
        ticket is issued per session. An unpaid session returns no ticket and its
        `payment_status`.
        """
        result = stripe_service.verify_checkout_session(session_id=payload.session_id, user=self.user())
        return schema.VerifySessionResponse(
            ticket_id=result.ticket_id,
            already_existed=result.already_existed,
            payment_status=result.payment_status or "unknown",
        )

    @route.post(
        "/{ticket_id}/cancel",
        url_name="cancel_ticket",
        response={200: ResponseMessage, 400: ErrorResponse, 403: ErrorResponse, 404: ErrorResponse},
        throttle=WriteThrottle(),
    )
    def cancel_ticket(self, ticket_id: UUID) -> ResponseMessage:
        """Cancel one of your own tickets before the event and give the place back."""
        ticket = ticket_service.cancel_ticket(ticket_id=ticket_id, user=self.user())
        return ResponseMessage(message=_("Ticket {ticket_id} is cancelled.").format(ticket_id=ticket.id))

    @route.get(
        "/verify",
        url_name="verify_ticket",
        response={200: schema.TicketVerificationSchema, 400: ErrorResponse, 404: ErrorResponse},
        auth=None,
    )
    def verify_ticket(self, code: str) -> schema.TicketVerificationSchema:
        """Look up the ticket behind a scanned confirmation code."""
        try:
            ticket = tokens.lookup_ticket(code)
        except Ticket.DoesNotExist as e:
            raise NotFoundError("Ticket not found.") from e
        return schema.TicketVerificationSchema(
            ticket_id=ticket.id,
            event_id=ticket.event_id,
            event_title=ticket.event.title,
            event_date=ticket.event.date,
            ticket_type_name=ticket.ticket_type.name if ticket.ticket_type else None,
            holder_name=ticket.user.get_display_name(),
            quantity=ticket.quantity,
            status=ticket.status,
            check_in_status=ticket.check_in_status,
        )
