"""Request and response schemas of the ticket endpoints."""

import datetime
from uuid import UUID

from ninja import Schema
from pydantic import Field, model_validator


class EventReferenceSchema(Schema):
    event_id: UUID | None = None
    event_slug: str | None = Field(None, max_length=255)
    ticket_type_id: UUID | None = None
    quantity: int = 1

    @model_validator(mode="after")
    def require_event_reference(self) -> "EventReferenceSchema":
        if self.event_id is None and not self.event_slug:
            raise ValueError("Either event_id or event_slug must be provided.")
        return self


class FreeClaimPayload(EventReferenceSchema):
    pass


class FreeClaimResponse(Schema):
    ticket_id: UUID
    already_existed: bool
    message: str


class CheckoutPayload(EventReferenceSchema):
    success_url: str | None = Field(None, max_length=2048)
    cancel_url: str | None = Field(None, max_length=2048)


class CheckoutResponse(Schema):
    checkout_url: str
    session_id: str


class VerifySessionPayload(Schema):
    session_id: str = Field(..., min_length=1, max_length=255)


class VerifySessionResponse(Schema):
    ticket_id: UUID | None = None
    already_existed: bool = False
    payment_status: str


class TicketVerificationSchema(Schema):
    ticket_id: UUID
    event_id: UUID
    event_title: str
    event_date: datetime.date
    ticket_type_name: str | None = None
    holder_name: str
    quantity: int
    status: str
    check_in_status: str


class WebhookResponse(Schema):
    received: bool = True
    ticket_id: UUID | None = None
