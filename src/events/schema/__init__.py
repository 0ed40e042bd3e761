from .checkout import CheckoutMetadata
from .ticket import (
    CheckoutPayload,
    CheckoutResponse,
    EventReferenceSchema,
    FreeClaimPayload,
    FreeClaimResponse,
    TicketVerificationSchema,
    VerifySessionPayload,
    VerifySessionResponse,
    WebhookResponse,
)

__all__ = [
    "CheckoutMetadata",
    "CheckoutPayload",
    "CheckoutResponse",
    "EventReferenceSchema",
    "FreeClaimPayload",
    "FreeClaimResponse",
    "TicketVerificationSchema",
    "VerifySessionPayload",
    "VerifySessionResponse",
    "WebhookResponse",
]
