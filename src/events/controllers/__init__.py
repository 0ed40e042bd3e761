from .stripe_webhook import StripeWebhookController
from .tickets import TicketController

__all__ = ["StripeWebhookController", "TicketController"]
