from datetime import timedelta

from decouple import config

# Quantity cap for events sold without ticket types.
TICKETING_LEGACY_MAX_PER_ORDER = config("TICKETING_LEGACY_MAX_PER_ORDER", default=10, cast=int)
# events.available_tickets is informational unless this is switched on.
TICKETING_ENFORCE_LEGACY_CAPACITY = config("TICKETING_ENFORCE_LEGACY_CAPACITY", default=False, cast=bool)
TICKETING_MESSAGE_SENDER = config(
    "TICKETING_MESSAGE_SENDER", default="events.service.ticket_notification_service.DjangoEmailSender"
)
TICKET_VERIFICATION_AUDIENCE = config("TICKET_VERIFICATION_AUDIENCE", default="myecclesia:ticket-verification")
TICKET_VERIFICATION_LIFETIME = timedelta(days=config("TICKET_VERIFICATION_LIFETIME_DAYS", default=365, cast=int))
