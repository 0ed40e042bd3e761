from .event import Event
from .registration import EventRegistration
from .ticket import Ticket, TicketType

__all__ = [
    "Event",
    "EventRegistration",
    "Ticket",
    "TicketType",
]
