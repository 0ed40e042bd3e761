import typing as t

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q

from common.models import TimeStampedModel


class TicketType(TimeStampedModel):
    """A priced, capacity-limited kind of ticket for an event.

    ``quantity_sold`` only ever moves through ``events.service.allocation``,
    which issues conditional updates; never assign it from application code.
    """

    event = models.ForeignKey("events.Event", on_delete=models.CASCADE, related_name="ticket_types")
    name = models.CharField(max_length=255, db_index=True)
    description = models.TextField(blank=True, default="")
    price = models.DecimalField(max_digits=10, decimal_places=2, default=0, validators=[MinValueValidator(0)])
    quantity_available = models.PositiveIntegerField()
    quantity_sold = models.PositiveIntegerField(default=0)
    max_per_order = models.PositiveIntegerField(default=10, validators=[MinValueValidator(1)])
    is_active = models.BooleanField(default=True, db_index=True)
    display_order = models.PositiveIntegerField(default=0, db_index=True)

    class Meta:
        ordering = ["event", "display_order", "name"]
        constraints = [
            models.UniqueConstraint(fields=["event", "name"], name="unique_ticket_type_event_name"),
            models.CheckConstraint(
                condition=Q(quantity_sold__lte=F("quantity_available")),
                name="ticket_type_not_oversold",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.name} for event {self.event.title}"

    def clean(self) -> None:
        """Reject capacities below what has already been sold."""
        super().clean()
        if self.quantity_available is not None and self.quantity_sold > self.quantity_available:
            raise DjangoValidationError(
                {"quantity_available": "Capacity cannot be lower than the number of tickets already sold."}
            )

    @property
    def is_free(self) -> bool:
        """Whether the ticket type costs nothing."""
        return self.price == 0

    @property
    def quantity_remaining(self) -> int:
        """Helper property."""
        return max(0, self.quantity_available - self.quantity_sold)


class TicketQuerySet(models.QuerySet["Ticket"]):
    """Custom queryset for Ticket model with common prefetch patterns."""

    def confirmed(self) -> t.Self:
        """Tickets that have not been cancelled."""
        return self.filter(status=Ticket.TicketStatus.CONFIRMED)

    def full(self) -> t.Self:
        """Select all commonly needed related objects for notifications and verification."""
        return self.select_related("event", "ticket_type", "user")


class TicketManager(models.Manager["Ticket"]):
    """Custom manager for Ticket with convenience methods for related object selection."""

    def get_queryset(self) -> TicketQuerySet:
        """Get base queryset."""
        return TicketQuerySet(self.model, using=self._db)

    def confirmed(self) -> TicketQuerySet:
        """Tickets that have not been cancelled."""
        return self.get_queryset().confirmed()

    def full(self) -> TicketQuerySet:
        """Returns a queryset with all related objects selected."""
        return self.get_queryset().full()


class Ticket(TimeStampedModel):
    """A purchaser's admission to an event, issued only by the reconciliation engine."""

    class TicketStatus(models.TextChoices):
        CONFIRMED = "confirmed", "Confirmed"
        CANCELLED = "cancelled", "Cancelled"

    class CheckInStatus(models.TextChoices):
        NOT_CHECKED_IN = "not_checked_in", "Not checked in"
        CHECKED_IN = "checked_in", "Checked in"

    event = models.ForeignKey("events.Event", on_delete=models.PROTECT, related_name="tickets")
    ticket_type = models.ForeignKey(
        TicketType, on_delete=models.PROTECT, null=True, blank=True, related_name="tickets"
    )
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="tickets")
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    status = models.CharField(
        max_length=20, choices=TicketStatus.choices, default=TicketStatus.CONFIRMED, db_index=True
    )
    # Null for free tickets; the checkout session id for paid ones.
    payment_id = models.CharField(max_length=255, null=True, blank=True)
    payment_metadata = models.JSONField(blank=True, default=dict)
    check_in_status = models.CharField(
        max_length=20, choices=CheckInStatus.choices, default=CheckInStatus.NOT_CHECKED_IN, db_index=True
    )
    checked_in_at = models.DateTimeField(null=True, blank=True, editable=False)
    cancelled_at = models.DateTimeField(null=True, blank=True, editable=False)

    objects = TicketManager()

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["payment_id"],
                condition=Q(payment_id__isnull=False),
                name="unique_ticket_payment_id",
            ),
            models.UniqueConstraint(
                fields=["event", "user"],
                condition=Q(ticket_type__isnull=True, payment_id__isnull=True, status="confirmed"),
                name="unique_free_ticket_per_event_user",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover
        type_str = f" | {self.ticket_type.name!r}" if self.ticket_type else ""
        return f"Ticket for {self.event.title} for {self.user.username}{type_str}"

    def clean(self) -> None:
        """A ticket type must belong to the ticket's event."""
        super().clean()
        if self.ticket_type_id and self.event_id and self.ticket_type.event_id != self.event_id:
            raise DjangoValidationError({"ticket_type": "Ticket type must belong to the ticket's event."})

    @property
    def is_paid(self) -> bool:
        """Whether the ticket was issued against a payment."""
        return self.payment_id is not None
