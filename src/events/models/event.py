from __future__ import annotations

import typing as t
from datetime import date

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone
from django.utils.text import slugify

from common.models import TimeStampedModel


class Event(TimeStampedModel):
    """An event listed on the marketplace.

    ``price`` and ``available_tickets`` describe the legacy single-price mode,
    used when the organizer has not configured any ticket types.
    """

    organizer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="organized_events",
    )
    title = models.CharField(max_length=255, db_index=True)
    slug = models.SlugField(max_length=255, unique=True)
    description = models.TextField(blank=True, default="")
    date = models.DateField(db_index=True)
    time = models.TimeField(null=True, blank=True)
    location = models.CharField(max_length=255, blank=True, default="")
    price = models.DecimalField(max_digits=10, decimal_places=2, default=0, validators=[MinValueValidator(0)])
    currency = models.CharField(max_length=3, default=settings.DEFAULT_CURRENCY, help_text="ISO 4217 currency code")
    available_tickets = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Legacy capacity for events without ticket types. Informational unless "
        "TICKETING_ENFORCE_LEGACY_CAPACITY is enabled.",
    )

    class Meta:
        ordering = ["date", "time", "title"]

    def __str__(self) -> str:
        return f"{self.title} ({self.date})"

    def save(self, *args: t.Any, **kwargs: t.Any) -> None:
        """Override save to auto-create slug."""
        if not self.slug:
            self.slug = slugify(self.title)
        super().save(*args, **kwargs)

    @property
    def is_free(self) -> bool:
        """Whether the legacy single price is zero."""
        return self.price == 0

    def has_ticket_types(self) -> bool:
        """Whether the organizer sells this event through ticket types."""
        return self.ticket_types.exists()

    def is_past(self, today: date | None = None) -> bool:
        """Whether the event date is before today."""
        return self.date < (today or timezone.localdate())
