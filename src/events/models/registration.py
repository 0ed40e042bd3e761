from django.conf import settings
from django.db import models

from common.models import TimeStampedModel


class EventRegistration(TimeStampedModel):
    """Attendance record derived from tickets, one per (event, user)."""

    class RegistrationStatus(models.TextChoices):
        REGISTERED = "registered", "Registered"
        CANCELLED = "cancelled", "Cancelled"

    event = models.ForeignKey("events.Event", on_delete=models.CASCADE, related_name="registrations")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="event_registrations")
    status = models.CharField(
        max_length=20, choices=RegistrationStatus.choices, default=RegistrationStatus.REGISTERED, db_index=True
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["event", "user"], name="unique_registration_event_user"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.user} registered for {self.event.title} ({self.status})"
