import re
import typing as t
import uuid

from django.contrib.auth.models import AbstractUser, UserManager
from django.db import models


class EcclesiaUserQueryset(models.QuerySet["EcclesiaUser"]):
    """Queryset for EcclesiaUser."""


class EcclesiaUserManager(UserManager["EcclesiaUser"]):
    def get_queryset(self) -> EcclesiaUserQueryset:
        """Get queryset for EcclesiaUser."""
        return EcclesiaUserQueryset(self.model, using=self._db)


class EcclesiaUser(AbstractUser):
    """A purchaser, organizer or member of staff.

    Identity is issued by the authentication layer; the ticketing core only
    needs the id, the email and a name to greet people with.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    preferred_name = models.CharField(db_index=True, max_length=255, blank=True, help_text="Preferred name")

    objects = EcclesiaUserManager()  # type: ignore[misc]

    class Meta:
        ordering = ["username"]

    def save(self, *args: t.Any, **kwargs: t.Any) -> None:
        """Normalise the email before saving."""
        if self.email:
            self.email = self.email.strip()
        super().save(*args, **kwargs)

    def get_display_name(self) -> str:
        """Returns the user's preferred name, or their full name as a fallback."""
        return (
            self.preferred_name or self.get_full_name() or re.sub(r"(\W|_)+", " ", self.username.split("@")[0]).title()
        )
