"""Checkout session metadata.

Stripe metadata is a flat map of strings and it is the only channel that
survives to the asynchronous webhook, so it is parsed into a typed model
before anything else happens.
"""

import typing as t
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from events.exceptions import InvalidCheckoutMetadataError

_METADATA_VALUE_LIMIT = 500


class CheckoutMetadata(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", str_strip_whitespace=True)

    user_id: UUID
    quantity: int = Field(ge=1)
    event_id: UUID | None = None
    event_slug: str | None = None
    ticket_type_id: UUID | None = None
    ticket_type_name: str | None = None
    event_title: str | None = None
    event_date: str | None = None
    event_time: str | None = None
    event_location: str | None = None
    user_email: str | None = None
    user_name: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def empty_string_is_absent(cls, value: t.Any) -> t.Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def require_event_reference(self) -> "CheckoutMetadata":
        if self.event_id is None and not self.event_slug:
            raise ValueError("event_id or event_slug is required")
        return self

    @classmethod
    def parse(cls, metadata: t.Mapping[str, t.Any] | None) -> "CheckoutMetadata":
        """Parse a provider metadata map, raising ``InvalidCheckoutMetadataError`` on any problem."""
        try:
            return cls.model_validate(dict(metadata or {}))
        except ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            raise InvalidCheckoutMetadataError(fields=fields, errors=e.error_count()) from e

    def to_stripe_metadata(self) -> dict[str, str]:
        """Flatten into the string map Stripe stores, dropping empty values."""
        data = self.model_dump(mode="json", exclude_none=True)
        return {key: str(value)[:_METADATA_VALUE_LIMIT] for key, value in data.items()}
