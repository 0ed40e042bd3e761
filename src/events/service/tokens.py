"""Ticket verification codes.

The code printed in the confirmation QR is a signed JWT binding the ticket,
its event and its holder. Door staff scan it and the API decodes it; nothing
is stored server side.
"""

import typing as t
from datetime import datetime
from urllib.parse import urlencode
from uuid import UUID

import jwt
import structlog
from django.conf import settings
from django.utils import timezone
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError, field_serializer

from common.models import SiteSettings
from events.exceptions import InvalidVerificationCodeError
from events.models import Ticket

logger = structlog.get_logger(__name__)

VERIFICATION_PATH = "/tickets/verify"


class TicketVerificationPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    ticket_id: UUID
    event_id: UUID
    user_id: UUID
    verification_url: str
    aud: str
    iat: datetime
    exp: datetime

    @field_serializer("ticket_id", "event_id", "user_id")
    def serialize_uuid(self, value: UUID) -> str:
        return str(value)

    @field_serializer("iat", "exp")
    def serialize_timestamp(self, value: datetime) -> int:
        return int(value.timestamp())

    @classmethod
    def for_ticket(cls, ticket: Ticket, *, issued_at: datetime | None = None) -> "TicketVerificationPayload":
        issued_at = issued_at or timezone.now()
        return cls(
            ticket_id=ticket.id,
            event_id=ticket.event_id,
            user_id=ticket.user_id,
            verification_url=_verification_base_url(),
            aud=settings.TICKET_VERIFICATION_AUDIENCE,
            iat=issued_at,
            exp=issued_at + settings.TICKET_VERIFICATION_LIFETIME,
        )


def _verification_base_url() -> str:
    frontend_base_url = SiteSettings.get_solo().frontend_base_url.rstrip("/")
    return f"{frontend_base_url}{VERIFICATION_PATH}"


def encode_verification_payload(payload: TicketVerificationPayload, key: str | None = None) -> str:
    """Sign a verification payload into a compact token."""
    return jwt.encode(payload.model_dump(mode="python"), key or settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_verification_payload(
    token: str,
    key: str | None = None,
    audience: str | None = None,
) -> TicketVerificationPayload:
    """Verify and parse a verification code.

    Raises:
        InvalidVerificationCodeError: If the code is expired, tampered with or malformed.
    """
    try:
        decoded = jwt.decode(
            token,
            key=key or settings.SECRET_KEY,
            audience=audience or settings.TICKET_VERIFICATION_AUDIENCE,
            algorithms=[settings.JWT_ALGORITHM],
        )
        return TypeAdapter(TicketVerificationPayload).validate_python(decoded)
    except ExpiredSignatureError as e:
        logger.debug("verification_code_expired")
        raise InvalidVerificationCodeError("This ticket code has expired.") from e
    except (InvalidTokenError, ValidationError) as e:
        logger.debug("verification_code_invalid", error=str(e))
        raise InvalidVerificationCodeError() from e


def build_verification_url(ticket: Ticket, *, code: str | None = None) -> str:
    """The link a holder's QR code points to."""
    code = code or encode_verification_payload(TicketVerificationPayload.for_ticket(ticket))
    return f"{_verification_base_url()}?{urlencode({'code': code})}"


def verification_code_for(ticket: Ticket) -> tuple[TicketVerificationPayload, str]:
    payload = TicketVerificationPayload.for_ticket(ticket)
    return payload, encode_verification_payload(payload)


def lookup_ticket(code: str) -> Ticket:
    """Resolve a scanned code to its ticket.

    Raises:
        InvalidVerificationCodeError: If the code does not verify or names another event/holder.
        Ticket.DoesNotExist: If the ticket is gone.
    """
    payload = decode_verification_payload(code)
    ticket = Ticket.objects.full().get(pk=payload.ticket_id)
    if ticket.event_id != payload.event_id or ticket.user_id != payload.user_id:
        logger.warning("verification_code_mismatch", ticket_id=str(ticket.id))
        raise InvalidVerificationCodeError()
    return t.cast(Ticket, ticket)
