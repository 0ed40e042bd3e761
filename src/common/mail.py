"""Outbound email delivery with the internal catchall safety net."""

from django.conf import settings
from django.core.mail import EmailMultiAlternatives, make_msgid

from common.models import EmailLog, SiteSettings


def to_safe_email_address(email: str, site_settings: SiteSettings | None = None) -> str:
    """Convert an email address to a safe format for sending.

    Unless live emails are enabled, the recipient is folded into a plus-address
    of the internal catchall so non-production environments never mail real people.

    Args:
        email (str): The email address.
        site_settings (SiteSettings): The site settings.

    Returns:
        str: The safe email address.
    """
    site_settings = site_settings or SiteSettings.get_solo()
    if site_settings.live_emails:
        return email
    safe_email = email.replace("@", "_at_").replace(".", "_dot_")
    user, domain = site_settings.internal_catchall_email.split("@", 1)
    return f"{user}+{safe_email}@{domain}"


def deliver_email(*, to: str, subject: str, body: str, html_body: str | None = None) -> str:
    """Send a single email synchronously and log it.

    Args:
        to: The recipient.
        subject: The email subject.
        body: The plain-text body.
        html_body: The HTML alternative.

    Returns:
        The Message-ID of the sent email.

    Raises:
        Any exception raised by the configured email backend.
    """
    recipient = to_safe_email_address(to)
    message_id = make_msgid(domain="myecclesia.org.uk")
    email_msg = EmailMultiAlternatives(
        subject=subject,
        body=body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=[recipient],
        headers={"Message-ID": message_id},
    )
    if html_body:
        email_msg.attach_alternative(html_body, "text/html")
    email_msg.send(fail_silently=False)

    log = EmailLog(to=recipient, subject=subject, message_id=message_id)
    log.set_body(body)
    if html_body:
        log.set_html(html_body)
    log.save()
    return message_id
