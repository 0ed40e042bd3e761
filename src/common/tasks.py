"""Common tasks."""

from datetime import timedelta

import structlog
from celery import shared_task
from django.utils import timezone

from common.models import EmailLog

logger = structlog.get_logger(__name__)


@shared_task
def cleanup_email_logs() -> None:
    """Clean up email logs."""
    deleted, _ = EmailLog.objects.filter(sent_at__lte=timezone.now() - timedelta(days=30)).delete()

    # drop bodies after a week, keep the envelope for support lookups
    EmailLog.objects.filter(sent_at__lte=timezone.now() - timedelta(days=7)).update(
        compressed_body=None, compressed_html=None
    )
    logger.info("email_logs_cleaned", deleted=deleted)
