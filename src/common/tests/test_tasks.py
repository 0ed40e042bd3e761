from datetime import timedelta

import pytest
from django.utils import timezone

from common.models import EmailLog
from common.tasks import cleanup_email_logs

pytestmark = pytest.mark.django_db


def _log(age: timedelta) -> EmailLog:
    log = EmailLog(to="catchall@myecclesia.test", subject="Ticket Confirmed - Sunday Service")
    log.set_body("body")
    log.set_html("<p>body</p>")
    log.save()
    EmailLog.objects.filter(pk=log.pk).update(sent_at=timezone.now() - age)
    return log


def test_cleanup_email_logs() -> None:
    fresh = _log(timedelta(days=1))
    week_old = _log(timedelta(days=8))
    expired = _log(timedelta(days=31))

    cleanup_email_logs()

    fresh.refresh_from_db()
    week_old.refresh_from_db()
    assert fresh.body == "body"
    assert week_old.body is None
    assert week_old.html is None
    assert not EmailLog.objects.filter(pk=expired.pk).exists()
