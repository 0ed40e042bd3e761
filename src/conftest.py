"""Shared fixtures for the whole test suite."""

import typing as t

import pytest
from django.core.cache import cache
from django.test.client import Client
from ninja_jwt.tokens import AccessToken

from accounts.models import EcclesiaUser
from common.models import SiteSettings


@pytest.fixture(autouse=True)
def enable_celery_eager_mode(settings: t.Any) -> None:
    """Run Celery tasks in-process so their side effects are visible to the test."""
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True


@pytest.fixture(autouse=True)
def clear_throttle_cache() -> t.Iterator[None]:
    """Throttle history lives in the cache; start every test with a clean slate."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture(autouse=True)
def unsigned_webhooks(settings: t.Any) -> None:
    """Tests opt into signature checking explicitly."""
    settings.STRIPE_WEBHOOK_SECRET = ""


@pytest.fixture
def site_settings(db: None) -> SiteSettings:
    site_settings = SiteSettings.get_solo()
    site_settings.frontend_base_url = "https://myecclesia.test"
    site_settings.internal_catchall_email = "catchall@myecclesia.test"
    site_settings.live_emails = False
    site_settings.save()
    return site_settings


@pytest.fixture
def user(django_user_model: t.Type[EcclesiaUser]) -> EcclesiaUser:
    return django_user_model.objects.create_user(
        username="grace",
        email="grace@example.com",
        password="pass",
        first_name="Grace",
        last_name="Hopper",
    )


@pytest.fixture
def other_user(django_user_model: t.Type[EcclesiaUser]) -> EcclesiaUser:
    return django_user_model.objects.create_user(username="silas", email="silas@example.com", password="pass")


def _client_for(user: EcclesiaUser) -> Client:
    token = AccessToken.for_user(user)
    return Client(HTTP_AUTHORIZATION=f"Bearer {token}")


@pytest.fixture
def user_client(user: EcclesiaUser) -> Client:
    """API client authenticated as ``user``."""
    return _client_for(user)


@pytest.fixture
def other_user_client(other_user: EcclesiaUser) -> Client:
    """API client authenticated as ``other_user``."""
    return _client_for(other_user)
