"""Shared fixtures for the web test suite.

Every test runs against the in-process fake processor (no network) with a
known webhook secret, fresh throttling counters and a closed circuit breaker.
"""
import pytest
from django.core.cache import cache
from django.test import Client

from apps.catalog.models import CatalogItemModel
from apps.orders import providers
from apps.orders.adapters import FakeCheckoutProcessor
from apps.orders.http_adapters import processor_cb

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    settings.PAYMENTS_WEBHOOK_SECRET = WEBHOOK_SECRET
    settings.PAYMENTS_WEBHOOK_TOLERANCE_SECS = 300
    providers.reset_processor()
    processor_cb.on_success()
    cache.clear()
    yield
    providers.reset_processor()


@pytest.fixture
def webhook_secret():
    return WEBHOOK_SECRET


@pytest.fixture
def fake_processor():
    proc = FakeCheckoutProcessor()
    providers.set_processor(proc)
    return proc


@pytest.fixture
def user(django_user_model):
    return django_user_model.objects.create_user(username="alice", password="pw-alice")


@pytest.fixture
def other_user(django_user_model):
    return django_user_model.objects.create_user(username="bob", password="pw-bob")


@pytest.fixture
def auth_client(client, user):
    client.force_login(user)
    return client


@pytest.fixture
def other_client(other_user):
    c = Client()
    c.force_login(other_user)
    return c


@pytest.fixture
def catalog_item(db):
    return CatalogItemModel.objects.create(name="Mechanical keyboard", price_cents=12900, currency="USD")
