"""Service provider helpers for wiring the order services with their ports.

``get_order_service`` and ``get_checkout_issuer`` return services wired to
the Django repositories. The payment processor is the HTTP client when
``settings.USE_HTTP_ADAPTERS`` is truthy, otherwise a process-wide
``FakeCheckoutProcessor`` that tests and local development can inspect or
replace through ``set_processor``.
"""

from django.conf import settings

from apps.catalog.repository import CatalogRepository

from .adapters import FakeCheckoutProcessor
from .domain import CheckoutProcessor, CheckoutSessionIssuer, OrderService
from .http_adapters import HttpCheckoutProcessorClient
from .repository import OrderRepository

_fake_processor: CheckoutProcessor | None = None


def get_processor() -> CheckoutProcessor:
    """Return the processor port configured for this process."""
    global _fake_processor
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        return HttpCheckoutProcessorClient()
    if _fake_processor is None:
        _fake_processor = FakeCheckoutProcessor()
    return _fake_processor


def set_processor(processor: CheckoutProcessor) -> None:
    """Override the in-process processor used when HTTP adapters are off."""
    global _fake_processor
    _fake_processor = processor


def reset_processor() -> None:
    global _fake_processor
    _fake_processor = None


def get_order_service() -> OrderService:
    return OrderService(catalog=CatalogRepository(), orders=OrderRepository())


def get_checkout_issuer() -> CheckoutSessionIssuer:
    return CheckoutSessionIssuer(
        orders=OrderRepository(),
        processor=get_processor(),
        success_url=settings.CHECKOUT_SUCCESS_URL,
        cancel_url=settings.CHECKOUT_CANCEL_URL,
        catalog=CatalogRepository(),
    )
