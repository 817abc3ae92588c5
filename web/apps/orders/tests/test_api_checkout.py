"""API tests for opening checkout sessions and the checkout return pages."""
import uuid

import pytest

from apps.orders.domain import OrderStatus
from apps.orders.models import OrderModel

ORDERS_URL = "/api/orders/"
CHECKOUT_URL = "/api/payments/checkout-session/"


def _create_order(client, item):
    r = client.post(ORDERS_URL, data={"item_id": str(item.id)}, content_type="application/json")
    assert r.status_code == 201
    return r.json()["id"]


@pytest.mark.django_db
def test_checkout_session_is_created_and_bound(auth_client, catalog_item, fake_processor):
    oid = _create_order(auth_client, catalog_item)
    r = auth_client.post(CHECKOUT_URL, data={"order_id": oid}, content_type="application/json")
    assert r.status_code == 200
    body = r.json()
    assert body["session_id"].startswith("cs_test_")
    assert body["redirect_url"].endswith(body["session_id"])

    row = OrderModel.objects.get(id=oid)
    assert row.external_session_key == body["session_id"]
    assert row.status == OrderStatus.PENDING.value
    assert auth_client.get(f"{ORDERS_URL}{oid}/").json()["checkout_session_id"] == body["session_id"]


@pytest.mark.django_db
def test_checkout_accepts_camel_case_order_id(auth_client, catalog_item, fake_processor):
    oid = _create_order(auth_client, catalog_item)
    r = auth_client.post(CHECKOUT_URL, data={"orderId": oid}, content_type="application/json")
    assert r.status_code == 200


@pytest.mark.django_db
def test_repeated_checkout_reuses_session(auth_client, catalog_item, fake_processor):
    oid = _create_order(auth_client, catalog_item)
    r1 = auth_client.post(CHECKOUT_URL, data={"order_id": oid}, content_type="application/json")
    r2 = auth_client.post(CHECKOUT_URL, data={"order_id": oid}, content_type="application/json")
    assert r1.json() == r2.json()
    assert len(fake_processor.calls) == 1


@pytest.mark.django_db
def test_checkout_for_paid_order_is_409_without_processor_call(auth_client, catalog_item, fake_processor):
    oid = _create_order(auth_client, catalog_item)
    OrderModel.objects.filter(id=oid).update(status=OrderStatus.PAID.value)

    r = auth_client.post(CHECKOUT_URL, data={"order_id": oid}, content_type="application/json")
    assert r.status_code == 409
    assert r.json()["detail"] == "ORDER_NOT_PENDING"
    assert fake_processor.calls == []


@pytest.mark.django_db
def test_checkout_for_someone_elses_order_is_403(auth_client, other_client, catalog_item, fake_processor):
    oid = _create_order(auth_client, catalog_item)
    r = other_client.post(CHECKOUT_URL, data={"order_id": oid}, content_type="application/json")
    assert r.status_code == 403
    assert fake_processor.calls == []


@pytest.mark.django_db
def test_checkout_for_unknown_order_is_404(auth_client, fake_processor):
    r = auth_client.post(CHECKOUT_URL, data={"order_id": str(uuid.uuid4())}, content_type="application/json")
    assert r.status_code == 404
    assert r.json()["detail"] == "ORDER_NOT_FOUND"


@pytest.mark.django_db
def test_checkout_processor_outage_is_503_and_order_unchanged(auth_client, catalog_item, fake_processor):
    oid = _create_order(auth_client, catalog_item)
    fake_processor.should_succeed = False

    r = auth_client.post(CHECKOUT_URL, data={"order_id": oid}, content_type="application/json")
    assert r.status_code == 503
    assert r.json()["detail"] == "UPSTREAM_UNAVAILABLE"
    assert r.headers.get("Retry-After") == "1"
    assert OrderModel.objects.get(id=oid).external_session_key is None


@pytest.mark.django_db
def test_checkout_invalid_body_is_400(auth_client):
    r = auth_client.post(CHECKOUT_URL, data={"order_id": "not-a-uuid"}, content_type="application/json")
    assert r.status_code == 400


@pytest.mark.django_db
def test_checkout_requires_authentication(client):
    r = client.post(CHECKOUT_URL, data={"order_id": str(uuid.uuid4())}, content_type="application/json")
    assert r.status_code in (401, 403)


@pytest.mark.django_db
def test_return_pages_do_not_touch_orders(client, auth_client, catalog_item, fake_processor):
    oid = _create_order(auth_client, catalog_item)
    sid = auth_client.post(CHECKOUT_URL, data={"order_id": oid}, content_type="application/json").json()["session_id"]

    r = client.get(f"/payment/success?session_id={sid}")
    assert r.status_code == 200
    assert r.json()["session_id"] == sid
    assert client.get("/payment/cancel").json()["detail"] == "PAYMENT_CANCELLED"
    assert OrderModel.objects.get(id=oid).status == OrderStatus.PENDING.value


@pytest.mark.django_db
def test_checkout_rejected_by_processor_is_502_without_retry_hint(auth_client, catalog_item, fake_processor, monkeypatch):
    from apps.orders.domain import ProcessorRejected

    oid = _create_order(auth_client, catalog_item)

    def rejected(request):
        raise ProcessorRejected(detail="HTTP 400")

    monkeypatch.setattr(fake_processor, "create_session", rejected)
    r = auth_client.post(CHECKOUT_URL, data={"order_id": oid}, content_type="application/json")
    assert r.status_code == 502
    assert r.json()["detail"] == "PROCESSOR_REJECTED"
    assert "Retry-After" not in r.headers
    assert OrderModel.objects.get(id=oid).external_session_key is None


@pytest.mark.django_db
def test_checkout_session_is_described_by_catalog_item_name(auth_client, catalog_item, fake_processor):
    oid = _create_order(auth_client, catalog_item)
    auth_client.post(CHECKOUT_URL, data={"order_id": oid}, content_type="application/json")
    request = fake_processor.calls[0]["request"]
    assert request.description == "Mechanical keyboard"
    assert request.metadata["order_id"] == oid
