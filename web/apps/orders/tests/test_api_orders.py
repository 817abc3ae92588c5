"""API tests for order creation and owner-scoped reads."""
import uuid

import pytest

from apps.catalog.models import CatalogItemModel
from apps.orders.models import OrderModel

LIST_URL = "/api/orders/"
DETAIL_URL = "/api/orders/{oid}/"


@pytest.mark.django_db
def test_create_order_persists_price_snapshot(auth_client, catalog_item, user):
    r = auth_client.post(LIST_URL, data={"item_id": str(catalog_item.id)}, content_type="application/json")
    assert r.status_code == 201
    body = r.json()
    uuid.UUID(body["id"])
    assert body["status"] == "PENDING"
    assert body["amount"] == "129.00"
    assert body["amount_cents"] == 12900
    assert body["checkout_session_id"] is None

    row = OrderModel.objects.values_list("status", "amount_cents", "currency", "owner_id").get(id=body["id"])
    assert row == ("PENDING", 12900, "USD", str(user.pk))


@pytest.mark.django_db
def test_create_order_requires_authentication(client, catalog_item):
    r = client.post(LIST_URL, data={"item_id": str(catalog_item.id)}, content_type="application/json")
    assert r.status_code in (401, 403)


@pytest.mark.django_db
def test_create_order_unknown_item_is_404(auth_client):
    r = auth_client.post(LIST_URL, data={"item_id": str(uuid.uuid4())}, content_type="application/json")
    assert r.status_code == 404
    assert r.json()["detail"] == "ITEM_NOT_FOUND"


@pytest.mark.django_db
def test_create_order_inactive_item_is_422(auth_client):
    item = CatalogItemModel.objects.create(name="Retired", price_cents=500, is_active=False)
    r = auth_client.post(LIST_URL, data={"item_id": str(item.id)}, content_type="application/json")
    assert r.status_code == 422
    assert r.json()["detail"] == "ITEM_UNAVAILABLE"


@pytest.mark.django_db
def test_create_order_rejects_client_supplied_amount(auth_client, catalog_item):
    payload = {"item_id": str(catalog_item.id), "amount_cents": 1}
    r = auth_client.post(LIST_URL, data=payload, content_type="application/json")
    assert r.status_code == 400


@pytest.mark.django_db
def test_idempotent_retry_replays_first_response(auth_client, catalog_item):
    payload = {"item_id": str(catalog_item.id)}
    r1 = auth_client.post(LIST_URL, data=payload, content_type="application/json", HTTP_IDEMPOTENCY_KEY="k-1")
    r2 = auth_client.post(LIST_URL, data=payload, content_type="application/json", HTTP_IDEMPOTENCY_KEY="k-1")
    assert r1.status_code == r2.status_code == 201
    assert r2.json() == r1.json()
    assert r2.headers.get("Idempotent-Replay") == "true"
    assert auth_client.get(LIST_URL).json()["count"] == 1


@pytest.mark.django_db
def test_idempotency_key_with_different_payload_is_409(auth_client, catalog_item):
    other = CatalogItemModel.objects.create(name="Mouse", price_cents=2500)
    auth_client.post(LIST_URL, data={"item_id": str(catalog_item.id)}, content_type="application/json", HTTP_IDEMPOTENCY_KEY="k-2")
    r = auth_client.post(LIST_URL, data={"item_id": str(other.id)}, content_type="application/json", HTTP_IDEMPOTENCY_KEY="k-2")
    assert r.status_code == 409
    assert r.json()["detail"] == "IDEMPOTENCY_CONFLICT"


@pytest.mark.django_db
def test_without_idempotency_key_identical_requests_create_two_orders(auth_client, catalog_item):
    payload = {"item_id": str(catalog_item.id)}
    a = auth_client.post(LIST_URL, data=payload, content_type="application/json").json()
    b = auth_client.post(LIST_URL, data=payload, content_type="application/json").json()
    assert a["id"] != b["id"]


@pytest.mark.django_db
def test_list_returns_only_callers_orders(auth_client, other_client, catalog_item):
    payload = {"item_id": str(catalog_item.id)}
    auth_client.post(LIST_URL, data=payload, content_type="application/json")
    auth_client.post(LIST_URL, data=payload, content_type="application/json")
    other_client.post(LIST_URL, data=payload, content_type="application/json")

    body = auth_client.get(LIST_URL).json()
    assert body["count"] == 2
    assert all({"id", "status", "amount", "amount_cents", "currency"} <= set(x) for x in body["results"])


@pytest.mark.django_db
def test_detail_is_owner_only(auth_client, other_client, catalog_item):
    oid = auth_client.post(LIST_URL, data={"item_id": str(catalog_item.id)}, content_type="application/json").json()["id"]

    r = auth_client.get(DETAIL_URL.format(oid=oid))
    assert r.status_code == 200 and r.json()["id"] == oid

    r = other_client.get(DETAIL_URL.format(oid=oid))
    assert r.status_code == 403
    assert r.json()["detail"] == "FORBIDDEN"


@pytest.mark.django_db
def test_detail_unknown_order_is_404(auth_client):
    r = auth_client.get(DETAIL_URL.format(oid=uuid.uuid4()))
    assert r.status_code == 404
    assert r.json()["detail"] == "NOT_FOUND"


@pytest.mark.django_db
def test_ping(client):
    r = client.get("/api/orders/ping/")
    assert r.status_code == 200 and r.json() == {"ok": True}


@pytest.mark.django_db
def test_retryable_failure_releases_idempotency_key(auth_client, catalog_item, monkeypatch):
    from apps.orders.domain import TransientStorageError
    from apps.orders.repository import OrderRepository

    real_create = OrderRepository.create
    calls = []

    def create_fails_once(self, order):
        calls.append(order.id)
        if len(calls) == 1:
            raise TransientStorageError()
        return real_create(self, order)

    monkeypatch.setattr(OrderRepository, "create", create_fails_once)
    payload = {"item_id": str(catalog_item.id)}

    r1 = auth_client.post(LIST_URL, data=payload, content_type="application/json", HTTP_IDEMPOTENCY_KEY="k-3")
    assert r1.status_code == 503
    assert r1.headers.get("Retry-After") == "1"

    r2 = auth_client.post(LIST_URL, data=payload, content_type="application/json", HTTP_IDEMPOTENCY_KEY="k-3")
    assert r2.status_code == 201
    assert r2.headers.get("Idempotent-Replay") is None

    r3 = auth_client.post(LIST_URL, data=payload, content_type="application/json", HTTP_IDEMPOTENCY_KEY="k-3")
    assert r3.status_code == 201
    assert r3.json() == r2.json()
    assert r3.headers.get("Idempotent-Replay") == "true"
    assert OrderModel.objects.count() == 1


@pytest.mark.django_db
def test_non_retryable_failure_is_replayed_for_same_key(auth_client):
    item = CatalogItemModel.objects.create(name="Retired", price_cents=100, is_active=False)
    payload = {"item_id": str(item.id)}
    r1 = auth_client.post(LIST_URL, data=payload, content_type="application/json", HTTP_IDEMPOTENCY_KEY="k-4")
    r2 = auth_client.post(LIST_URL, data=payload, content_type="application/json", HTTP_IDEMPOTENCY_KEY="k-4")
    assert r1.status_code == r2.status_code == 422
    assert r2.headers.get("Idempotent-Replay") == "true"


@pytest.mark.django_db
@pytest.mark.parametrize("page_size", ["0", "-1", "abc", ""])
def test_list_bad_page_size_falls_back_to_default(auth_client, catalog_item, page_size):
    auth_client.post(LIST_URL, data={"item_id": str(catalog_item.id)}, content_type="application/json")
    r = auth_client.get(LIST_URL, {"page_size": page_size})
    assert r.status_code == 200
    assert r.json()["page_size"] == 20
    assert r.json()["count"] == 1


@pytest.mark.django_db
def test_list_page_size_is_capped(auth_client):
    body = auth_client.get(LIST_URL, {"page_size": "5000"}).json()
    assert body["page_size"] == 100
