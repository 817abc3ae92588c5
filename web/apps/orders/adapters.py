"""In-process stub adapters for the orders domain ports.

These stubs implement ``CatalogPort``, ``OrderStore`` and
``CheckoutProcessor`` without any network or database calls. They are
intended for unit tests and local development where deterministic behavior
is useful and external services are not required.

``InMemoryOrderStore`` keeps the same conditional-write contract as the
Django repository: its internal lock only guards the dictionary itself and
is never held while calling out to anything else.
"""

import copy
import threading
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .domain import (
    CatalogItem,
    CatalogPort,
    CheckoutProcessor,
    CheckoutSession,
    Order,
    OrderStatus,
    OrderStore,
    SessionRequest,
    UpstreamUnavailable,
    ensure_transition,
)


class CatalogStub(CatalogPort):
    """Dictionary-backed catalog.

    Items can be added and re-priced at runtime, which lets tests check that
    orders keep the price they were created with.
    """

    def __init__(self, items: Optional[List[CatalogItem]] = None):
        self.items: Dict[uuid.UUID, CatalogItem] = {i.id: i for i in (items or [])}

    def add(self, item: CatalogItem) -> CatalogItem:
        self.items[item.id] = item
        return item

    def get_item(self, item_id: uuid.UUID) -> Optional[CatalogItem]:
        return self.items.get(item_id)


class InMemoryOrderStore(OrderStore):
    """Order store kept in a dictionary, safe to share between threads."""

    def __init__(self):
        self._lock = threading.Lock()
        self._rows: Dict[uuid.UUID, Order] = {}

    def create(self, order: Order) -> Order:
        stored = copy.copy(order)
        stored.created_at = stored.created_at or datetime.now(timezone.utc)
        with self._lock:
            if stored.id in self._rows:
                raise ValueError("DUPLICATE_ORDER_ID")
            self._rows[stored.id] = stored
        return copy.copy(stored)

    def get_by_id(self, order_id: uuid.UUID) -> Optional[Order]:
        with self._lock:
            row = self._rows.get(order_id)
            return copy.copy(row) if row else None

    def get_by_session_key(self, session_key: str) -> Optional[Order]:
        if not session_key:
            return None
        with self._lock:
            for row in self._rows.values():
                if row.external_session_key == session_key:
                    return copy.copy(row)
        return None

    def list_by_owner(self, owner_id: str) -> List[Order]:
        with self._lock:
            rows = [copy.copy(r) for r in self._rows.values() if r.owner_id == owner_id]
        return sorted(rows, key=lambda r: r.created_at, reverse=True)

    def compare_and_set_status(self, order_id: uuid.UUID, expected: OrderStatus, new: OrderStatus) -> bool:
        ensure_transition(expected, new)
        with self._lock:
            row = self._rows.get(order_id)
            if row is None or row.status is not expected:
                return False
            row.status = new
            return True

    def attach_session(self, order_id: uuid.UUID, session_key: str, checkout_url: str) -> bool:
        with self._lock:
            row = self._rows.get(order_id)
            if row is None or row.status is not OrderStatus.PENDING or row.external_session_key:
                return False
            if any(r.external_session_key == session_key for r in self._rows.values()):
                raise ValueError("DUPLICATE_SESSION_KEY")
            row.external_session_key = session_key
            row.checkout_url = checkout_url
            return True


class FakeCheckoutProcessor(CheckoutProcessor):
    """Configurable fake processor.

    Sessions are keyed by the request's idempotency key, the way a real
    processor replays a request it has already seen. Set ``should_succeed``
    to False to simulate an outage.
    """

    def __init__(self, base_url: str = "https://checkout.example.test"):
        self.base_url = base_url
        self.should_succeed = True
        self.calls: List[dict] = []
        self.expired: List[str] = []
        self._sessions: Dict[str, CheckoutSession] = {}

    def create_session(self, request: SessionRequest) -> CheckoutSession:
        self.calls.append({"method": "create_session", "request": request})
        if not self.should_succeed:
            raise UpstreamUnavailable(detail="fake processor configured to fail")
        session = self._sessions.get(request.idempotency_key)
        if session is None:
            key = f"cs_test_{uuid.uuid4().hex[:24]}"
            session = CheckoutSession(session_key=key, redirect_url=f"{self.base_url}/pay/{key}")
            self._sessions[request.idempotency_key] = session
        return session

    def expire_session(self, session_key: str) -> None:
        self.calls.append({"method": "expire_session", "session_key": session_key})
        if not self.should_succeed:
            raise UpstreamUnavailable(detail="fake processor configured to fail")
        self.expired.append(session_key)
