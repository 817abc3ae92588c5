"""Domain models, ports and services for orders and checkout.

This module contains the dataclasses used as DTOs for orders and catalog
items, the error taxonomy shared by the checkout and webhook flows, protocol
definitions (ports) for the collaborators the domain talks to (catalog,
order store, payment processor), and the two domain services:

- ``OrderService`` creates orders with a price snapshot and serves reads.
- ``CheckoutSessionIssuer`` opens a hosted payment session for a pending
  order and binds the processor's session key to it.

Nothing here imports Django; persistence and HTTP live behind the ports.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Protocol

logger = logging.getLogger("orders.checkout")


# ---- Enums ----
class OrderStatus(str, Enum):
    """Lifecycle of an order.

    ``PENDING`` is the only non-terminal state. ``PAID`` and ``FAILED`` are
    terminal: once reached, no further transition is allowed.
    """

    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


ALLOWED_TRANSITIONS = {
    (OrderStatus.PENDING, OrderStatus.PAID),
    (OrderStatus.PENDING, OrderStatus.FAILED),
}


# ---- Errors ----
class PaymentFlowError(ValueError):
    """Base class for the checkout/reconciliation error taxonomy.

    ``str(error)`` is always the stable error code, so views can map it to a
    response body the same way for every error kind. ``retryable`` tells the
    caller whether repeating the same request may succeed.
    """

    code = "PAYMENT_FLOW_ERROR"
    retryable = False

    def __init__(self, code: Optional[str] = None, detail: Optional[str] = None):
        if code:
            self.code = code
        self.detail = detail
        super().__init__(self.code)


class NotFound(PaymentFlowError):
    code = "NOT_FOUND"


class Forbidden(PaymentFlowError):
    code = "FORBIDDEN"


class Conflict(PaymentFlowError):
    """Illegal state transition or a non-pending precondition."""

    code = "CONFLICT"


class Unauthenticated(PaymentFlowError):
    """An inbound notification failed signature verification."""

    code = "UNAUTHENTICATED"


class UpstreamUnavailable(PaymentFlowError):
    code = "UPSTREAM_UNAVAILABLE"
    retryable = True


class ProcessorRejected(UpstreamUnavailable):
    """The processor answered but refused the request; repeating it will not help."""

    code = "PROCESSOR_REJECTED"
    retryable = False


class TransientStorageError(PaymentFlowError):
    code = "STORAGE_UNAVAILABLE"
    retryable = True


class PermanentEventError(PaymentFlowError):
    """An authentic event that can never be applied; do not redeliver."""

    code = "PERMANENT_EVENT_ERROR"


def ensure_transition(current: OrderStatus, new: OrderStatus) -> None:
    """Raise ``Conflict`` unless ``current -> new`` is an edge of the status DAG."""
    if (OrderStatus(current), OrderStatus(new)) not in ALLOWED_TRANSITIONS:
        raise Conflict("ILLEGAL_TRANSITION", f"{current} -> {new}")


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class CatalogItem:
    """Catalog entry as seen by the ordering flow.

    Attributes:
        id: Catalog item identifier.
        name: Display name, sent as the checkout session description.
        price_cents: Current price in integer minor units.
        currency: ISO currency code.
        is_active: Inactive items cannot be ordered.
    """

    id: uuid.UUID
    name: str
    price_cents: int
    currency: str = "USD"
    is_active: bool = True


@dataclass
class Order:
    """Container for order data.

    Attributes:
        id: Order identifier, generated at creation.
        owner_id: Identifier of the user who placed the order.
        item_id: Identifier of the purchased catalog item.
        amount_cents: Price snapshot taken from the catalog at creation time.
        currency: ISO currency code of ``amount_cents``.
        status: Current OrderStatus.
        external_session_key: Processor session key, set once at checkout.
        checkout_url: Hosted checkout URL that belongs to the session key.
        created_at: Creation timestamp assigned by the store.
    """

    id: uuid.UUID
    owner_id: str
    item_id: uuid.UUID
    amount_cents: int
    currency: str = "USD"
    status: OrderStatus = OrderStatus.PENDING
    external_session_key: Optional[str] = None
    checkout_url: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def amount(self) -> Decimal:
        return (Decimal(self.amount_cents) / 100).quantize(Decimal("0.01"))

    @property
    def is_terminal(self) -> bool:
        return self.status is not OrderStatus.PENDING


@dataclass(frozen=True)
class CheckoutSession:
    """A hosted payment session opened at the processor."""

    session_key: str
    redirect_url: str


@dataclass(frozen=True)
class SessionRequest:
    """Everything the processor needs to open a hosted session."""

    amount_cents: int
    currency: str
    description: str
    success_url: str
    cancel_url: str
    idempotency_key: str
    metadata: dict = field(default_factory=dict)


# ---- Ports (DIP) ----
class CatalogPort(Protocol):
    """Read access to the catalog: current price and availability."""

    def get_item(self, item_id: uuid.UUID) -> Optional[CatalogItem]:
        raise NotImplementedError()


class OrderStore(Protocol):
    """Durable order table.

    Status changes go exclusively through ``compare_and_set_status`` and the
    session key is written exclusively through ``attach_session``; both are
    conditional writes resolved by the storage layer, never read-then-write.
    """

    def create(self, order: Order) -> Order:
        raise NotImplementedError()

    def get_by_id(self, order_id: uuid.UUID) -> Optional[Order]:
        raise NotImplementedError()

    def get_by_session_key(self, session_key: str) -> Optional[Order]:
        raise NotImplementedError()

    def list_by_owner(self, owner_id: str) -> List[Order]:
        raise NotImplementedError()

    def compare_and_set_status(self, order_id: uuid.UUID, expected: OrderStatus, new: OrderStatus) -> bool:
        """Set ``new`` only if the stored status equals ``expected``.

        Returns:
            True when the row was updated, False when the stored status did
            not match (or the order does not exist).

        Raises:
            Conflict: If ``expected -> new`` is not an allowed transition.
            TransientStorageError: On retryable storage failures.
        """
        raise NotImplementedError()

    def attach_session(self, order_id: uuid.UUID, session_key: str, checkout_url: str) -> bool:
        """Record the session key once, only while the order is PENDING and unkeyed."""
        raise NotImplementedError()


class CheckoutProcessor(Protocol):
    """Port for the third-party payment processor."""

    def create_session(self, request: SessionRequest) -> CheckoutSession:
        """Open a hosted session.

        Raises:
            UpstreamUnavailable: When the processor cannot be reached or
                refuses the request.
        """
        raise NotImplementedError()

    def expire_session(self, session_key: str) -> None:
        raise NotImplementedError()


# ---- Domain services ----
class OrderService:
    """Creates orders and answers owner-scoped reads."""

    def __init__(self, catalog: CatalogPort, orders: OrderStore):
        self.catalog = catalog
        self.orders = orders

    def create_order(self, owner_id: str, item_id: uuid.UUID) -> Order:
        """Create a PENDING order for ``item_id`` priced at the current catalog price.

        Every call creates a new order; de-duplication is opt-in at the API
        layer through the ``Idempotency-Key`` header.

        Raises:
            NotFound: ``ITEM_NOT_FOUND`` when the catalog has no such item.
            Conflict: ``ITEM_UNAVAILABLE`` when the item is inactive.
        """
        item = self.catalog.get_item(item_id)
        if item is None:
            raise NotFound("ITEM_NOT_FOUND")
        if not item.is_active:
            raise Conflict("ITEM_UNAVAILABLE")

        order = Order(
            id=uuid.uuid4(),
            owner_id=str(owner_id),
            item_id=item.id,
            amount_cents=item.price_cents,
            currency=item.currency,
        )
        return self.orders.create(order)

    def get_for_owner(self, order_id: uuid.UUID, owner_id: str) -> Order:
        order = self.orders.get_by_id(order_id)
        if order is None:
            raise NotFound()
        if order.owner_id != str(owner_id):
            raise Forbidden()
        return order

    def list_for_owner(self, owner_id: str) -> List[Order]:
        return self.orders.list_by_owner(str(owner_id))


class CheckoutSessionIssuer:
    """Opens a hosted payment session for a pending order.

    The processor is asked for a session first; the returned session key is
    written onto the order only after the processor confirmed it, so a
    failed or timed-out call leaves the order untouched. The key is written
    with a set-once conditional update; a caller that loses that race gets
    the session that won, and its own session is expired at the processor.
    """

    def __init__(
        self,
        orders: OrderStore,
        processor: CheckoutProcessor,
        success_url: str,
        cancel_url: str,
        catalog: Optional[CatalogPort] = None,
    ):
        self.orders = orders
        self.catalog = catalog
        self.processor = processor
        self.success_url = success_url
        self.cancel_url = cancel_url

    def create_session(self, order_id: uuid.UUID, caller_id: str) -> CheckoutSession:
        """Return a checkout session for ``order_id`` on behalf of ``caller_id``.

        Raises:
            NotFound: ``ORDER_NOT_FOUND`` for an unknown order.
            Forbidden: When the caller does not own the order.
            Conflict: ``ORDER_NOT_PENDING`` when the order is already settled.
            UpstreamUnavailable: When the processor call failed.
            TransientStorageError: When the session key could not be stored.
        """
        order = self.orders.get_by_id(order_id)
        if order is None:
            raise NotFound("ORDER_NOT_FOUND")
        if order.owner_id != str(caller_id):
            raise Forbidden()
        if order.status is not OrderStatus.PENDING:
            raise Conflict("ORDER_NOT_PENDING", f"order is {order.status.value}")

        if order.external_session_key:
            return CheckoutSession(order.external_session_key, order.checkout_url or "")

        session = self.processor.create_session(
            SessionRequest(
                amount_cents=order.amount_cents,
                currency=order.currency,
                description=self._describe(order),
                success_url=self.success_url,
                cancel_url=self.cancel_url,
                idempotency_key=f"checkout-{order.id}",
                metadata={"order_id": str(order.id), "owner_id": order.owner_id},
            )
        )

        try:
            attached = self.orders.attach_session(order.id, session.session_key, session.redirect_url)
        except TransientStorageError:
            logger.error(
                "checkout session created but not stored",
                extra={"order_id": str(order.id), "session_key": session.session_key},
            )
            raise

        if attached:
            logger.info(
                "checkout session attached",
                extra={"order_id": str(order.id), "session_key": session.session_key},
            )
            return session

        current = self.orders.get_by_id(order.id)
        if current is not None and current.external_session_key == session.session_key:
            return session
        self._discard(session, order.id)
        if current is not None and current.status is OrderStatus.PENDING and current.external_session_key:
            return CheckoutSession(current.external_session_key, current.checkout_url or "")
        raise Conflict("ORDER_NOT_PENDING")

    def _describe(self, order: Order) -> str:
        # shown on the hosted page; the item may have been renamed or removed since
        item = self.catalog.get_item(order.item_id) if self.catalog is not None else None
        return item.name if item is not None and item.name else f"Order {order.id}"

    def _discard(self, session: CheckoutSession, order_id: uuid.UUID) -> None:
        logger.warning(
            "expiring superseded checkout session",
            extra={"order_id": str(order_id), "session_key": session.session_key},
        )
        try:
            self.processor.expire_session(session.session_key)
        except UpstreamUnavailable:
            logger.error(
                "could not expire superseded checkout session",
                extra={"order_id": str(order_id), "session_key": session.session_key},
            )
