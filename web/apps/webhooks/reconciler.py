"""Reconciliation of processor events with order state.

``Reconciler.process`` applies one authenticated event to the order it
references, at most once per event id:

1. Reserve the event id in the ledger. A reservation that already exists
   means the event was seen before; its recorded outcome is returned and no
   business logic runs again.
2. Find the order by the event's session key and move it with a
   compare-and-set from PENDING to the status the event type implies.
3. Record the outcome in the ledger.

   If any step fails, the reservation is released so a redelivery runs the
   event again.

All three steps run inside one ``atomic()`` block, so the ledger row and the
order mutation become visible together or not at all. Races between
deliveries for the same order are settled by the store's compare-and-set;
the loser re-reads the order and reports ALREADY_APPLIED or CONFLICT.

Status rules per order:

- PENDING + success event  -> PAID      (APPLIED)
- PENDING + failure event  -> FAILED    (APPLIED)
- PAID + success / FAILED + failure     (ALREADY_APPLIED, no-op)
- PAID + failure / FAILED + success     (CONFLICT, logged on ``payments.alerts``;
  the earlier terminal state is kept)
"""

import contextlib
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, ContextManager, Optional, Tuple

from apps.orders.domain import (
    Conflict,
    NotFound,
    OrderStatus,
    OrderStore,
    PermanentEventError,
    TransientStorageError,
)

from .events import Event
from .ledger import Ledger

logger = logging.getLogger("webhooks.reconciler")
alerts = logging.getLogger("payments.alerts")

PAID_EVENT_TYPES = frozenset({
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
})
FAILED_EVENT_TYPES = frozenset({
    "checkout.session.async_payment_failed",
    "checkout.session.expired",
})


class Outcome(str, Enum):
    APPLIED = "APPLIED"
    ALREADY_APPLIED = "ALREADY_APPLIED"
    IGNORED = "IGNORED"
    UNKNOWN_SESSION = "UNKNOWN_SESSION"
    CONFLICT = "CONFLICT"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class ProcessResult:
    event_id: str
    outcome: Outcome
    order_id: Optional[uuid.UUID] = None
    replayed: bool = False


def target_status(event_type: str) -> Optional[OrderStatus]:
    if event_type in PAID_EVENT_TYPES:
        return OrderStatus.PAID
    if event_type in FAILED_EVENT_TYPES:
        return OrderStatus.FAILED
    return None


class Reconciler:
    """Applies processor events to orders exactly once per event id.

    Args:
        orders: Order store used for lookup and compare-and-set.
        ledger: Idempotency ledger.
        atomic: Factory of the transaction context that wraps reservation,
            mutation and outcome recording (``django.db.transaction.atomic``
            in production).
    """

    def __init__(
        self,
        orders: OrderStore,
        ledger: Ledger,
        atomic: Callable[[], ContextManager] = contextlib.nullcontext,
    ):
        self.orders = orders
        self.ledger = ledger
        self.atomic = atomic

    def process(self, event: Event) -> ProcessResult:
        """Apply ``event`` and return what happened.

        Returns:
            ProcessResult: APPLIED, ALREADY_APPLIED or IGNORED; ``replayed``
            is True when the event id had been processed before.

        Raises:
            NotFound: ``UNKNOWN_SESSION`` when no order carries the event's
                session key. Terminal for this event.
            Conflict: ``CONFLICT`` when the event contradicts the order's
                terminal state. Terminal for this event.
            PermanentEventError: ``REJECTED`` for events that can never be
                applied (no session key, order id mismatch).
            TransientStorageError: On retryable storage failures, or when
                the same event is still being processed elsewhere.
        """
        reserved = False
        try:
            with self.atomic():
                reserved = self.ledger.try_reserve(event.id, event.type)
                if reserved:
                    outcome, order_id = self._apply(event)
                    self.ledger.record_outcome(event.id, outcome.value, order_id)
                    result = ProcessResult(event.id, outcome, order_id)
                else:
                    result = self._replay(event)
        except Exception:
            if reserved:
                self.ledger.release(event.id)
            raise

        logger.info(
            "event processed",
            extra={
                "event_id": event.id,
                "event_type": event.type,
                "outcome": result.outcome.value,
                "order_id": str(result.order_id) if result.order_id else None,
                "replayed": result.replayed,
            },
        )
        self._raise_for(result)
        return result

    def _replay(self, event: Event) -> ProcessResult:
        entry = self.ledger.get(event.id)
        if entry is None or not entry.outcome:
            raise TransientStorageError("EVENT_IN_FLIGHT", f"event {event.id} is being processed")
        return ProcessResult(event.id, Outcome(entry.outcome), entry.order_id, replayed=True)

    def _apply(self, event: Event) -> Tuple[Outcome, Optional[uuid.UUID]]:
        target = target_status(event.type)
        if target is None:
            return Outcome.IGNORED, None

        session_key = event.session_key
        if not session_key:
            logger.error("event without session key", extra={"event_id": event.id, "event_type": event.type})
            return Outcome.REJECTED, None

        order = self.orders.get_by_session_key(session_key)
        if order is None:
            logger.warning(
                "event references unknown session",
                extra={"event_id": event.id, "event_type": event.type, "session_key": session_key},
            )
            return Outcome.UNKNOWN_SESSION, None

        claimed = event.metadata.get("order_id")
        if claimed and str(claimed) != str(order.id):
            logger.error(
                "event metadata does not match session owner",
                extra={"event_id": event.id, "session_key": session_key, "order_id": str(order.id), "claimed": claimed},
            )
            return Outcome.REJECTED, order.id

        current = order.status
        if current is OrderStatus.PENDING:
            if self.orders.compare_and_set_status(order.id, OrderStatus.PENDING, target):
                return Outcome.APPLIED, order.id
            # lost the race; settle against whatever won
            reread = self.orders.get_by_id(order.id)
            current = reread.status if reread else current

        if current is target:
            return Outcome.ALREADY_APPLIED, order.id

        alerts.error(
            "terminal state conflict",
            extra={
                "event_id": event.id,
                "event_type": event.type,
                "order_id": str(order.id),
                "session_key": session_key,
                "current_status": current.value,
                "attempted_status": target.value,
            },
        )
        return Outcome.CONFLICT, order.id

    @staticmethod
    def _raise_for(result: ProcessResult) -> None:
        detail = f"event {result.event_id}"
        if result.outcome is Outcome.UNKNOWN_SESSION:
            raise NotFound(Outcome.UNKNOWN_SESSION.value, detail)
        if result.outcome is Outcome.CONFLICT:
            raise Conflict(Outcome.CONFLICT.value, detail)
        if result.outcome is Outcome.REJECTED:
            raise PermanentEventError(Outcome.REJECTED.value, detail)
