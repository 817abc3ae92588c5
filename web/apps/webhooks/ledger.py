"""Idempotency ledger for processor events.

``try_reserve`` is the gate: it inserts the event id and reports whether
this caller is the first to do so. The Django ledger relies on the unique
constraint of ``processed_events.event_id``; the insert runs in a savepoint
so a duplicate only rolls back that statement, leaving the surrounding
transaction usable for reading the recorded outcome.

``release`` drops a reservation that never got an outcome, so a failed
attempt does not block redelivery of the same event.
"""

import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol

from django.db import IntegrityError, transaction

from apps.orders.repository import translate_storage_errors

from .models import ProcessedEvent


@dataclass(frozen=True)
class LedgerEntry:
    event_id: str
    event_type: str
    outcome: str
    order_id: Optional[uuid.UUID]
    processed_at: Optional[datetime]


class Ledger(Protocol):
    def try_reserve(self, event_id: str, event_type: str) -> bool:
        raise NotImplementedError()

    def record_outcome(self, event_id: str, outcome: str, order_id: Optional[uuid.UUID] = None) -> None:
        raise NotImplementedError()

    def get(self, event_id: str) -> Optional[LedgerEntry]:
        raise NotImplementedError()

    def release(self, event_id: str) -> None:
        raise NotImplementedError()


class EventLedger(Ledger):
    """Ledger persisted in the ``processed_events`` table."""

    @translate_storage_errors
    def try_reserve(self, event_id: str, event_type: str) -> bool:
        try:
            with transaction.atomic():
                ProcessedEvent.objects.create(event_id=event_id, event_type=event_type)
            return True
        except IntegrityError:
            return False

    @translate_storage_errors
    def record_outcome(self, event_id: str, outcome: str, order_id: Optional[uuid.UUID] = None) -> None:
        ProcessedEvent.objects.filter(event_id=event_id).update(outcome=outcome, order_id=order_id)

    @translate_storage_errors
    def get(self, event_id: str) -> Optional[LedgerEntry]:
        row = ProcessedEvent.objects.filter(event_id=event_id).first()
        if row is None:
            return None
        return LedgerEntry(row.event_id, row.event_type, row.outcome, row.order_id, row.processed_at)

    @translate_storage_errors
    def release(self, event_id: str) -> None:
        # normally a no-op: the rollback already removed the reservation
        ProcessedEvent.objects.filter(event_id=event_id, outcome="").delete()


class InMemoryEventLedger(Ledger):
    """Dictionary-backed ledger for unit tests.

    It has no transactions: between ``try_reserve`` and ``record_outcome``
    another caller sees the entry with an empty outcome.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._rows: Dict[str, LedgerEntry] = {}

    def try_reserve(self, event_id: str, event_type: str) -> bool:
        with self._lock:
            if event_id in self._rows:
                return False
            self._rows[event_id] = LedgerEntry(event_id, event_type, "", None, datetime.now(timezone.utc))
            return True

    def record_outcome(self, event_id: str, outcome: str, order_id: Optional[uuid.UUID] = None) -> None:
        with self._lock:
            row = self._rows[event_id]
            self._rows[event_id] = LedgerEntry(row.event_id, row.event_type, outcome, order_id, row.processed_at)

    def get(self, event_id: str) -> Optional[LedgerEntry]:
        with self._lock:
            return self._rows.get(event_id)

    def release(self, event_id: str) -> None:
        with self._lock:
            row = self._rows.get(event_id)
            if row is not None and not row.outcome:
                del self._rows[event_id]

    def __len__(self) -> int:
        return len(self._rows)
