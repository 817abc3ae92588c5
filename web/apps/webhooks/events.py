"""Typed processor events.

The processor posts a JSON envelope::

    {"id": "evt_...", "type": "checkout.session.completed", "created": 1700000000,
     "data": {"object": {"id": "cs_...", "metadata": {"order_id": "..."}}}}

``parse_event`` turns already-authenticated bytes into an ``Event``. It must
never be called on bytes that have not passed signature verification.
"""

from dataclasses import dataclass, field
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from apps.orders.domain import PermanentEventError


class _EventData(BaseModel):
    object: dict


class EventEnvelope(BaseModel):
    """Validation schema for the notification body."""

    id: str = Field(min_length=1, max_length=255)
    type: str = Field(min_length=1, max_length=128)
    created: Optional[int] = None
    data: _EventData


@dataclass(frozen=True)
class Event:
    """An authenticated processor notification.

    Attributes:
        id: Processor-assigned unique event identifier (idempotency key).
        type: Event type, e.g. ``checkout.session.completed``.
        payload: The event's ``data.object``; for checkout events this is
            the session, whose ``id`` is the correlation key.
        created: Processor timestamp, informational.
    """

    id: str
    type: str
    payload: dict = field(default_factory=dict)
    created: Optional[int] = None

    @property
    def session_key(self) -> Optional[str]:
        key = self.payload.get("id")
        return str(key) if key else None

    @property
    def metadata(self) -> dict:
        md = self.payload.get("metadata")
        return md if isinstance(md, dict) else {}


def parse_event(raw_body: bytes) -> Event:
    """Decode an authenticated body into an ``Event``.

    Raises:
        PermanentEventError: ``MALFORMED_EVENT`` when the body is not a JSON
            object with ``id``, ``type`` and ``data.object``.
    """
    try:
        env = EventEnvelope.model_validate_json(raw_body)
    except ValidationError as e:
        raise PermanentEventError("MALFORMED_EVENT", str(e)) from e
    return Event(id=env.id, type=env.type, payload=env.data.object, created=env.created)
