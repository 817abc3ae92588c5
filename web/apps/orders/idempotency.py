"""Idempotency utilities for safely handling duplicate client requests.

Order creation is deliberately not de-duplicated: two identical calls make
two orders. A client that wants retry safety sends an ``Idempotency-Key``
header; this module stores the first response under that key (scoped to the
caller) so a retry replays it instead of creating another order, and
detects a key reused with a different payload.
"""

import hashlib, json
from django.db import transaction, IntegrityError
from .models import IdempotencyKey


def _hash(payload: dict) -> str:
    """Compute a stable SHA-256 hash for a JSON-serializable payload.

    The payload is serialized with sorted keys and compact separators to
    ensure a deterministic representation before hashing.
    """
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@transaction.atomic
def get_or_create_idempotent(owner_id: str, key: str, payload: dict):
    """Get-or-create an idempotency record for ``(owner_id, key)``.

    Behavior:
        - First request with a new key: create a record and return
          ``(False, rec)``; the caller finalizes it with the response.
        - Same key and same payload: lock the record and return
          ``(True, rec)`` so the stored response can be replayed.
        - Same key but different payload: raise
          ``ValueError("IDEMPOTENCY_CONFLICT")``.

    The create path runs in a nested savepoint so an IntegrityError only
    rolls back that block; the existing-record path takes a row lock
    (SELECT ... FOR UPDATE) to avoid races under concurrency.

    Returns:
        tuple[bool, IdempotencyKey]: ``(existing, rec)``.
    """
    h = _hash(payload)

    try:
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(
                owner_id=owner_id, key=key, request_hash=h, response_status=0, response_body={}
            )
            return False, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(owner_id=owner_id, key=key)
        if rec.request_hash != h:
            raise ValueError("IDEMPOTENCY_CONFLICT")
        return True, rec


def finalize(rec: IdempotencyKey, status_code: int, body: dict, order_id=None):
    """Persist the final response for an idempotent request.

    Subsequent retries with the same key return this stored response
    without re-running side effects.
    """
    rec.response_status = status_code
    rec.response_body = body
    if order_id is not None:
        rec.order_id = order_id
    rec.save(update_fields=["response_status", "response_body", "order_id"])


def release(rec: IdempotencyKey):
    """Drop an unfinished record so the same key can run the request again.

    Used when the request failed with a retryable error: nothing was created,
    and keeping the record would answer every retry with
    ``IDEMPOTENCY_IN_PROGRESS``.
    """
    IdempotencyKey.objects.filter(pk=rec.pk, response_status=0).delete()
