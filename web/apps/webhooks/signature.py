"""Authentication of inbound processor notifications.

The processor signs every notification with a secret shared only with this
service. The signature header looks like::

    t=1700000000,v1=5257a869e7ecebeda32affa62cdca3fa51cad7e77a0e56ff536d0ce8e108d8bd

where ``v1`` is the hex HMAC-SHA256 of ``b"<t>." + raw_body``. Several
``v1`` entries may be present while the processor rotates secrets; any one
matching is enough.

Verification runs over the exact bytes received, before anything parses
them. A body that was re-serialized on the way (same JSON, different
bytes) fails verification.
"""

import hashlib
import hmac
import time
from typing import Callable, List, Optional, Tuple

from apps.orders.domain import Unauthenticated

from .events import Event, parse_event

SCHEME = "v1"


def compute_signature(raw_body: bytes, secret: str, timestamp: int) -> str:
    signed = str(timestamp).encode("ascii") + b"." + raw_body
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def sign(raw_body: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a signature header for ``raw_body`` (used by tests and tooling)."""
    ts = int(time.time()) if timestamp is None else timestamp
    return f"t={ts},{SCHEME}={compute_signature(raw_body, secret, ts)}"


def parse_signature_header(header: str) -> Tuple[int, List[str]]:
    """Split a signature header into its timestamp and candidate signatures.

    Raises:
        Unauthenticated: ``MALFORMED_SIGNATURE`` when the timestamp is
            missing or not an integer, or no ``v1`` entry is present.
    """
    timestamp = None
    signatures = []
    for part in header.split(","):
        name, sep, value = part.strip().partition("=")
        if not sep or not value:
            continue
        if name == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise Unauthenticated("MALFORMED_SIGNATURE") from None
        elif name == SCHEME:
            signatures.append(value)
    if timestamp is None or not signatures:
        raise Unauthenticated("MALFORMED_SIGNATURE")
    return timestamp, signatures


def authenticate(
    raw_body: bytes,
    signature_header: Optional[str],
    secret: str,
    tolerance: int = 300,
    now: Optional[float] = None,
) -> Event:
    """Verify ``raw_body`` against ``signature_header`` and decode it.

    Args:
        raw_body: Exact request body bytes as received.
        signature_header: Value of the processor's signature header.
        secret: Shared signing secret.
        tolerance: Maximum age (and clock skew) of the signature timestamp in
            seconds; 0 disables the check.
        now: Current unix time, defaults to ``time.time()``.

    Returns:
        Event: The decoded event, only after the signature matched.

    Raises:
        Unauthenticated: Missing secret or header, malformed header, stale
            timestamp or signature mismatch.
        PermanentEventError: ``MALFORMED_EVENT`` for an authentic body that
            is not a valid event envelope.
    """
    if not secret:
        raise Unauthenticated("WEBHOOK_SECRET_MISSING")
    if not signature_header:
        raise Unauthenticated("MISSING_SIGNATURE")

    timestamp, candidates = parse_signature_header(signature_header)
    current = time.time() if now is None else now
    if tolerance and abs(current - timestamp) > tolerance:
        raise Unauthenticated("TIMESTAMP_OUT_OF_TOLERANCE")

    expected = compute_signature(raw_body, secret, timestamp).encode("ascii")
    if not any(hmac.compare_digest(expected, c.encode("utf-8")) for c in candidates):
        raise Unauthenticated("SIGNATURE_MISMATCH")

    return parse_event(raw_body)


class EventAuthenticator:
    """``authenticate`` bound to a secret, tolerance and clock."""

    def __init__(self, secret: str, tolerance: int = 300, clock: Callable[[], float] = time.time):
        self.secret = secret
        self.tolerance = tolerance
        self.clock = clock

    def authenticate(self, raw_body: bytes, signature_header: Optional[str]) -> Event:
        return authenticate(raw_body, signature_header, self.secret, self.tolerance, now=self.clock())
