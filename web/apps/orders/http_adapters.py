"""HTTP adapter for the payment processor with retries and a circuit breaker.

This module implements the ``CheckoutProcessor`` port using ``httpx``. It
adds:

- Request correlation: propagates ``X-Request-ID`` from a ContextVar set by
    the gateway middleware.
- A circuit breaker for the processor to avoid hammering an unhealthy
    dependency, with HALF_OPEN probing after a timeout.
- A retry policy with exponential backoff for transport errors and 5xx.
    Retrying session creation is safe because every call carries an
    ``Idempotency-Key``; the processor answers a replay with the session it
    already created.
- A bounded timeout per attempt (``HTTP_TIMEOUT_SECS``).

Every failure leaves this module as ``UpstreamUnavailable``; callers never
see raw ``httpx`` errors.
"""

import logging
import threading
import time
from typing import Optional

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

from .domain import CheckoutProcessor, CheckoutSession, ProcessorRejected, SessionRequest, UpstreamUnavailable

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")

logger = logging.getLogger("orders.processor")


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful probe; stays HALF_OPEN while a
      single probe is in flight; transitions back to OPEN on failure.

    The internal lock only guards the breaker's own counters; it is never
    held across the protected call.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"  # CLOSED | OPEN | HALF_OPEN
        self._opened_at = 0.0
        self._half_open_probe_in_flight = False

    @property
    def state(self) -> str:
        """Current breaker state with time-based transition handling."""
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._half_open_probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Check and update state before a protected call.

        Raises:
            RuntimeError: If the circuit is OPEN or a HALF_OPEN probe is busy.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise RuntimeError("CIRCUIT_OPEN")
            if st == "HALF_OPEN":
                # allow only one concurrent probe
                if self._half_open_probe_in_flight:
                    raise RuntimeError("CIRCUIT_HALF_OPEN_BUSY")
                self._half_open_probe_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._half_open_probe_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (self._failures >= self.fail_threshold and self._state != "OPEN"):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._half_open_probe_in_flight = False

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._half_open_probe_in_flight = False


processor_cb = CircuitBreaker(
    "processor",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Build base headers including X-Request-ID and any extras."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_attempts, backoff_base_seconds)."""
    return (
        max(1, getattr(settings, "HTTP_RETRY_MAX", 3)),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    """Retry only on transport errors or HTTP 5xx."""
    if exc is not None:
        return True
    if resp is not None and 500 <= resp.status_code < 600:
        return True
    return False


# ---------------- Processor Adapter ---------------- #

class HttpCheckoutProcessorClient(CheckoutProcessor):
    """HTTP client for the payment processor's checkout session API."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.PAYMENTS_PROCESSOR_BASE_URL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def create_session(self, request: SessionRequest) -> CheckoutSession:
        """Open a hosted checkout session.

        Business mappings:
        - 200/201 → ``CheckoutSession`` built from ``id`` and ``url``
        - other 4xx → ``ProcessorRejected``, not counted as a circuit
          failure and not retried

        Raises:
            UpstreamUnavailable: On transport errors or 5xx after retries, an
                open circuit or an unusable response.
            ProcessorRejected: When the processor refused the request.
        """
        payload = {
            "amount_cents": request.amount_cents,
            "currency": request.currency,
            "description": request.description,
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
            "metadata": request.metadata,
        }
        resp = self._post("/checkout/sessions", payload, {"Idempotency-Key": request.idempotency_key})
        try:
            data = resp.json()
            return CheckoutSession(session_key=str(data["id"]), redirect_url=str(data["url"]))
        except (ValueError, KeyError, TypeError) as e:
            raise UpstreamUnavailable("PROCESSOR_BAD_RESPONSE") from e

    def expire_session(self, session_key: str) -> None:
        self._post(f"/checkout/sessions/{session_key}/expire", {}, None)

    def _post(self, path: str, payload: dict, extra_headers: Optional[dict]) -> httpx.Response:
        max_attempts, backoff = _retry_policy()
        tries = 0

        try:
            state = processor_cb.before_call()
        except RuntimeError as e:
            raise UpstreamUnavailable(str(e)) from e
        headers = _request_headers({**(extra_headers or {}), "X-Circuit-State": state, "X-Retry-Count": "0"})

        try:
            with httpx.Client(timeout=self.timeout) as client:
                while True:
                    resp = None
                    exc = None
                    try:
                        resp = client.post(f"{self.base_url}{path}", json=payload, headers=headers)
                        if resp.status_code in (200, 201):
                            processor_cb.on_success()
                            return resp
                        if not _should_retry(resp, None):
                            processor_cb.on_success()  # business outcome, not a circuit failure
                            logger.warning(
                                "processor rejected request",
                                extra={"path": path, "status_code": resp.status_code},
                            )
                            raise ProcessorRejected(detail=f"HTTP {resp.status_code}")
                    except httpx.RequestError as e:
                        exc = e

                    tries += 1
                    headers["X-Retry-Count"] = str(tries)

                    if tries >= max_attempts:
                        processor_cb.on_failure()
                        logger.error(
                            "processor unavailable",
                            extra={"path": path, "attempts": tries, "error": repr(exc) if exc else resp.status_code},
                        )
                        raise UpstreamUnavailable(detail=repr(exc) if exc else f"HTTP {resp.status_code}") from exc

                    sleep_s = backoff * (2 ** (tries - 1))  # exponential backoff
                    cap = getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)
                    time.sleep(min(sleep_s, cap))
        finally:
            processor_cb.on_finish()
