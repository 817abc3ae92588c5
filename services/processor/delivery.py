"""Delivery of signed notifications to the merchant.

Each attempt is signed afresh (new timestamp) over the stored body. Transport
errors and 5xx answers are retried with exponential backoff; any other status
ends delivery, since the merchant answers 2xx for everything it accepted and
4xx for bodies it will never accept.
"""

import logging
import os
import time
from typing import Optional

import httpx

from repo import EventsRepo
from signing import sign

WEBHOOK_URL = os.getenv("WEBHOOK_URL", "http://web:8000/api/webhooks/payments/")
WEBHOOK_SECRET = os.getenv("WEBHOOK_SECRET", "whsec_dev")
SIGNATURE_HEADER = os.getenv("SIGNATURE_HEADER", "Webhook-Signature")
DELIVERY_TIMEOUT_SECS = float(os.getenv("DELIVERY_TIMEOUT_SECS", "5.0"))
DELIVERY_MAX_ATTEMPTS = max(1, int(os.getenv("DELIVERY_MAX_ATTEMPTS", "3")))
DELIVERY_BACKOFF_BASE = float(os.getenv("DELIVERY_BACKOFF_BASE", "0.5"))

logger = logging.getLogger("processor.delivery")


def _client() -> httpx.Client:
    return httpx.Client(timeout=DELIVERY_TIMEOUT_SECS)


def deliver(event_id: str, request_id: Optional[str] = None) -> Optional[int]:
    """Send stored event ``event_id`` to ``WEBHOOK_URL``.

    Returns:
        The last HTTP status received, or None if no attempt got an answer
        (unknown event or transport errors only).
    """
    repo = EventsRepo()
    evt = repo.get(event_id)
    if evt is None:
        logger.warning("delivery skipped: unknown event", extra={"event_id": event_id, "request_id": request_id})
        return None

    last_status = None
    with _client() as client:
        for attempt in range(1, DELIVERY_MAX_ATTEMPTS + 1):
            headers = {"Content-Type": "application/json", SIGNATURE_HEADER: sign(evt.body, WEBHOOK_SECRET)}
            if request_id:
                headers["X-Request-ID"] = request_id
            try:
                resp = client.post(WEBHOOK_URL, content=evt.body, headers=headers)
                last_status = resp.status_code
            except httpx.RequestError as e:
                last_status = None
                logger.warning(
                    "delivery attempt failed",
                    extra={"event_id": event_id, "attempt": attempt, "error": repr(e), "request_id": request_id},
                )
            repo.record_attempt(event_id, last_status)

            if last_status is not None and last_status < 500:
                logger.info(
                    "event delivered",
                    extra={"event_id": event_id, "event_type": evt.type, "status_code": last_status,
                           "attempt": attempt, "request_id": request_id},
                )
                return last_status
            if attempt < DELIVERY_MAX_ATTEMPTS:
                time.sleep(DELIVERY_BACKOFF_BASE * (2 ** (attempt - 1)))

    logger.error(
        "event delivery gave up",
        extra={"event_id": event_id, "attempts": DELIVERY_MAX_ATTEMPTS, "status_code": last_status,
               "request_id": request_id},
    )
    return last_status
