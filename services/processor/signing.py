"""Notification signatures.

``Webhook-Signature: t=<unix>,v1=<hex>`` where ``v1`` is the HMAC-SHA256 of
``b"<t>." + body`` under the merchant's webhook secret. The merchant
verifies the same construction; keep both sides in step.
"""

import hashlib
import hmac
import time
from typing import Optional


def sign(body: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    ts = int(time.time()) if timestamp is None else timestamp
    mac = hmac.new(secret.encode("utf-8"), str(ts).encode("ascii") + b"." + body, hashlib.sha256)
    return f"t={ts},v1={mac.hexdigest()}"
