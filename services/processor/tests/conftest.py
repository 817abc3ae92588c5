"""Fixtures for the sandbox processor tests.

The database is a throwaway SQLite file, configured before ``repo`` is
imported so the engine binds to it.
"""
import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(tempfile.mkdtemp(prefix="processor-tests-"), "processor.db")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import delivery  # noqa: E402
import main  # noqa: E402


class Recorder:
    """Stands in for the merchant endpoint; answers with scripted statuses.

    Replaces the delivery HTTP client, so it also acts as the context manager.
    """

    def __init__(self):
        self.requests = []
        self.statuses = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def post(self, url, content=None, headers=None, **kwargs):
        self.requests.append({"url": url, "body": content, "headers": dict(headers or {})})
        status = self.statuses.pop(0) if self.statuses else 200

        class R:
            status_code = status

        if isinstance(status, Exception):
            raise status
        return R()


@pytest.fixture
def merchant(monkeypatch):
    rec = Recorder()
    monkeypatch.setattr(delivery, "_client", lambda: rec)
    monkeypatch.setattr(delivery, "WEBHOOK_SECRET", "whsec_sandbox")
    monkeypatch.setattr(delivery, "DELIVERY_BACKOFF_BASE", 0.0)
    return rec


@pytest.fixture
def api(merchant):
    return TestClient(main.app)


@pytest.fixture
def session_payload():
    return {
        "amount_cents": 12900,
        "currency": "USD",
        "description": "Order 1",
        "success_url": "http://localhost:8000/payment/success",
        "cancel_url": "http://localhost:8000/payment/cancel",
        "metadata": {"order_id": "11111111-1111-1111-1111-111111111111"},
    }
