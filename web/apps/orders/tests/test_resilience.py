import httpx
import pytest

from apps.orders.domain import ProcessorRejected, SessionRequest, UpstreamUnavailable
from apps.orders.http_adapters import CircuitBreaker, HttpCheckoutProcessorClient, processor_cb


def _request():
    return SessionRequest(9999, "USD", "Order 1", "http://ok", "http://cancel", "checkout-1")


@pytest.fixture(autouse=True)
def fast_retries(settings, monkeypatch):
    settings.HTTP_RETRY_MAX = 3
    settings.HTTP_RETRY_BACKOFF_BASE = 0.0
    monkeypatch.setattr("time.sleep", lambda *a, **k: None, raising=True)
    processor_cb.on_success()
    yield
    processor_cb.on_success()


def test_retries_on_5xx_then_succeeds(monkeypatch):
    calls = {"n": 0}

    def fake_post(self, url, json=None, headers=None, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            class R:
                status_code = 500
            return R()

        class R2:
            status_code = 201

            def json(self):
                return {"id": "cs_test_2", "url": "https://pay.test/cs_test_2"}
        assert headers["X-Retry-Count"] == "1"
        return R2()

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    session = HttpCheckoutProcessorClient(base_url="http://x").create_session(_request())
    assert session.session_key == "cs_test_2"
    assert calls["n"] == 2


def test_no_retry_on_4xx(monkeypatch):
    calls = {"n": 0}

    def fake_post(self, url, **kwargs):
        calls["n"] += 1

        class R:
            status_code = 409
        return R()

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    with pytest.raises(UpstreamUnavailable) as e:
        HttpCheckoutProcessorClient(base_url="http://x").create_session(_request())
    assert e.value.code == "PROCESSOR_REJECTED"
    assert isinstance(e.value, ProcessorRejected) and not e.value.retryable
    assert calls["n"] == 1
    # a rejection is an answer, the breaker stays closed
    assert processor_cb.state == "CLOSED"


def test_open_circuit_fails_fast(monkeypatch):
    def fake_post(self, url, **kwargs):
        raise AssertionError("no request while the circuit is open")

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    for _ in range(processor_cb.fail_threshold):
        processor_cb.on_failure()
    with pytest.raises(UpstreamUnavailable) as e:
        HttpCheckoutProcessorClient(base_url="http://x").create_session(_request())
    assert e.value.code == "CIRCUIT_OPEN"


def test_breaker_half_open_probe_and_reopen(monkeypatch):
    clock = {"t": 100.0}
    monkeypatch.setattr("time.monotonic", lambda: clock["t"])
    cb = CircuitBreaker("test", fail_threshold=2, reset_timeout=10)

    cb.on_failure()
    cb.on_failure()
    assert cb.state == "OPEN"

    clock["t"] += 10
    assert cb.before_call() == "HALF_OPEN"
    with pytest.raises(RuntimeError):
        cb.before_call()  # only one probe at a time
    cb.on_failure()
    assert cb.state == "OPEN"

    clock["t"] += 10
    cb.before_call()
    cb.on_success()
    assert cb.state == "CLOSED"
