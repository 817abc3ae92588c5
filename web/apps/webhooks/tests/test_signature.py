"""Tests for notification signature verification."""
import json

import pytest

from apps.orders.domain import PermanentEventError, Unauthenticated
from apps.webhooks.signature import EventAuthenticator, authenticate, compute_signature, parse_signature_header, sign

SECRET = "whsec_unit"
NOW = 1_700_000_000


def _body(**overrides):
    event = {
        "id": "evt_1",
        "type": "checkout.session.completed",
        "created": NOW,
        "data": {"object": {"id": "cs_test_1", "metadata": {"order_id": "o-1"}}},
    }
    event.update(overrides)
    return json.dumps(event).encode()


def test_valid_signature_returns_event():
    body = _body()
    event = authenticate(body, sign(body, SECRET, NOW), SECRET, now=NOW)
    assert event.id == "evt_1"
    assert event.type == "checkout.session.completed"
    assert event.session_key == "cs_test_1"
    assert event.metadata == {"order_id": "o-1"}


@pytest.mark.parametrize("mutate", [
    lambda b: b + b" ",
    lambda b: b.replace(b"cs_test_1", b"cs_test_2"),
    lambda b: json.dumps(json.loads(b), indent=2).encode(),
])
def test_tampered_body_fails(mutate):
    body = _body()
    header = sign(body, SECRET, NOW)
    with pytest.raises(Unauthenticated) as e:
        authenticate(mutate(body), header, SECRET, now=NOW)
    assert e.value.code == "SIGNATURE_MISMATCH"


def test_wrong_secret_fails():
    body = _body()
    with pytest.raises(Unauthenticated):
        authenticate(body, sign(body, "whsec_other", NOW), SECRET, now=NOW)


def test_altered_header_fails():
    body = _body()
    header = sign(body, SECRET, NOW)
    flipped = header[:-1] + ("0" if header[-1] != "0" else "1")
    with pytest.raises(Unauthenticated):
        authenticate(body, flipped, SECRET, now=NOW)


def test_replayed_old_signature_is_outside_tolerance():
    body = _body()
    header = sign(body, SECRET, NOW - 301)
    with pytest.raises(Unauthenticated) as e:
        authenticate(body, header, SECRET, tolerance=300, now=NOW)
    assert e.value.code == "TIMESTAMP_OUT_OF_TOLERANCE"


def test_any_matching_v1_is_accepted():
    body = _body()
    good = compute_signature(body, SECRET, NOW)
    header = f"t={NOW},v1={'0' * 64},v1={good}"
    assert authenticate(body, header, SECRET, now=NOW).id == "evt_1"


@pytest.mark.parametrize("header,code", [
    (None, "MISSING_SIGNATURE"),
    ("", "MISSING_SIGNATURE"),
    ("v1=abc", "MALFORMED_SIGNATURE"),
    ("t=abc,v1=abc", "MALFORMED_SIGNATURE"),
    (f"t={NOW}", "MALFORMED_SIGNATURE"),
])
def test_missing_or_malformed_header(header, code):
    with pytest.raises(Unauthenticated) as e:
        authenticate(_body(), header, SECRET, now=NOW)
    assert e.value.code == code


def test_empty_secret_never_verifies():
    body = _body()
    with pytest.raises(Unauthenticated) as e:
        authenticate(body, sign(body, "", NOW), "", now=NOW)
    assert e.value.code == "WEBHOOK_SECRET_MISSING"


def test_non_ascii_signature_is_a_mismatch_not_a_crash():
    body = _body()
    with pytest.raises(Unauthenticated):
        authenticate(body, f"t={NOW},v1=ü", SECRET, now=NOW)


def test_authentic_but_malformed_event_is_permanent_error():
    body = b'{"id": "evt_1"}'
    with pytest.raises(PermanentEventError) as e:
        authenticate(body, sign(body, SECRET, NOW), SECRET, now=NOW)
    assert e.value.code == "MALFORMED_EVENT"


def test_parse_header_keeps_all_candidates():
    ts, sigs = parse_signature_header("t=5, v1=aa ,v0=zz,v1=bb")
    assert ts == 5 and sigs == ["aa", "bb"]


def test_authenticator_uses_its_clock():
    body = _body()
    auth = EventAuthenticator(SECRET, tolerance=300, clock=lambda: NOW + 1000)
    with pytest.raises(Unauthenticated):
        auth.authenticate(body, sign(body, SECRET, NOW))
