"""Tests for the database-backed event ledger."""
import uuid

import pytest
from django.db import transaction

from apps.webhooks.ledger import EventLedger


@pytest.mark.django_db(transaction=True)
def test_reserve_is_first_writer_wins():
    ledger = EventLedger()
    assert ledger.try_reserve("evt_1", "checkout.session.completed") is True
    assert ledger.try_reserve("evt_1", "checkout.session.completed") is False
    entry = ledger.get("evt_1")
    assert entry.outcome == ""
    assert entry.event_type == "checkout.session.completed"


@pytest.mark.django_db
def test_duplicate_reserve_keeps_outer_transaction_usable():
    ledger = EventLedger()
    oid = uuid.uuid4()
    with transaction.atomic():
        ledger.try_reserve("evt_2", "checkout.session.completed")
        ledger.record_outcome("evt_2", "APPLIED", oid)
        assert ledger.try_reserve("evt_2", "checkout.session.completed") is False
        assert ledger.get("evt_2").outcome == "APPLIED"
    assert ledger.get("evt_2").order_id == oid


@pytest.mark.django_db(transaction=True)
def test_rolled_back_reservation_leaves_no_entry():
    ledger = EventLedger()
    with pytest.raises(RuntimeError):
        with transaction.atomic():
            ledger.try_reserve("evt_3", "checkout.session.completed")
            raise RuntimeError("order update failed")
    assert ledger.get("evt_3") is None
    assert ledger.try_reserve("evt_3", "checkout.session.completed") is True


def test_get_unknown_is_none(db):
    assert EventLedger().get("evt_missing") is None
