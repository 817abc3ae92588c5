"""Wiring for the webhook endpoint.

``get_authenticator`` binds the shared secret and tolerance from settings;
``get_reconciler`` wires the Django order store and event ledger under a
single ``transaction.atomic`` block per event.
"""

from django.conf import settings
from django.db import transaction

from apps.orders.repository import OrderRepository

from .ledger import EventLedger
from .reconciler import Reconciler
from .signature import EventAuthenticator


def get_authenticator() -> EventAuthenticator:
    return EventAuthenticator(
        secret=settings.PAYMENTS_WEBHOOK_SECRET,
        tolerance=int(settings.PAYMENTS_WEBHOOK_TOLERANCE_SECS),
    )


def get_reconciler() -> Reconciler:
    return Reconciler(orders=OrderRepository(), ledger=EventLedger(), atomic=transaction.atomic)
