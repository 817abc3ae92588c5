"""Repository layer for persisting orders.

This module implements the ``OrderStore`` port with the Django ORM. It keeps
a thin interface so the domain layer is not coupled to ORM details: every
method takes and returns domain ``Order`` objects.

Status changes and the session-key write are conditional ``UPDATE``
statements (``filter(...).update(...)``), so concurrent writers are ordered
by the database rather than by an in-process lock.
"""

import functools
import uuid
from typing import List, Optional

from django.db import InterfaceError, OperationalError
from django.utils import timezone

from .domain import Order, OrderStatus, TransientStorageError, ensure_transition
from .models import OrderModel


def translate_storage_errors(fn):
    """Translate retryable database failures into ``TransientStorageError``."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (OperationalError, InterfaceError) as exc:
            raise TransientStorageError(detail=str(exc)) from exc

    return wrapper


def to_domain(obj: OrderModel) -> Order:
    return Order(
        id=obj.id,
        owner_id=obj.owner_id,
        item_id=obj.item_id,
        amount_cents=obj.amount_cents,
        currency=obj.currency,
        status=OrderStatus(obj.status),
        external_session_key=obj.external_session_key,
        checkout_url=obj.checkout_url,
        created_at=obj.created_at,
    )


class OrderRepository:
    """Repository that persists Order domain objects using Django ORM."""

    @translate_storage_errors
    def create(self, order: Order) -> Order:
        """Persist a new order record and return it with store-assigned fields."""
        obj = OrderModel.objects.create(
            id=order.id,
            owner_id=order.owner_id,
            item_id=order.item_id,
            amount_cents=order.amount_cents,
            currency=order.currency,
            status=order.status.value,
        )
        return to_domain(obj)

    @translate_storage_errors
    def get_by_id(self, order_id: uuid.UUID) -> Optional[Order]:
        obj = OrderModel.objects.filter(id=order_id).first()
        return to_domain(obj) if obj else None

    @translate_storage_errors
    def get_by_session_key(self, session_key: str) -> Optional[Order]:
        if not session_key:
            return None
        obj = OrderModel.objects.filter(external_session_key=session_key).first()
        return to_domain(obj) if obj else None

    @translate_storage_errors
    def list_by_owner(self, owner_id: str) -> List[Order]:
        return [to_domain(o) for o in OrderModel.objects.filter(owner_id=owner_id).order_by("-created_at")]

    @translate_storage_errors
    def compare_and_set_status(self, order_id: uuid.UUID, expected: OrderStatus, new: OrderStatus) -> bool:
        ensure_transition(expected, new)
        updated = OrderModel.objects.filter(id=order_id, status=expected.value).update(
            status=new.value, updated_at=timezone.now()
        )
        return updated == 1

    @translate_storage_errors
    def attach_session(self, order_id: uuid.UUID, session_key: str, checkout_url: str) -> bool:
        updated = OrderModel.objects.filter(
            id=order_id,
            status=OrderStatus.PENDING.value,
            external_session_key__isnull=True,
        ).update(external_session_key=session_key, checkout_url=checkout_url, updated_at=timezone.now())
        return updated == 1
