"""Pydantic schemas for orders and checkout.

This module exposes lightweight request/validation schemas used by the
orders API, and the read models it renders.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .domain import Order


class CreateOrderDTO(BaseModel):
    """Schema for creating an order.

    Attributes:
        item_id: Catalog item to purchase. Price and currency are taken from
            the catalog, never from the client.
    """

    model_config = ConfigDict(extra="forbid")

    item_id: UUID


class CreateCheckoutSessionDTO(BaseModel):
    """Schema for opening a checkout session for an existing order.

    Accepts ``order_id`` or its camelCase alias ``orderId``.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    order_id: UUID = Field(alias="orderId")


class OrderReadDTO(BaseModel):
    id: UUID
    status: str
    item_id: UUID
    amount: Decimal
    amount_cents: int = Field(ge=0)
    currency: str
    checkout_session_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_order(cls, order: Order) -> "OrderReadDTO":
        return cls(
            id=order.id,
            status=order.status.value,
            item_id=order.item_id,
            amount=order.amount,
            amount_cents=order.amount_cents,
            currency=order.currency,
            checkout_session_id=order.external_session_key,
            created_at=order.created_at,
        )


class CheckoutSessionReadDTO(BaseModel):
    redirect_url: str
    session_id: str
