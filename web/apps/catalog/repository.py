"""Catalog adapter for the ordering flow.

Implements ``CatalogPort`` on top of the catalog table. The ordering domain
only ever asks for the current price and availability of one item, so this
is the whole surface it sees.
"""

import uuid
from typing import Optional

from apps.orders.domain import CatalogItem

from .models import CatalogItemModel


def to_item(obj: CatalogItemModel) -> CatalogItem:
    return CatalogItem(
        id=obj.id,
        name=obj.name,
        price_cents=obj.price_cents,
        currency=obj.currency,
        is_active=obj.is_active,
    )


class CatalogRepository:
    """Read-only catalog lookups backed by Django ORM."""

    def get_item(self, item_id: uuid.UUID) -> Optional[CatalogItem]:
        obj = CatalogItemModel.objects.filter(id=item_id).first()
        return to_item(obj) if obj else None
