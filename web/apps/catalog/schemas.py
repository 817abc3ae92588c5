"""Pydantic schemas for the catalog API."""

from uuid import UUID

from pydantic import BaseModel, Field, field_validator

CURRENCIES = {"EUR", "USD", "GBP"}


class CreateCatalogItemDTO(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    price_cents: int = Field(gt=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    is_active: bool = True

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        v2 = v.upper()
        if v2 not in CURRENCIES:
            raise ValueError("Unsupported currency")
        return v2


class CatalogItemReadDTO(BaseModel):
    id: UUID
    name: str
    description: str
    price_cents: int
    currency: str
    is_active: bool
