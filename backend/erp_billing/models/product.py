from __future__ import annotations

from decimal import Decimal

from sqlmodel import Field

from erp_billing.models.base import TimestampedModel, UUIDModel, money_field


class Product(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "products"

    product_number: str = Field(unique=True, index=True, max_length=32)
    name: str = Field(index=True)
    description: str | None = Field(default=None)
    price: Decimal = money_field(default=Decimal("0"))
    unit: str = Field(default="month", max_length=32)
