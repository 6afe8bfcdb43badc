from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field

from erp_billing.schemas.common import IDModel, Timestamped


class ProductCreate(BaseModel):
    name: str
    description: str | None = None
    price: Decimal = Field(default=Decimal("0"), ge=0)
    unit: str = "month"


class ProductUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    price: Decimal | None = Field(default=None, ge=0)
    unit: str | None = None


class ProductRead(IDModel, Timestamped):
    product_number: str
    name: str
    description: str | None = None
    price: Decimal
    unit: str
