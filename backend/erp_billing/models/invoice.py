from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlmodel import Field

from erp_billing.models.base import TimestampedModel, UUIDModel, money_field


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    ACTIVE = "active"
    CANCELLED = "cancelled"


class Invoice(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "invoices"

    invoice_number: str = Field(unique=True, index=True, max_length=32)
    invoice_date: date = Field(index=True)
    due_date: date
    status: InvoiceStatus = Field(default=InvoiceStatus.DRAFT, index=True)
    total_amount: Decimal = money_field(default=Decimal("0"))
    billing_address: str | None = Field(default=None)
    notes: str | None = Field(default=None)
    batch_id: str | None = Field(default=None, index=True, max_length=40)
    customer_id: UUID = Field(foreign_key="customers.id", index=True)
    subscription_id: UUID | None = Field(default=None, foreign_key="subscriptions.id")


class InvoiceItem(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "invoice_items"

    invoice_id: UUID = Field(foreign_key="invoices.id", index=True)
    description: str
    quantity: Decimal = Field(default=Decimal("1"), max_digits=12, decimal_places=3)
    unit: str = Field(default="month", max_length=32)
    unit_price: Decimal = money_field(default=Decimal("0"))
    tax_rate: Decimal = Field(default=Decimal("0"), max_digits=5, decimal_places=2)
    line_total: Decimal = money_field(default=Decimal("0"))
    product_id: UUID | None = Field(default=None, foreign_key="products.id")
    product_name: str | None = Field(default=None)
    period_start: date | None = Field(default=None)
    period_end: date | None = Field(default=None)
