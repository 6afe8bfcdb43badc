from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field

from erp_billing.models.invoice import InvoiceStatus
from erp_billing.models.open_item import OpenItemStatus
from erp_billing.schemas.common import IDModel, Timestamped


class InvoiceItemRead(IDModel):
    description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    tax_rate: Decimal
    line_total: Decimal
    product_id: UUID | None = None
    product_name: str | None = None
    period_start: date | None = None
    period_end: date | None = None


class InvoiceRead(IDModel, Timestamped):
    invoice_number: str
    invoice_date: date
    due_date: date
    status: InvoiceStatus
    total_amount: Decimal
    billing_address: str | None = None
    notes: str | None = None
    batch_id: str | None = None
    customer_id: UUID
    subscription_id: UUID | None = None
    items: list[InvoiceItemRead] = []


class OpenItemRead(IDModel, Timestamped):
    invoice_id: UUID | None = None
    description: str
    amount: Decimal
    paid_amount: Decimal
    due_date: date
    status: OpenItemStatus
    reminder_count: int
    last_reminder_date: date | None = None


class OpenItemPayment(BaseModel):
    amount: Decimal = Field(gt=0)
