from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlmodel import Field

from erp_billing.models.base import TimestampedModel, UUIDModel, money_field


class OpenItemStatus(str, Enum):
    OPEN = "open"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class OpenItem(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "open_items"

    invoice_id: UUID | None = Field(default=None, foreign_key="invoices.id", index=True)
    description: str
    amount: Decimal = money_field(default=Decimal("0"))
    paid_amount: Decimal = money_field(default=Decimal("0"))
    due_date: date = Field(index=True)
    status: OpenItemStatus = Field(default=OpenItemStatus.OPEN, index=True)
    reminder_count: int = Field(default=0)
    last_reminder_date: date | None = Field(default=None)

    @property
    def outstanding_amount(self) -> Decimal:
        return self.amount - (self.paid_amount or Decimal("0"))
