from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlmodel import Field

from erp_billing.models.base import TimestampedModel, UUIDModel, money_field


class DueStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    OVERDUE = "overdue"
    PAUSED = "paused"
    PAID = "paid"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Schedules in these states are still owed and can be billed by a batch run.
OWED_STATUSES = (DueStatus.PENDING, DueStatus.ACTIVE, DueStatus.OVERDUE)
SETTLED_STATUSES = (DueStatus.PAID, DueStatus.COMPLETED)
UNSETTLED_STATUSES = (DueStatus.PENDING, DueStatus.ACTIVE, DueStatus.OVERDUE, DueStatus.PAUSED)


class DueSchedule(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "due_schedules"

    due_number: str = Field(unique=True, index=True, max_length=32)
    due_date: date = Field(index=True)
    period_start: date
    period_end: date
    amount: Decimal = money_field(default=Decimal("0"))
    status: DueStatus = Field(default=DueStatus.PENDING, index=True)
    paid_amount: Decimal = money_field(default=Decimal("0"))
    paid_date: date | None = Field(default=None)
    payment_method: str | None = Field(default=None, max_length=64)
    payment_reference: str | None = Field(default=None, max_length=128)
    reminder_count: int = Field(default=0)
    last_reminder_date: date | None = Field(default=None)
    notes: str | None = Field(default=None)
    subscription_id: UUID = Field(foreign_key="subscriptions.id", index=True)
    invoice_id: UUID | None = Field(default=None, foreign_key="invoices.id")

    @property
    def outstanding_amount(self) -> Decimal:
        return self.amount - (self.paid_amount or Decimal("0"))

    @property
    def is_settled(self) -> bool:
        return self.status in SETTLED_STATUSES
