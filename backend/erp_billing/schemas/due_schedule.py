from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from erp_billing.models.due_schedule import DueStatus
from erp_billing.schemas.common import IDModel, Timestamped


class DueScheduleRead(IDModel, Timestamped):
    due_number: str
    due_date: date
    period_start: date
    period_end: date
    amount: Decimal
    status: DueStatus
    paid_amount: Decimal
    paid_date: date | None = None
    payment_method: str | None = None
    payment_reference: str | None = None
    reminder_count: int
    last_reminder_date: date | None = None
    notes: str | None = None
    subscription_id: UUID
    invoice_id: UUID | None = None


class DueScheduleGenerate(BaseModel):
    subscription_id: UUID
    months: int = Field(default=12, ge=1)


class PaymentCreate(BaseModel):
    amount: Decimal = Field(gt=0)
    paid_date: date | None = None
    payment_method: str | None = None
    payment_reference: str | None = None
    notes: str | None = None


class DueScheduleStatisticsRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    by_status: dict[str, int]
    owed_amount: Decimal
    overdue_amount: Decimal
    paid_amount: Decimal
