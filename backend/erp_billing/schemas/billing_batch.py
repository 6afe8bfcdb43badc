from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from erp_billing.schemas.due_schedule import DueScheduleRead


class BillingScopeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    billing_date: date
    include_all_previous_periods: bool
    count: int
    estimated_total: Decimal
    overdue_count: int
    current_count: int
    month_groups: dict[str, int]
    due_schedules: list[DueScheduleRead]


class InvoiceBatchResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    batch_id: str
    billing_date: date
    include_all_previous_periods: bool
    expected_due_schedules: int
    processed_due_schedules: int
    created_invoices: int
    created_open_items: int
    total_amount: Decimal
    errors: list[str]
    message: str
    is_consistent: bool
    is_complete: bool


class CanRunRead(BaseModel):
    billing_date: date
    include_all_previous_periods: bool
    can_run: bool
