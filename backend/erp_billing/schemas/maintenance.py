from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class ConsistencyAnalysisRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    invoices_without_open_items: int
    orphaned_open_items: int
    overdue_open_items: int
    active_subscriptions_of_terminated_contracts: int
    orphaned_due_schedules: int
    invoice_open_item_amount_mismatches: int
    cancelled_invoices_with_open_items: int
    completed_schedules_without_invoice: int
    total: int


class CheckResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    found: int
    fixed: int
    error: str | None = None


class RepairReportRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    before: ConsistencyAnalysisRead
    after: ConsistencyAnalysisRead
    checks: list[CheckResultRead]
    fixed: int
    improved: bool


class StatusReportRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    customers: int
    addresses: int
    products: int
    contracts: dict[str, int]
    subscriptions: dict[str, int]
    deleted_subscriptions: int
    due_schedules: dict[str, int]
    invoices: dict[str, int]
    open_items: dict[str, int]
    consistency: ConsistencyAnalysisRead


class SeedResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    products: int
    customers: int
    contracts: int
    subscriptions: int
    due_schedules: int
    invoices: int
    terminated_contracts: int
    cancelled_subscriptions: int
    paused_subscriptions: int
    paid_open_items: int
    partially_paid_open_items: int
