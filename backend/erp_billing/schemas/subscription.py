from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel

from erp_billing.models.subscription import BillingCycle, SubscriptionStatus
from erp_billing.schemas.common import IDModel, Timestamped


class SubscriptionCreate(BaseModel):
    product_name: str
    monthly_price: Decimal
    start_date: date | None = None
    end_date: date | None = None
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    auto_renewal: bool = True
    description: str | None = None
    notes: str | None = None
    contract_id: UUID
    product_id: UUID | None = None


class SubscriptionUpdate(BaseModel):
    product_name: str | None = None
    monthly_price: Decimal | None = None
    end_date: date | None = None
    billing_cycle: BillingCycle | None = None
    auto_renewal: bool | None = None
    description: str | None = None
    notes: str | None = None
    product_id: UUID | None = None


class SubscriptionCancel(BaseModel):
    cancellation_date: date | None = None


class SubscriptionRenew(BaseModel):
    new_end_date: date


class SubscriptionRead(IDModel, Timestamped):
    subscription_number: str
    product_name: str
    description: str | None = None
    monthly_price: Decimal
    start_date: date
    end_date: date | None = None
    billing_cycle: BillingCycle
    status: SubscriptionStatus
    auto_renewal: bool
    notes: str | None = None
    contract_id: UUID
    product_id: UUID | None = None
    deleted_at: datetime | None = None


class ScheduleSyncRead(BaseModel):
    action: str
    subscription_number: str
    due_numbers: list[str]
