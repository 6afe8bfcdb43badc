from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlmodel import Field

from erp_billing.models.base import TimestampedModel, UUIDModel, money_field


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMI_ANNUALLY = "semi_annually"
    ANNUALLY = "annually"

    @property
    def months(self) -> int:
        return _CYCLE_MONTHS[self]


_CYCLE_MONTHS = {
    BillingCycle.MONTHLY: 1,
    BillingCycle.QUARTERLY: 3,
    BillingCycle.SEMI_ANNUALLY: 6,
    BillingCycle.ANNUALLY: 12,
}


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class Subscription(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "subscriptions"

    subscription_number: str = Field(unique=True, index=True, max_length=32)
    product_name: str
    description: str | None = Field(default=None)
    monthly_price: Decimal = money_field(default=Decimal("0"))
    start_date: date
    end_date: date | None = Field(default=None)
    billing_cycle: BillingCycle = Field(default=BillingCycle.MONTHLY)
    status: SubscriptionStatus = Field(default=SubscriptionStatus.ACTIVE, index=True)
    auto_renewal: bool = Field(default=True)
    notes: str | None = Field(default=None)
    contract_id: UUID = Field(foreign_key="contracts.id", index=True)
    product_id: UUID | None = Field(default=None, foreign_key="products.id")
    deleted_at: datetime | None = Field(default=None, index=True)
