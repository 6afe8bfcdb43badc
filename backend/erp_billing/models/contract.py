from __future__ import annotations

from datetime import date
from enum import Enum
from uuid import UUID

from sqlmodel import Field

from erp_billing.models.base import TimestampedModel, UUIDModel


class ContractStatus(str, Enum):
    ACTIVE = "active"
    TERMINATED = "terminated"


class Contract(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "contracts"

    contract_number: str = Field(unique=True, index=True, max_length=32)
    title: str
    start_date: date
    end_date: date | None = Field(default=None)
    status: ContractStatus = Field(default=ContractStatus.ACTIVE, index=True)
    notes: str | None = Field(default=None)
    customer_id: UUID = Field(foreign_key="customers.id", index=True)
