from __future__ import annotations

from datetime import date
from uuid import UUID

from pydantic import BaseModel

from erp_billing.models.contract import ContractStatus
from erp_billing.schemas.common import IDModel, Timestamped


class ContractCreate(BaseModel):
    title: str
    start_date: date
    end_date: date | None = None
    notes: str | None = None
    customer_id: UUID


class ContractUpdate(BaseModel):
    title: str | None = None
    end_date: date | None = None
    notes: str | None = None


class ContractTerminate(BaseModel):
    end_date: date | None = None


class ContractRead(IDModel, Timestamped):
    contract_number: str
    title: str
    start_date: date
    end_date: date | None = None
    status: ContractStatus
    notes: str | None = None
    customer_id: UUID
