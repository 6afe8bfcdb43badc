from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, field_validator

from erp_billing.schemas.common import IDModel, Timestamped


class AddressBase(BaseModel):
    street: str
    postal_code: str
    city: str
    country: str = "DE"


class AddressCreate(AddressBase):
    pass


class AddressRead(IDModel, Timestamped, AddressBase):
    pass


class CustomerBase(BaseModel):
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        cleaned = (value or "").strip()
        if not cleaned:
            raise ValueError("Name must not be empty")
        return cleaned


class CustomerCreate(CustomerBase):
    billing_address: AddressCreate | None = None


class CustomerUpdate(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    billing_address_id: UUID | None = None


class CustomerRead(IDModel, Timestamped):
    customer_number: str
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    billing_address_id: UUID | None = None
