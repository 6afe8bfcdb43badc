from __future__ import annotations

from uuid import UUID

from sqlmodel import Field

from erp_billing.models.base import TimestampedModel, UUIDModel


class Address(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "addresses"

    street: str
    postal_code: str = Field(max_length=16)
    city: str
    country: str = Field(default="DE", max_length=64)

    def as_text(self) -> str:
        return f"{self.street}, {self.postal_code} {self.city}, {self.country}"


class Customer(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "customers"

    customer_number: str = Field(unique=True, index=True, max_length=32)
    first_name: str
    last_name: str = Field(index=True)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=32)
    billing_address_id: UUID | None = Field(default=None, foreign_key="addresses.id")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
