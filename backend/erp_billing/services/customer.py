from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlmodel import Session, select

from erp_billing.core.errors import ConflictError, InvalidArgumentError, NotFoundError
from erp_billing.models.contract import Contract
from erp_billing.models.customer import Address, Customer
from erp_billing.schemas.customer import CustomerCreate, CustomerUpdate
from erp_billing.services.numbering import NumberGenerator


class CustomerService:
    def __init__(self, session: Session, numbers: NumberGenerator | None = None) -> None:
        self.session = session
        self.numbers = numbers or NumberGenerator(session)

    def list_customers(self) -> list[Customer]:
        statement = select(Customer).order_by(Customer.last_name, Customer.first_name)
        return list(self.session.exec(statement).all())

    def get_customer(self, customer_id: UUID) -> Customer:
        customer = self.session.get(Customer, customer_id)
        if customer is None:
            raise NotFoundError("Customer not found", customer_id=str(customer_id))
        return customer

    def get_by_email(self, email: str) -> Customer | None:
        return self.session.exec(select(Customer).where(Customer.email == email)).first()

    def create_customer(self, payload: CustomerCreate) -> Customer:
        email = payload.email.strip().lower() if payload.email else None
        if email and self.get_by_email(email):
            raise InvalidArgumentError("Customer with this email already exists")

        address_id = None
        if payload.billing_address is not None:
            address = Address(**payload.billing_address.model_dump())
            self.session.add(address)
            self.session.flush()
            address_id = address.id

        customer = Customer(
            customer_number=self.numbers.customer_number(),
            first_name=payload.first_name,
            last_name=payload.last_name,
            email=email,
            phone=payload.phone,
            billing_address_id=address_id,
        )
        self.session.add(customer)
        self.session.commit()
        self.session.refresh(customer)
        return customer

    def update_customer(self, customer_id: UUID, payload: CustomerUpdate) -> Customer:
        customer = self.get_customer(customer_id)
        update_data = payload.model_dump(exclude_unset=True)

        if update_data.get("email"):
            email = update_data["email"].strip().lower()
            existing = self.get_by_email(email)
            if existing is not None and existing.id != customer.id:
                raise InvalidArgumentError("Customer with this email already exists")
            update_data["email"] = email
        if update_data.get("billing_address_id") and self.session.get(Address, update_data["billing_address_id"]) is None:
            raise InvalidArgumentError("Address not found")
        for required in ("first_name", "last_name"):
            if required in update_data and not (update_data[required] or "").strip():
                raise InvalidArgumentError(f"{required.replace('_', ' ').capitalize()} is required")

        for key, value in update_data.items():
            setattr(customer, key, value)
        customer.updated_at = datetime.utcnow()
        self.session.add(customer)
        self.session.commit()
        self.session.refresh(customer)
        return customer

    def delete_customer(self, customer_id: UUID) -> None:
        customer = self.get_customer(customer_id)
        has_contracts = self.session.exec(select(Contract.id).where(Contract.customer_id == customer.id)).first()
        if has_contracts is not None:
            raise ConflictError("Cannot delete customer with contracts", customer_number=customer.customer_number)
        self.session.delete(customer)
        self.session.commit()
