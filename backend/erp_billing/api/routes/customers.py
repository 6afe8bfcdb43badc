from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from erp_billing.api.deps import get_db, http_error
from erp_billing.core.errors import BillingError
from erp_billing.schemas.customer import CustomerCreate, CustomerRead, CustomerUpdate
from erp_billing.services.customer import CustomerService

router = APIRouter(prefix="/customers", tags=["customers"])


@router.get("", response_model=List[CustomerRead])
def list_customers(session: Session = Depends(get_db)) -> List[CustomerRead]:
    return [CustomerRead.model_validate(customer) for customer in CustomerService(session).list_customers()]


@router.post("", response_model=CustomerRead, status_code=status.HTTP_201_CREATED)
def create_customer(payload: CustomerCreate, session: Session = Depends(get_db)) -> CustomerRead:
    try:
        customer = CustomerService(session).create_customer(payload)
    except BillingError as exc:
        raise http_error(exc) from exc
    return CustomerRead.model_validate(customer)


@router.get("/{customer_id}", response_model=CustomerRead)
def get_customer(customer_id: UUID, session: Session = Depends(get_db)) -> CustomerRead:
    try:
        customer = CustomerService(session).get_customer(customer_id)
    except BillingError as exc:
        raise http_error(exc) from exc
    return CustomerRead.model_validate(customer)


@router.patch("/{customer_id}", response_model=CustomerRead)
def update_customer(customer_id: UUID, payload: CustomerUpdate, session: Session = Depends(get_db)) -> CustomerRead:
    try:
        customer = CustomerService(session).update_customer(customer_id, payload)
    except BillingError as exc:
        raise http_error(exc) from exc
    return CustomerRead.model_validate(customer)


@router.delete("/{customer_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_customer(customer_id: UUID, session: Session = Depends(get_db)) -> None:
    try:
        CustomerService(session).delete_customer(customer_id)
    except BillingError as exc:
        raise http_error(exc) from exc
