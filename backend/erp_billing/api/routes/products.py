from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from erp_billing.api.deps import get_db, http_error
from erp_billing.core.errors import BillingError
from erp_billing.schemas.product import ProductCreate, ProductRead, ProductUpdate
from erp_billing.services.product import ProductService

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=List[ProductRead])
def list_products(session: Session = Depends(get_db)) -> List[ProductRead]:
    return [ProductRead.model_validate(product) for product in ProductService(session).list_products()]


@router.post("", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
def create_product(payload: ProductCreate, session: Session = Depends(get_db)) -> ProductRead:
    try:
        product = ProductService(session).create_product(payload)
    except BillingError as exc:
        raise http_error(exc) from exc
    return ProductRead.model_validate(product)


@router.get("/{product_id}", response_model=ProductRead)
def get_product(product_id: UUID, session: Session = Depends(get_db)) -> ProductRead:
    try:
        product = ProductService(session).get_product(product_id)
    except BillingError as exc:
        raise http_error(exc) from exc
    return ProductRead.model_validate(product)


@router.patch("/{product_id}", response_model=ProductRead)
def update_product(product_id: UUID, payload: ProductUpdate, session: Session = Depends(get_db)) -> ProductRead:
    try:
        product = ProductService(session).update_product(product_id, payload)
    except BillingError as exc:
        raise http_error(exc) from exc
    return ProductRead.model_validate(product)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product(product_id: UUID, session: Session = Depends(get_db)) -> None:
    try:
        ProductService(session).delete_product(product_id)
    except BillingError as exc:
        raise http_error(exc) from exc
