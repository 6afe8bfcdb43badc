from __future__ import annotations

from datetime import date
from typing import Callable, List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from erp_billing.api.deps import get_clock, get_db, http_error
from erp_billing.core.errors import BillingError
from erp_billing.schemas.contract import ContractCreate, ContractRead, ContractTerminate, ContractUpdate
from erp_billing.services.contract import ContractService

router = APIRouter(prefix="/contracts", tags=["contracts"])


@router.get("", response_model=List[ContractRead])
def list_contracts(
    customer_id: UUID | None = None,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> List[ContractRead]:
    contracts = ContractService(session, today=clock).list_contracts(customer_id)
    return [ContractRead.model_validate(contract) for contract in contracts]


@router.post("", response_model=ContractRead, status_code=status.HTTP_201_CREATED)
def create_contract(
    payload: ContractCreate,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> ContractRead:
    try:
        contract = ContractService(session, today=clock).create_contract(payload)
    except BillingError as exc:
        raise http_error(exc) from exc
    return ContractRead.model_validate(contract)


@router.get("/{contract_id}", response_model=ContractRead)
def get_contract(
    contract_id: UUID,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> ContractRead:
    try:
        contract = ContractService(session, today=clock).get_contract(contract_id)
    except BillingError as exc:
        raise http_error(exc) from exc
    return ContractRead.model_validate(contract)


@router.patch("/{contract_id}", response_model=ContractRead)
def update_contract(
    contract_id: UUID,
    payload: ContractUpdate,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> ContractRead:
    try:
        contract = ContractService(session, today=clock).update_contract(contract_id, payload)
    except BillingError as exc:
        raise http_error(exc) from exc
    return ContractRead.model_validate(contract)


@router.delete("/{contract_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_contract(
    contract_id: UUID,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> None:
    try:
        ContractService(session, today=clock).delete_contract(contract_id)
    except BillingError as exc:
        raise http_error(exc) from exc


@router.post("/{contract_id}/terminate", response_model=ContractRead)
def terminate_contract(
    contract_id: UUID,
    payload: ContractTerminate | None = None,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> ContractRead:
    termination_date = payload.end_date if payload else None
    try:
        contract = ContractService(session, today=clock).terminate_contract(contract_id, termination_date)
    except BillingError as exc:
        raise http_error(exc) from exc
    return ContractRead.model_validate(contract)
