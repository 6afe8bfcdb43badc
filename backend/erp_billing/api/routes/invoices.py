from __future__ import annotations

from datetime import date
from typing import Callable, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from erp_billing.api.deps import get_clock, get_db, http_error
from erp_billing.core.errors import BillingError
from erp_billing.models.invoice import Invoice
from erp_billing.models.open_item import OpenItemStatus
from erp_billing.schemas.invoice import InvoiceItemRead, InvoiceRead, OpenItemPayment, OpenItemRead
from erp_billing.services.invoice import InvoiceService
from erp_billing.services.open_item import OpenItemService

router = APIRouter(tags=["invoices"])


def _read(service: InvoiceService, invoice: Invoice) -> InvoiceRead:
    payload = InvoiceRead.model_validate(invoice)
    payload.items = [InvoiceItemRead.model_validate(item) for item in service.list_items(invoice.id)]
    return payload


@router.get("/invoices", response_model=List[InvoiceRead])
def list_invoices(
    customer_id: UUID | None = None,
    batch_id: str | None = None,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> List[InvoiceRead]:
    service = InvoiceService(session, today=clock)
    if customer_id is not None:
        invoices = service.list_by_customer(customer_id)
    elif batch_id is not None:
        invoices = service.list_by_batch(batch_id)
    else:
        invoices = []
    return [_read(service, invoice) for invoice in invoices]


@router.get("/invoices/{invoice_id}", response_model=InvoiceRead)
def get_invoice(
    invoice_id: UUID,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> InvoiceRead:
    service = InvoiceService(session, today=clock)
    try:
        invoice = service.get(invoice_id)
    except BillingError as exc:
        raise http_error(exc) from exc
    return _read(service, invoice)


@router.post("/invoices/{invoice_id}/cancel", response_model=InvoiceRead)
def cancel_invoice(
    invoice_id: UUID,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> InvoiceRead:
    service = InvoiceService(session, today=clock)
    try:
        invoice = service.cancel(invoice_id)
    except BillingError as exc:
        raise http_error(exc) from exc
    return _read(service, invoice)


@router.get("/invoices/{invoice_id}/open-items", response_model=List[OpenItemRead])
def list_invoice_open_items(
    invoice_id: UUID,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> List[OpenItemRead]:
    items = OpenItemService(session, today=clock).list_by_invoice(invoice_id)
    return [OpenItemRead.model_validate(item) for item in items]


@router.get("/open-items", response_model=List[OpenItemRead])
def list_open_items(
    status_filter: OpenItemStatus = Query(default=OpenItemStatus.OPEN, alias="status"),
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> List[OpenItemRead]:
    items = OpenItemService(session, today=clock).list_by_status(status_filter)
    return [OpenItemRead.model_validate(item) for item in items]


@router.post("/open-items/{item_id}/record-payment", response_model=OpenItemRead)
def record_open_item_payment(
    item_id: UUID,
    payload: OpenItemPayment,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> OpenItemRead:
    try:
        item = OpenItemService(session, today=clock).record_payment(item_id, payload.amount)
    except BillingError as exc:
        raise http_error(exc) from exc
    return OpenItemRead.model_validate(item)


@router.post("/open-items/{item_id}/reminder", response_model=OpenItemRead)
def send_open_item_reminder(
    item_id: UUID,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> OpenItemRead:
    try:
        item = OpenItemService(session, today=clock).send_reminder(item_id)
    except BillingError as exc:
        raise http_error(exc) from exc
    return OpenItemRead.model_validate(item)
