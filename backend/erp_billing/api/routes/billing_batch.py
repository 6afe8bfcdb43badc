from __future__ import annotations

from datetime import date
from typing import Callable

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from erp_billing.api.deps import get_clock, get_db
from erp_billing.schemas.billing_batch import BillingScopeRead, CanRunRead, InvoiceBatchResultRead
from erp_billing.services.invoice_batch import InvoiceBatchAnalyzer, InvoiceBatchService

router = APIRouter(prefix="/billing-batch", tags=["billing-batch"])


@router.post("", response_model=InvoiceBatchResultRead)
def run_billing_batch(
    billing_date: date | None = Query(default=None),
    exact_date_only: bool = Query(default=False),
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> InvoiceBatchResultRead:
    service = InvoiceBatchService(session, today=clock)
    result = service.run_invoice_batch(billing_date or clock(), include_all_previous_periods=not exact_date_only)
    return InvoiceBatchResultRead.model_validate(result)


@router.get("/preview", response_model=BillingScopeRead)
def preview_billing_batch(
    billing_date: date | None = Query(default=None),
    exact_date_only: bool = Query(default=False),
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> BillingScopeRead:
    analyzer = InvoiceBatchAnalyzer(session, today=clock)
    scope = analyzer.analyze_billing_scope(billing_date or clock(), include_all_previous_periods=not exact_date_only)
    return BillingScopeRead.model_validate(scope)


@router.get("/can-run", response_model=CanRunRead)
def can_run_billing_batch(
    billing_date: date | None = Query(default=None),
    exact_date_only: bool = Query(default=False),
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> CanRunRead:
    target = billing_date or clock()
    analyzer = InvoiceBatchAnalyzer(session, today=clock)
    return CanRunRead(
        billing_date=target,
        include_all_previous_periods=not exact_date_only,
        can_run=analyzer.can_run(target, include_all_previous_periods=not exact_date_only),
    )
