from __future__ import annotations

from datetime import date
from typing import Callable, Literal

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from erp_billing.api.deps import get_clock, get_db, http_error
from erp_billing.core.errors import BillingError
from erp_billing.schemas.maintenance import RepairReportRead, SeedResultRead, StatusReportRead
from erp_billing.services.consistency import ConsistencyService
from erp_billing.services.maintenance import MaintenanceService
from erp_billing.services.seeding import SeedConfig, SeedService

router = APIRouter(prefix="/maintenance", tags=["maintenance"])

_PRESETS = {
    "all_active": SeedConfig.all_active,
    "realistic": SeedConfig.realistic,
    "development": SeedConfig.development,
}


@router.post("/repair-consistency", response_model=RepairReportRead)
def repair_consistency(
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> RepairReportRead:
    report = ConsistencyService(session, today=clock).repair_consistency()
    return RepairReportRead.model_validate(report)


@router.get("/status-report", response_model=StatusReportRead)
def status_report(
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> StatusReportRead:
    return StatusReportRead.model_validate(MaintenanceService(session, today=clock).status_report())


@router.post("/clear-business-data")
def clear_business_data(
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> dict[str, int]:
    return MaintenanceService(session, today=clock).clear_business_data()


@router.post("/seed", response_model=SeedResultRead)
def seed_demo_data(
    preset: Literal["all_active", "realistic", "development"] = Query(default="all_active"),
    customers: int = Query(default=3, ge=1),
    subscriptions_per_customer: int = Query(default=2, ge=1),
    bill_until: date | None = None,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> SeedResultRead:
    config = _PRESETS[preset](
        customers=customers,
        subscriptions_per_customer=subscriptions_per_customer,
        bill_until=bill_until,
    )
    try:
        result = SeedService(session, today=clock).seed(config)
    except BillingError as exc:
        raise http_error(exc) from exc
    return SeedResultRead.model_validate(result)
