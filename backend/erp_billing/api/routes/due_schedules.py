from __future__ import annotations

from datetime import date
from typing import Callable, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from erp_billing.api.deps import get_clock, get_db, http_error
from erp_billing.core.errors import BillingError
from erp_billing.models.due_schedule import DueStatus
from erp_billing.schemas.due_schedule import (
    DueScheduleGenerate,
    DueScheduleRead,
    DueScheduleStatisticsRead,
    PaymentCreate,
)
from erp_billing.services.due_schedule import DueScheduleService

router = APIRouter(prefix="/due-schedules", tags=["due-schedules"])


def _service(session: Session, clock: Callable[[], date]) -> DueScheduleService:
    return DueScheduleService(session, today=clock)


def _read_all(schedules) -> List[DueScheduleRead]:
    return [DueScheduleRead.model_validate(schedule) for schedule in schedules]


@router.get("", response_model=List[DueScheduleRead])
def list_due_schedules(
    subscription_id: UUID | None = None,
    customer_id: UUID | None = None,
    status_filter: DueStatus | None = Query(default=None, alias="status"),
    start: date | None = None,
    end: date | None = None,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> List[DueScheduleRead]:
    service = _service(session, clock)
    try:
        if subscription_id is not None:
            return _read_all(service.list_by_subscription(subscription_id))
        if customer_id is not None:
            return _read_all(service.list_by_customer(customer_id))
        if status_filter is not None:
            return _read_all(service.list_by_status(status_filter))
        if start is not None and end is not None:
            return _read_all(service.list_by_date_range(start, end))
    except BillingError as exc:
        raise http_error(exc) from exc
    return _read_all(service.list_upcoming())


@router.get("/overdue", response_model=List[DueScheduleRead])
def list_overdue(session: Session = Depends(get_db), clock: Callable[[], date] = Depends(get_clock)) -> List[DueScheduleRead]:
    return _read_all(_service(session, clock).list_overdue())


@router.get("/upcoming", response_model=List[DueScheduleRead])
def list_upcoming(
    days: int | None = Query(default=None, ge=0),
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> List[DueScheduleRead]:
    return _read_all(_service(session, clock).list_upcoming(days))


@router.get("/statistics", response_model=DueScheduleStatisticsRead)
def statistics(
    session: Session = Depends(get_db), clock: Callable[[], date] = Depends(get_clock)
) -> DueScheduleStatisticsRead:
    return DueScheduleStatisticsRead.model_validate(_service(session, clock).statistics())


@router.post("/generate", response_model=List[DueScheduleRead], status_code=status.HTTP_201_CREATED)
def generate_due_schedules(
    payload: DueScheduleGenerate,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> List[DueScheduleRead]:
    try:
        schedules = _service(session, clock).generate_schedules(payload.subscription_id, payload.months)
    except BillingError as exc:
        raise http_error(exc) from exc
    return _read_all(schedules)


@router.post("/mark-overdue")
def mark_overdue(session: Session = Depends(get_db), clock: Callable[[], date] = Depends(get_clock)) -> dict[str, int]:
    return {"updated": _service(session, clock).mark_overdue()}


@router.get("/{schedule_id}", response_model=DueScheduleRead)
def get_due_schedule(
    schedule_id: UUID,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> DueScheduleRead:
    try:
        schedule = _service(session, clock).get(schedule_id)
    except BillingError as exc:
        raise http_error(exc) from exc
    return DueScheduleRead.model_validate(schedule)


@router.post("/{schedule_id}/record-payment", response_model=DueScheduleRead)
def record_payment(
    schedule_id: UUID,
    payload: PaymentCreate,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> DueScheduleRead:
    try:
        schedule = _service(session, clock).record_payment(
            schedule_id,
            payload.amount,
            paid_date=payload.paid_date,
            payment_method=payload.payment_method,
            payment_reference=payload.payment_reference,
            notes=payload.notes,
        )
    except BillingError as exc:
        raise http_error(exc) from exc
    return DueScheduleRead.model_validate(schedule)


@router.post("/{schedule_id}/mark-paid", response_model=DueScheduleRead)
def mark_paid(
    schedule_id: UUID,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> DueScheduleRead:
    try:
        schedule = _service(session, clock).mark_paid(schedule_id)
    except BillingError as exc:
        raise http_error(exc) from exc
    return DueScheduleRead.model_validate(schedule)


@router.post("/{schedule_id}/cancel", response_model=DueScheduleRead)
def cancel_due_schedule(
    schedule_id: UUID,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> DueScheduleRead:
    try:
        schedule = _service(session, clock).cancel(schedule_id, reason="Cancelled manually")
    except BillingError as exc:
        raise http_error(exc) from exc
    return DueScheduleRead.model_validate(schedule)


@router.post("/{schedule_id}/pause", response_model=DueScheduleRead)
def pause_due_schedule(
    schedule_id: UUID,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> DueScheduleRead:
    try:
        schedule = _service(session, clock).pause(schedule_id)
    except BillingError as exc:
        raise http_error(exc) from exc
    return DueScheduleRead.model_validate(schedule)


@router.post("/{schedule_id}/resume", response_model=DueScheduleRead)
def resume_due_schedule(
    schedule_id: UUID,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> DueScheduleRead:
    try:
        schedule = _service(session, clock).resume(schedule_id)
    except BillingError as exc:
        raise http_error(exc) from exc
    return DueScheduleRead.model_validate(schedule)


@router.post("/{schedule_id}/reminder", response_model=DueScheduleRead)
def send_reminder(
    schedule_id: UUID,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> DueScheduleRead:
    try:
        schedule = _service(session, clock).send_reminder(schedule_id)
    except BillingError as exc:
        raise http_error(exc) from exc
    return DueScheduleRead.model_validate(schedule)
