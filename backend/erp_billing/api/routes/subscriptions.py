from __future__ import annotations

from datetime import date
from typing import Callable, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Session

from erp_billing.api.deps import get_clock, get_db, http_error
from erp_billing.core.errors import BillingError
from erp_billing.models.subscription import SubscriptionStatus
from erp_billing.schemas.subscription import (
    SubscriptionCancel,
    SubscriptionCreate,
    SubscriptionRead,
    SubscriptionRenew,
    SubscriptionUpdate,
)
from erp_billing.services.subscription import SubscriptionService

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


def _service(session: Session, clock: Callable[[], date]) -> SubscriptionService:
    return SubscriptionService(session, today=clock)


@router.get("", response_model=List[SubscriptionRead])
def list_subscriptions(
    status_filter: SubscriptionStatus | None = Query(default=None, alias="status"),
    contract_id: UUID | None = None,
    customer_id: UUID | None = None,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> List[SubscriptionRead]:
    service = _service(session, clock)
    if customer_id is not None:
        subscriptions = service.list_by_customer(customer_id)
    else:
        subscriptions = service.list_subscriptions(status=status_filter, contract_id=contract_id)
    return [SubscriptionRead.model_validate(subscription) for subscription in subscriptions]


@router.post("", response_model=SubscriptionRead, status_code=status.HTTP_201_CREATED)
def create_subscription(
    payload: SubscriptionCreate,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> SubscriptionRead:
    try:
        subscription = _service(session, clock).create(payload)
    except BillingError as exc:
        raise http_error(exc) from exc
    return SubscriptionRead.model_validate(subscription)


@router.post("/process-auto-renewals", response_model=List[SubscriptionRead])
def process_auto_renewals(
    days_ahead: int | None = Query(default=None, ge=0),
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> List[SubscriptionRead]:
    renewed = _service(session, clock).process_auto_renewals(days_ahead)
    return [SubscriptionRead.model_validate(subscription) for subscription in renewed]


@router.post("/process-expired", response_model=List[SubscriptionRead])
def process_expired(
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> List[SubscriptionRead]:
    expired = _service(session, clock).process_expired()
    return [SubscriptionRead.model_validate(subscription) for subscription in expired]


@router.get("/{subscription_id}", response_model=SubscriptionRead)
def get_subscription(
    subscription_id: UUID,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> SubscriptionRead:
    try:
        subscription = _service(session, clock).get(subscription_id)
    except BillingError as exc:
        raise http_error(exc) from exc
    return SubscriptionRead.model_validate(subscription)


@router.patch("/{subscription_id}", response_model=SubscriptionRead)
def update_subscription(
    subscription_id: UUID,
    payload: SubscriptionUpdate,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> SubscriptionRead:
    try:
        subscription = _service(session, clock).update(subscription_id, payload)
    except BillingError as exc:
        raise http_error(exc) from exc
    return SubscriptionRead.model_validate(subscription)


@router.delete("/{subscription_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_subscription(
    subscription_id: UUID,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> None:
    try:
        _service(session, clock).delete(subscription_id)
    except BillingError as exc:
        raise http_error(exc) from exc


@router.post("/{subscription_id}/activate", response_model=SubscriptionRead)
def activate_subscription(
    subscription_id: UUID,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> SubscriptionRead:
    try:
        subscription = _service(session, clock).activate(subscription_id)
    except BillingError as exc:
        raise http_error(exc) from exc
    return SubscriptionRead.model_validate(subscription)


@router.post("/{subscription_id}/pause", response_model=SubscriptionRead)
def pause_subscription(
    subscription_id: UUID,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> SubscriptionRead:
    try:
        subscription = _service(session, clock).pause(subscription_id)
    except BillingError as exc:
        raise http_error(exc) from exc
    return SubscriptionRead.model_validate(subscription)


@router.post("/{subscription_id}/cancel", response_model=SubscriptionRead)
def cancel_subscription(
    subscription_id: UUID,
    payload: SubscriptionCancel | None = None,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> SubscriptionRead:
    cancellation_date = payload.cancellation_date if payload else None
    try:
        subscription = _service(session, clock).cancel(subscription_id, cancellation_date)
    except BillingError as exc:
        raise http_error(exc) from exc
    return SubscriptionRead.model_validate(subscription)


@router.post("/{subscription_id}/renew", response_model=SubscriptionRead)
def renew_subscription(
    subscription_id: UUID,
    payload: SubscriptionRenew,
    session: Session = Depends(get_db),
    clock: Callable[[], date] = Depends(get_clock),
) -> SubscriptionRead:
    try:
        subscription = _service(session, clock).renew(subscription_id, payload.new_end_date)
    except BillingError as exc:
        raise http_error(exc) from exc
    return SubscriptionRead.model_validate(subscription)
