from datetime import date
from decimal import Decimal

import pytest

from erp_billing.core.errors import ConflictError, InvalidArgumentError
from erp_billing.models.due_schedule import DueStatus
from erp_billing.services.due_schedule import DueScheduleService
from tests.conftest import TODAY, make_subscription  # type: ignore


def _first_schedules(db_session, count: int = 3):
    subscription = make_subscription(db_session)
    service = DueScheduleService(db_session, today=lambda: TODAY)
    return service, service.list_by_subscription(subscription.id)[:count]


def test_partial_then_full_payment(db_session):
    service, (schedule, *_) = _first_schedules(db_session)

    partial = service.record_payment(schedule.id, Decimal("40.00"), payment_method="transfer", notes="first rate")
    assert partial.status == DueStatus.PENDING
    assert partial.paid_amount == Decimal("40.00")
    assert partial.outstanding_amount == Decimal("60.00")
    assert partial.paid_date == TODAY
    assert "first rate" in partial.notes

    with pytest.raises(InvalidArgumentError):
        service.record_payment(schedule.id, Decimal("70.00"))

    paid = service.record_payment(schedule.id, Decimal("60.00"), paid_date=date(2024, 3, 10))
    assert paid.status == DueStatus.PAID
    assert paid.paid_amount == paid.amount
    assert paid.paid_date == date(2024, 3, 10)

    with pytest.raises(ConflictError):
        service.record_payment(schedule.id, Decimal("1.00"))


def test_payment_amount_must_be_positive(db_session):
    service, (schedule, *_) = _first_schedules(db_session)

    with pytest.raises(InvalidArgumentError):
        service.record_payment(schedule.id, Decimal("0"))


def test_mark_paid_settles_outstanding_amount(db_session):
    service, (schedule, *_) = _first_schedules(db_session)

    paid = service.mark_paid(schedule.id, payment_method="cash")

    assert paid.status == DueStatus.PAID
    assert paid.paid_amount == Decimal("100.00")
    assert paid.payment_method == "cash"
    assert service.mark_paid(schedule.id).status == DueStatus.PAID


def test_cancel_rules(db_session):
    service, (first, second, third) = _first_schedules(db_session)

    cancelled = service.cancel(first.id, reason="Goodwill")
    assert cancelled.status == DueStatus.CANCELLED
    assert "Goodwill" in cancelled.notes

    service.record_payment(second.id, Decimal("10.00"))
    with pytest.raises(ConflictError):
        service.cancel(second.id)

    service.mark_paid(third.id)
    with pytest.raises(ConflictError):
        service.cancel(third.id)


def test_pause_and_resume(db_session):
    service, (schedule, *_) = _first_schedules(db_session)

    assert service.pause(schedule.id).status == DueStatus.PAUSED
    with pytest.raises(ConflictError):
        service.pause(schedule.id)
    assert service.resume(schedule.id).status == DueStatus.PENDING
    with pytest.raises(ConflictError):
        service.resume(schedule.id)


def test_reminders_only_for_due_schedules(db_session):
    subscription = make_subscription(db_session)
    service = DueScheduleService(db_session, today=lambda: TODAY)
    schedules = service.list_by_subscription(subscription.id)

    reminded = service.send_reminder(schedules[0].id)
    reminded = service.send_reminder(schedules[0].id)
    assert reminded.reminder_count == 2
    assert reminded.last_reminder_date == TODAY

    with pytest.raises(ConflictError):
        service.send_reminder(schedules[5].id)


def test_mark_overdue_keeps_schedules_billable(db_session):
    subscription = make_subscription(db_session)
    service = DueScheduleService(db_session, today=lambda: TODAY)
    schedules = service.list_by_subscription(subscription.id)
    service.record_payment(schedules[1].id, Decimal("50.00"))

    assert service.mark_overdue() == 2

    statuses = [schedule.status for schedule in service.list_by_subscription(subscription.id)[:4]]
    assert statuses == [DueStatus.OVERDUE, DueStatus.PENDING, DueStatus.OVERDUE, DueStatus.PENDING]
    assert len(service.list_overdue()) == 3
    assert service.mark_overdue() == 0


def test_claim_for_billing_is_exclusive(db_session):
    service, (schedule, *_) = _first_schedules(db_session)

    service.claim_for_billing(schedule)
    db_session.commit()
    assert service.get(schedule.id).status == DueStatus.COMPLETED

    with pytest.raises(ConflictError):
        service.claim_for_billing(schedule)
    db_session.rollback()
