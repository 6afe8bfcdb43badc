from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from erp_billing.core.config import settings
from erp_billing.core.errors import ConflictError, InvalidArgumentError, NotFoundError
from erp_billing.core.logging_setup import logger
from erp_billing.models.contract import Contract
from erp_billing.models.due_schedule import (
    OWED_STATUSES,
    SETTLED_STATUSES,
    UNSETTLED_STATUSES,
    DueSchedule,
    DueStatus,
)
from erp_billing.models.subscription import Subscription
from erp_billing.services.numbering import NumberGenerator
from erp_billing.utils.dates import add_months

ZERO = Decimal("0")


@dataclass
class DueScheduleStatistics:
    total: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    owed_amount: Decimal = ZERO
    overdue_amount: Decimal = ZERO
    paid_amount: Decimal = ZERO


class DueScheduleService:
    def __init__(
        self,
        session: Session,
        numbers: NumberGenerator | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.session = session
        self.today = today
        self.numbers = numbers or NumberGenerator(session, today=today)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------
    def generate_schedules(
        self,
        subscription_id: UUID,
        period_count: int | None = None,
        *,
        commit: bool = True,
    ) -> list[DueSchedule]:
        """Create one PENDING schedule per billing period of the subscription.

        Generation continues after the last non-cancelled period (or at the start
        date when there is none) and stops after ``period_count`` periods or when
        the next period would start on or after the end date. With ``commit``
        the whole set is written in one transaction.
        """
        subscription = self._get_subscription(subscription_id)
        count = settings.billing_default_periods if period_count is None else period_count
        if count < 1:
            raise InvalidArgumentError("Period count must be positive", period_count=count)

        origin = self.continuation_date(subscription)
        step = subscription.billing_cycle.months
        end_date = subscription.end_date

        schedules: list[DueSchedule] = []
        for index in range(count):
            period_start = add_months(origin, index * step)
            if end_date is not None and period_start >= end_date:
                break
            next_start = add_months(origin, (index + 1) * step)
            period_end = next_start - timedelta(days=1)
            if end_date is not None and period_end >= end_date:
                period_end = end_date - timedelta(days=1)
            schedules.append(
                DueSchedule(
                    due_number=self.numbers.due_number(),
                    due_date=period_start,
                    period_start=period_start,
                    period_end=period_end,
                    amount=subscription.monthly_price,
                    status=DueStatus.PENDING,
                    subscription_id=subscription.id,
                )
            )

        if not schedules:
            logger.info(f"[generate_schedules] nothing to generate for {subscription.subscription_number}")
            return schedules

        self.session.add_all(schedules)
        if commit:
            try:
                self.session.commit()
            except SQLAlchemyError:
                self.session.rollback()
                logger.exception(f"[generate_schedules] rollback for {subscription.subscription_number}")
                raise
            for schedule in schedules:
                self.session.refresh(schedule)
        else:
            self.session.flush()

        logger.info(
            f"[generate_schedules] {len(schedules)} schedules for {subscription.subscription_number} "
            f"from {schedules[0].due_date} to {schedules[-1].due_date}"
        )
        return schedules

    def continuation_date(self, subscription: Subscription) -> date:
        last_end = self.session.exec(
            select(DueSchedule.period_end)
            .where(DueSchedule.subscription_id == subscription.id)
            .where(DueSchedule.status != DueStatus.CANCELLED)
            .order_by(DueSchedule.period_end.desc())
        ).first()
        if last_end is None:
            return subscription.start_date
        return last_end + timedelta(days=1)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, schedule_id: UUID) -> DueSchedule:
        schedule = self.session.get(DueSchedule, schedule_id)
        if schedule is None:
            raise NotFoundError("Due schedule not found", due_schedule_id=str(schedule_id))
        return schedule

    def get_by_number(self, due_number: str) -> DueSchedule | None:
        return self.session.exec(select(DueSchedule).where(DueSchedule.due_number == due_number)).first()

    def list_by_subscription(self, subscription_id: UUID) -> list[DueSchedule]:
        statement = (
            select(DueSchedule)
            .where(DueSchedule.subscription_id == subscription_id)
            .order_by(DueSchedule.due_date, DueSchedule.due_number)
        )
        return list(self.session.exec(statement).all())

    def list_by_status(self, status: DueStatus) -> list[DueSchedule]:
        statement = select(DueSchedule).where(DueSchedule.status == status).order_by(DueSchedule.due_date)
        return list(self.session.exec(statement).all())

    def list_by_date_range(self, start: date, end: date) -> list[DueSchedule]:
        if end < start:
            raise InvalidArgumentError("End date must not be before start date")
        statement = (
            select(DueSchedule)
            .where(DueSchedule.due_date >= start)
            .where(DueSchedule.due_date <= end)
            .order_by(DueSchedule.due_date, DueSchedule.due_number)
        )
        return list(self.session.exec(statement).all())

    def list_by_customer(self, customer_id: UUID) -> list[DueSchedule]:
        statement = (
            select(DueSchedule)
            .join(Subscription, Subscription.id == DueSchedule.subscription_id)
            .join(Contract, Contract.id == Subscription.contract_id)
            .where(Contract.customer_id == customer_id)
            .where(Subscription.deleted_at.is_(None))
            .order_by(DueSchedule.due_date, DueSchedule.due_number)
        )
        return list(self.session.exec(statement).all())

    def list_overdue(self) -> list[DueSchedule]:
        statement = (
            select(DueSchedule)
            .where(DueSchedule.status.in_(OWED_STATUSES))
            .where(DueSchedule.due_date < self.today())
            .order_by(DueSchedule.due_date)
        )
        return list(self.session.exec(statement).all())

    def list_upcoming(self, days: int | None = None) -> list[DueSchedule]:
        today = self.today()
        horizon = today + timedelta(days=settings.billing_upcoming_days if days is None else days)
        statement = (
            select(DueSchedule)
            .where(DueSchedule.status.in_(OWED_STATUSES))
            .where(DueSchedule.due_date >= today)
            .where(DueSchedule.due_date <= horizon)
            .order_by(DueSchedule.due_date)
        )
        return list(self.session.exec(statement).all())

    def next_due(self, subscription_id: UUID) -> DueSchedule | None:
        statement = (
            select(DueSchedule)
            .where(DueSchedule.subscription_id == subscription_id)
            .where(DueSchedule.status.in_(OWED_STATUSES))
            .order_by(DueSchedule.due_date)
        )
        return self.session.exec(statement).first()

    def statistics(self) -> DueScheduleStatistics:
        today = self.today()
        stats = DueScheduleStatistics()
        counter: Counter[str] = Counter()
        for schedule in self.session.exec(select(DueSchedule)).all():
            counter[schedule.status.value] += 1
            stats.paid_amount += schedule.paid_amount or ZERO
            if schedule.status in OWED_STATUSES:
                stats.owed_amount += schedule.outstanding_amount
                if schedule.status == DueStatus.OVERDUE or schedule.due_date < today:
                    stats.overdue_amount += schedule.outstanding_amount
        stats.total = sum(counter.values())
        stats.by_status = dict(counter)
        return stats

    # ------------------------------------------------------------------
    # Single schedule mutations
    # ------------------------------------------------------------------
    def record_payment(
        self,
        schedule_id: UUID,
        amount: Decimal,
        *,
        paid_date: date | None = None,
        payment_method: str | None = None,
        payment_reference: str | None = None,
        notes: str | None = None,
    ) -> DueSchedule:
        schedule = self.get(schedule_id)
        if amount is None or amount <= ZERO:
            raise InvalidArgumentError("Payment amount must be positive")
        if schedule.status in SETTLED_STATUSES or schedule.status == DueStatus.CANCELLED:
            raise ConflictError(
                f"Cannot record payment on a {schedule.status.value} schedule", due_number=schedule.due_number
            )
        new_paid = (schedule.paid_amount or ZERO) + amount
        if new_paid > schedule.amount:
            raise InvalidArgumentError(
                "Payment exceeds the outstanding amount",
                outstanding=str(schedule.outstanding_amount),
            )

        schedule.paid_amount = new_paid
        schedule.paid_date = paid_date or self.today()
        if payment_method:
            schedule.payment_method = payment_method
        if payment_reference:
            schedule.payment_reference = payment_reference
        if notes:
            schedule.notes = _append_note(schedule.notes, notes)
        if new_paid == schedule.amount:
            schedule.status = DueStatus.PAID
        schedule.updated_at = datetime.utcnow()
        self._save(schedule)
        logger.info(f"[record_payment] {schedule.due_number} paid {new_paid}/{schedule.amount}")
        return schedule

    def mark_paid(self, schedule_id: UUID, *, payment_method: str | None = None) -> DueSchedule:
        schedule = self.get(schedule_id)
        if schedule.status == DueStatus.PAID:
            return schedule
        outstanding = schedule.outstanding_amount
        if outstanding <= ZERO:
            if schedule.status in SETTLED_STATUSES or schedule.status == DueStatus.CANCELLED:
                raise ConflictError(f"Cannot mark a {schedule.status.value} schedule as paid")
            schedule.status = DueStatus.PAID
            schedule.updated_at = datetime.utcnow()
            return self._save(schedule)
        return self.record_payment(schedule_id, outstanding, payment_method=payment_method)

    def cancel(self, schedule_id: UUID, reason: str | None = None) -> DueSchedule:
        schedule = self.get(schedule_id)
        if schedule.status == DueStatus.CANCELLED:
            return schedule
        if schedule.status in SETTLED_STATUSES:
            raise ConflictError(f"Cannot cancel a {schedule.status.value} schedule", due_number=schedule.due_number)
        if (schedule.paid_amount or ZERO) > ZERO:
            raise ConflictError("Cannot cancel a partially paid schedule", due_number=schedule.due_number)
        schedule.status = DueStatus.CANCELLED
        if reason:
            schedule.notes = _append_note(schedule.notes, reason)
        schedule.updated_at = datetime.utcnow()
        return self._save(schedule)

    def pause(self, schedule_id: UUID) -> DueSchedule:
        schedule = self.get(schedule_id)
        if schedule.status not in OWED_STATUSES:
            raise ConflictError(f"Cannot pause a {schedule.status.value} schedule")
        schedule.status = DueStatus.PAUSED
        schedule.updated_at = datetime.utcnow()
        return self._save(schedule)

    def resume(self, schedule_id: UUID) -> DueSchedule:
        schedule = self.get(schedule_id)
        if schedule.status != DueStatus.PAUSED:
            raise ConflictError(f"Cannot resume a {schedule.status.value} schedule")
        schedule.status = DueStatus.PENDING
        schedule.updated_at = datetime.utcnow()
        return self._save(schedule)

    def send_reminder(self, schedule_id: UUID) -> DueSchedule:
        schedule = self.get(schedule_id)
        today = self.today()
        if schedule.status not in OWED_STATUSES:
            raise ConflictError(f"No reminder for a {schedule.status.value} schedule")
        if schedule.due_date > today:
            raise ConflictError("Schedule is not due yet", due_date=schedule.due_date.isoformat())
        schedule.reminder_count += 1
        schedule.last_reminder_date = today
        schedule.updated_at = datetime.utcnow()
        self._save(schedule)
        logger.info(f"[send_reminder] {schedule.due_number} reminder #{schedule.reminder_count}")
        return schedule

    def mark_overdue(self) -> int:
        """Reclassify past-due, unpaid PENDING/ACTIVE schedules as OVERDUE."""
        statement = (
            select(DueSchedule)
            .where(DueSchedule.status.in_((DueStatus.PENDING, DueStatus.ACTIVE)))
            .where(DueSchedule.due_date < self.today())
            .where(DueSchedule.paid_amount == ZERO)
        )
        schedules = self.session.exec(statement).all()
        now = datetime.utcnow()
        for schedule in schedules:
            schedule.status = DueStatus.OVERDUE
            schedule.updated_at = now
            self.session.add(schedule)
        self.session.commit()
        if schedules:
            logger.info(f"[mark_overdue] {len(schedules)} schedules marked overdue")
        return len(schedules)

    def claim_for_billing(self, schedule: DueSchedule) -> None:
        """Move an owed schedule to COMPLETED inside the caller's transaction.

        The conditional update affects no row when another run already claimed
        the schedule, which surfaces as ``ConflictError``.
        """
        statement = (
            update(DueSchedule)
            .where(DueSchedule.id == schedule.id)
            .where(DueSchedule.status.in_(OWED_STATUSES))
            .values(status=DueStatus.COMPLETED, updated_at=datetime.utcnow())
        )
        result = self.session.connection().execute(statement)
        if result.rowcount != 1:
            raise ConflictError("Due schedule already claimed", due_number=schedule.due_number)
        self.session.refresh(schedule)

    # ------------------------------------------------------------------
    # Bulk helpers used by lifecycle synchronization (caller commits)
    # ------------------------------------------------------------------
    def reprice_future(self, subscription_id: UUID, price: Decimal, from_date: date) -> list[DueSchedule]:
        statement = (
            select(DueSchedule)
            .where(DueSchedule.subscription_id == subscription_id)
            .where(DueSchedule.status.in_(UNSETTLED_STATUSES))
            .where(DueSchedule.due_date >= from_date)
            .where(DueSchedule.paid_amount == ZERO)
        )
        return self._apply(statement, amount=price)

    def cancel_after(self, subscription_id: UUID, cutoff: date, reason: str | None = None) -> list[DueSchedule]:
        statement = (
            select(DueSchedule)
            .where(DueSchedule.subscription_id == subscription_id)
            .where(DueSchedule.status.in_(UNSETTLED_STATUSES))
            .where(DueSchedule.due_date > cutoff)
        )
        return self._apply(statement, status=DueStatus.CANCELLED, note=reason)

    def cancel_unsettled(self, subscription_id: UUID, reason: str | None = None) -> list[DueSchedule]:
        statement = (
            select(DueSchedule)
            .where(DueSchedule.subscription_id == subscription_id)
            .where(DueSchedule.status.in_(UNSETTLED_STATUSES))
        )
        return self._apply(statement, status=DueStatus.CANCELLED, note=reason)

    def pause_after(self, subscription_id: UUID, cutoff: date) -> list[DueSchedule]:
        statement = (
            select(DueSchedule)
            .where(DueSchedule.subscription_id == subscription_id)
            .where(DueSchedule.status.in_(OWED_STATUSES))
            .where(DueSchedule.due_date > cutoff)
        )
        return self._apply(statement, status=DueStatus.PAUSED)

    def resume_paused(self, subscription_id: UUID) -> list[DueSchedule]:
        statement = (
            select(DueSchedule)
            .where(DueSchedule.subscription_id == subscription_id)
            .where(DueSchedule.status == DueStatus.PAUSED)
        )
        return self._apply(statement, status=DueStatus.PENDING)

    def _apply(
        self,
        statement,
        *,
        status: DueStatus | None = None,
        amount: Decimal | None = None,
        note: str | None = None,
    ) -> list[DueSchedule]:
        schedules = list(self.session.exec(statement.order_by(DueSchedule.due_date)).all())
        now = datetime.utcnow()
        for schedule in schedules:
            if status is not None:
                schedule.status = status
            if amount is not None:
                schedule.amount = amount
            if note:
                schedule.notes = _append_note(schedule.notes, note)
            schedule.updated_at = now
            self.session.add(schedule)
        return schedules

    # ------------------------------------------------------------------
    def _get_subscription(self, subscription_id: UUID) -> Subscription:
        subscription = self.session.get(Subscription, subscription_id)
        if subscription is None or subscription.deleted_at is not None:
            raise NotFoundError("Subscription not found", subscription_id=str(subscription_id))
        return subscription

    def _save(self, schedule: DueSchedule) -> DueSchedule:
        self.session.add(schedule)
        self.session.commit()
        self.session.refresh(schedule)
        return schedule


def _append_note(existing: str | None, note: str) -> str:
    return f"{existing}\n{note}" if existing else note


