from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from erp_billing.core.config import settings
from erp_billing.core.errors import BillingError, ConflictError, InvalidArgumentError, NotFoundError
from erp_billing.core.logging_setup import logger
from erp_billing.models.contract import Contract, ContractStatus
from erp_billing.models.due_schedule import DueSchedule, DueStatus
from erp_billing.models.product import Product
from erp_billing.models.subscription import Subscription, SubscriptionStatus
from erp_billing.schemas.subscription import SubscriptionCreate, SubscriptionUpdate
from erp_billing.services.due_schedule import DueScheduleService
from erp_billing.services.numbering import NumberGenerator
from erp_billing.utils.dates import add_months, months_between

lifecycle_logger = logger.getChild("subscriptions")


@dataclass
class ScheduleSync:
    """Due schedule changes caused by one lifecycle operation."""

    action: str
    subscription_number: str
    due_numbers: list[str] = field(default_factory=list)


class SubscriptionService:
    def __init__(
        self,
        session: Session,
        numbers: NumberGenerator | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.session = session
        self.today = today
        self.numbers = numbers or NumberGenerator(session, today=today)
        self.due_schedules = DueScheduleService(session, numbers=self.numbers, today=today)
        self.last_sync: list[ScheduleSync] = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, subscription_id: UUID) -> Subscription:
        subscription = self.session.get(Subscription, subscription_id)
        if subscription is None or subscription.deleted_at is not None:
            raise NotFoundError("Subscription not found", subscription_id=str(subscription_id))
        return subscription

    def get_by_number(self, subscription_number: str) -> Subscription | None:
        statement = (
            select(Subscription)
            .where(Subscription.subscription_number == subscription_number)
            .where(Subscription.deleted_at.is_(None))
        )
        return self.session.exec(statement).first()

    def list_subscriptions(
        self,
        status: SubscriptionStatus | None = None,
        contract_id: UUID | None = None,
    ) -> list[Subscription]:
        statement = select(Subscription).where(Subscription.deleted_at.is_(None))
        if status is not None:
            statement = statement.where(Subscription.status == status)
        if contract_id is not None:
            statement = statement.where(Subscription.contract_id == contract_id)
        return list(self.session.exec(statement.order_by(Subscription.subscription_number)).all())

    def list_by_customer(self, customer_id: UUID) -> list[Subscription]:
        statement = (
            select(Subscription)
            .join(Contract, Contract.id == Subscription.contract_id)
            .where(Contract.customer_id == customer_id)
            .where(Subscription.deleted_at.is_(None))
            .order_by(Subscription.start_date)
        )
        return list(self.session.exec(statement).all())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def create(self, payload: SubscriptionCreate) -> Subscription:
        self.last_sync = []
        product_name = (payload.product_name or "").strip()
        if not product_name:
            raise InvalidArgumentError("Product name is required")
        if payload.monthly_price is None or payload.monthly_price < 0:
            raise InvalidArgumentError("Monthly price must not be negative")
        if payload.start_date is None:
            raise InvalidArgumentError("Start date is required")
        self._require_active_contract(payload.contract_id)
        if payload.product_id is not None and self.session.get(Product, payload.product_id) is None:
            raise InvalidArgumentError("Product not found", product_id=str(payload.product_id))

        end_date = payload.end_date or add_months(payload.start_date, 12)
        if end_date <= payload.start_date:
            raise InvalidArgumentError("End date must be after start date")

        subscription = Subscription(
            subscription_number=self.numbers.subscription_number(),
            product_name=product_name,
            description=payload.description,
            monthly_price=payload.monthly_price,
            start_date=payload.start_date,
            end_date=end_date,
            billing_cycle=payload.billing_cycle,
            status=SubscriptionStatus.ACTIVE,
            auto_renewal=payload.auto_renewal,
            notes=payload.notes,
            contract_id=payload.contract_id,
            product_id=payload.product_id,
        )
        self.session.add(subscription)
        self.session.flush()

        periods = max(1, months_between(subscription.start_date, end_date))
        try:
            schedules = self.due_schedules.generate_schedules(subscription.id, periods, commit=False)
            self.session.commit()
        except (BillingError, SQLAlchemyError):
            self.session.rollback()
            lifecycle_logger.exception("[create_subscription] rollback")
            raise
        self.session.refresh(subscription)
        self._record("generated", subscription, schedules)
        lifecycle_logger.info(
            f"[create_subscription] {subscription.subscription_number} {subscription.start_date} - "
            f"{subscription.end_date} with {len(schedules)} due schedules"
        )
        return subscription

    def update(self, subscription_id: UUID, payload: SubscriptionUpdate) -> Subscription:
        self.last_sync = []
        subscription = self.get(subscription_id)
        update_data = payload.model_dump(exclude_unset=True)

        if "product_name" in update_data:
            product_name = (update_data["product_name"] or "").strip()
            if not product_name:
                raise InvalidArgumentError("Product name is required")
            update_data["product_name"] = product_name
        if "monthly_price" in update_data and (
            update_data["monthly_price"] is None or update_data["monthly_price"] < 0
        ):
            raise InvalidArgumentError("Monthly price must not be negative")
        if update_data.get("end_date") is not None and update_data["end_date"] <= subscription.start_date:
            raise InvalidArgumentError("End date must be after start date")
        for required in ("end_date", "billing_cycle", "auto_renewal"):
            if required in update_data and update_data[required] is None:
                update_data.pop(required)
        if update_data.get("product_id") is not None and self.session.get(Product, update_data["product_id"]) is None:
            raise InvalidArgumentError("Product not found", product_id=str(update_data["product_id"]))

        old_price = subscription.monthly_price
        old_end = subscription.end_date
        old_cycle = subscription.billing_cycle

        for key, value in update_data.items():
            setattr(subscription, key, value)
        subscription.updated_at = datetime.utcnow()
        self.session.add(subscription)
        self.session.commit()
        self.session.refresh(subscription)

        today = self.today()
        if subscription.monthly_price != old_price:
            price = subscription.monthly_price
            self._synchronize(
                "repriced",
                subscription,
                lambda: self.due_schedules.reprice_future(subscription_id, price, today),
            )
        if subscription.billing_cycle != old_cycle:
            self._synchronize("regenerated", subscription, lambda: self._regenerate_future(subscription_id, today))
        if subscription.end_date != old_end:
            new_end = subscription.end_date
            if old_end is None or new_end > old_end:
                self._synchronize("generated", subscription, lambda: self._generate_until_end(subscription_id))
            else:
                self._synchronize(
                    "cancelled",
                    subscription,
                    lambda: self.due_schedules.cancel_after(
                        subscription_id, new_end, reason=f"End date moved to {new_end.isoformat()}"
                    ),
                )
        self.session.refresh(subscription)
        return subscription

    def activate(self, subscription_id: UUID) -> Subscription:
        self.last_sync = []
        subscription = self.get(subscription_id)
        contract = self.session.get(Contract, subscription.contract_id)
        if contract is not None and contract.status == ContractStatus.TERMINATED:
            raise ConflictError("Cannot activate a subscription of a terminated contract")
        subscription.status = SubscriptionStatus.ACTIVE
        subscription.updated_at = datetime.utcnow()
        self.session.add(subscription)
        self.session.commit()
        self.session.refresh(subscription)

        self._synchronize("resumed", subscription, lambda: self.due_schedules.resume_paused(subscription_id))
        if not self._has_schedules(subscription_id):
            self._synchronize(
                "generated",
                subscription,
                lambda: self.due_schedules.generate_schedules(subscription_id, commit=False),
            )
        lifecycle_logger.info(f"[activate_subscription] {subscription.subscription_number}")
        return subscription

    def pause(self, subscription_id: UUID) -> Subscription:
        self.last_sync = []
        subscription = self.get(subscription_id)
        if subscription.status == SubscriptionStatus.PAUSED:
            return subscription
        if subscription.status != SubscriptionStatus.ACTIVE:
            raise ConflictError(f"Cannot pause a {subscription.status.value} subscription")
        subscription.status = SubscriptionStatus.PAUSED
        subscription.updated_at = datetime.utcnow()
        self.session.add(subscription)
        self.session.commit()
        self.session.refresh(subscription)

        today = self.today()
        self._synchronize("paused", subscription, lambda: self.due_schedules.pause_after(subscription_id, today))
        lifecycle_logger.info(f"[pause_subscription] {subscription.subscription_number}")
        return subscription

    def cancel(self, subscription_id: UUID, cancellation_date: date | None = None) -> Subscription:
        self.last_sync = []
        subscription = self.get(subscription_id)
        if subscription.status == SubscriptionStatus.CANCELLED:
            raise ConflictError("Subscription is already cancelled")
        effective = cancellation_date or self.today()
        subscription.status = SubscriptionStatus.CANCELLED
        subscription.end_date = effective
        subscription.auto_renewal = False
        subscription.updated_at = datetime.utcnow()
        self.session.add(subscription)
        self.session.commit()
        self.session.refresh(subscription)

        self._synchronize(
            "cancelled",
            subscription,
            lambda: self.due_schedules.cancel_after(
                subscription_id, effective, reason=f"Subscription cancelled as of {effective.isoformat()}"
            ),
        )
        lifecycle_logger.info(f"[cancel_subscription] {subscription.subscription_number} as of {effective}")
        return subscription

    def renew(self, subscription_id: UUID, new_end_date: date) -> Subscription:
        self.last_sync = []
        subscription = self.get(subscription_id)
        if subscription.status == SubscriptionStatus.CANCELLED:
            raise ConflictError("Cancelled subscriptions cannot be renewed")
        if subscription.end_date is not None and new_end_date <= subscription.end_date:
            raise InvalidArgumentError("New end date must be after the current end date")
        if new_end_date <= subscription.start_date:
            raise InvalidArgumentError("New end date must be after start date")
        subscription.status = SubscriptionStatus.ACTIVE
        subscription.end_date = new_end_date
        subscription.updated_at = datetime.utcnow()
        self.session.add(subscription)
        self.session.commit()
        self.session.refresh(subscription)

        self._synchronize("generated", subscription, lambda: self._generate_until_end(subscription_id))
        lifecycle_logger.info(f"[renew_subscription] {subscription.subscription_number} until {new_end_date}")
        return subscription

    def delete(self, subscription_id: UUID) -> Subscription:
        self.last_sync = []
        subscription = self.get(subscription_id)
        contract = self.session.get(Contract, subscription.contract_id)
        if contract is not None and contract.status == ContractStatus.ACTIVE:
            raise ConflictError(
                "Subscription belongs to an active contract", contract_number=contract.contract_number
            )
        cancelled = self.due_schedules.cancel_unsettled(subscription_id, reason="Subscription deleted")
        subscription.deleted_at = datetime.utcnow()
        subscription.updated_at = subscription.deleted_at
        self.session.add(subscription)
        self.session.commit()
        self.session.refresh(subscription)
        self._record("cancelled", subscription, cancelled)
        lifecycle_logger.info(f"[delete_subscription] {subscription.subscription_number} soft-deleted")
        return subscription

    def align_with_terminated_contract(self, subscription: Subscription, contract: Contract) -> list[DueSchedule]:
        """Cancel an ACTIVE subscription of a terminated contract. The caller commits."""
        end_date = contract.end_date or self.today()
        subscription.status = SubscriptionStatus.CANCELLED
        subscription.end_date = end_date
        subscription.auto_renewal = False
        subscription.updated_at = datetime.utcnow()
        self.session.add(subscription)
        return self.due_schedules.cancel_after(
            subscription.id, end_date, reason=f"Contract {contract.contract_number} terminated"
        )

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------
    def process_auto_renewals(self, days_ahead: int | None = None) -> list[Subscription]:
        self.last_sync = []
        window = settings.billing_auto_renewal_window_days if days_ahead is None else days_ahead
        today = self.today()
        horizon = today + timedelta(days=window)
        statement = (
            select(Subscription)
            .where(Subscription.status == SubscriptionStatus.ACTIVE)
            .where(Subscription.auto_renewal.is_(True))
            .where(Subscription.deleted_at.is_(None))
            .where(Subscription.end_date.is_not(None))
            .where(Subscription.end_date >= today)
            .where(Subscription.end_date <= horizon)
            .order_by(Subscription.end_date)
        )
        candidates = [subscription.id for subscription in self.session.exec(statement).all()]

        renewed: list[Subscription] = []
        for subscription_id in candidates:
            subscription = self.get(subscription_id)
            new_end = add_months(subscription.end_date, subscription.billing_cycle.months)
            subscription.end_date = new_end
            subscription.updated_at = datetime.utcnow()
            self.session.add(subscription)
            try:
                self.session.commit()
            except SQLAlchemyError:
                self.session.rollback()
                lifecycle_logger.exception(f"[auto_renewal] failed for {subscription_id}")
                continue
            self.session.refresh(subscription)
            self._synchronize(
                "generated",
                subscription,
                lambda: self._generate_until_end(subscription_id),
            )
            renewed.append(subscription)
            lifecycle_logger.info(f"[auto_renewal] {subscription.subscription_number} renewed until {new_end}")
        return renewed

    def process_expired(self) -> list[Subscription]:
        self.last_sync = []
        statement = (
            select(Subscription)
            .where(Subscription.status.in_((SubscriptionStatus.ACTIVE, SubscriptionStatus.PAUSED)))
            .where(Subscription.auto_renewal.is_(False))
            .where(Subscription.deleted_at.is_(None))
            .where(Subscription.end_date.is_not(None))
            .where(Subscription.end_date < self.today())
            .order_by(Subscription.end_date)
        )
        candidates = [subscription.id for subscription in self.session.exec(statement).all()]

        expired: list[Subscription] = []
        for subscription_id in candidates:
            subscription = self.get(subscription_id)
            end_date = subscription.end_date
            subscription.status = SubscriptionStatus.EXPIRED
            subscription.updated_at = datetime.utcnow()
            self.session.add(subscription)
            try:
                cancelled = self.due_schedules.cancel_after(
                    subscription_id, end_date, reason=f"Subscription expired on {end_date.isoformat()}"
                )
                self.session.commit()
            except SQLAlchemyError:
                self.session.rollback()
                lifecycle_logger.exception(f"[expire_subscription] failed for {subscription_id}")
                continue
            self.session.refresh(subscription)
            self._record("cancelled", subscription, cancelled)
            expired.append(subscription)
            lifecycle_logger.info(f"[expire_subscription] {subscription.subscription_number} expired")
        return expired

    # ------------------------------------------------------------------
    def _require_active_contract(self, contract_id: UUID) -> Contract:
        contract = self.session.get(Contract, contract_id)
        if contract is None:
            raise InvalidArgumentError("Contract not found", contract_id=str(contract_id))
        if contract.status != ContractStatus.ACTIVE:
            raise InvalidArgumentError("Contract is not active", contract_number=contract.contract_number)
        return contract

    def _has_schedules(self, subscription_id: UUID) -> bool:
        statement = (
            select(DueSchedule.id)
            .where(DueSchedule.subscription_id == subscription_id)
            .where(DueSchedule.status != DueStatus.CANCELLED)
        )
        return self.session.exec(statement).first() is not None

    def _generate_until_end(self, subscription_id: UUID) -> list[DueSchedule]:
        subscription = self.get(subscription_id)
        origin = self.due_schedules.continuation_date(subscription)
        if subscription.end_date is not None and origin >= subscription.end_date:
            return []
        periods = max(1, months_between(origin, subscription.end_date)) if subscription.end_date else 1
        return self.due_schedules.generate_schedules(subscription_id, periods, commit=False)

    def _regenerate_future(self, subscription_id: UUID, today: date) -> list[DueSchedule]:
        self.due_schedules.cancel_after(
            subscription_id, today - timedelta(days=1), reason="Billing cycle changed"
        )
        self.session.flush()
        return self._generate_until_end(subscription_id)

    def _synchronize(
        self,
        action: str,
        subscription: Subscription,
        operation: Callable[[], list[DueSchedule]],
    ) -> None:
        number = subscription.subscription_number
        try:
            schedules = operation()
            self.session.commit()
        except (BillingError, SQLAlchemyError):
            self.session.rollback()
            lifecycle_logger.exception(f"[schedule_sync] {action} failed for {number}, left for repair")
            return
        self.last_sync.append(ScheduleSync(action, number, [schedule.due_number for schedule in schedules]))

    def _record(self, action: str, subscription: Subscription, schedules: list[DueSchedule]) -> None:
        self.last_sync.append(
            ScheduleSync(action, subscription.subscription_number, [schedule.due_number for schedule in schedules])
        )


