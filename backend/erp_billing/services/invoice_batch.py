from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from erp_billing.core.errors import BillingError, InconsistentError, NotFoundError
from erp_billing.core.logging_setup import logger
from erp_billing.models.contract import Contract
from erp_billing.models.customer import Customer
from erp_billing.models.due_schedule import OWED_STATUSES, DueSchedule, DueStatus
from erp_billing.models.product import Product
from erp_billing.models.subscription import Subscription
from erp_billing.services.due_schedule import DueScheduleService
from erp_billing.services.invoice import InvoiceService
from erp_billing.services.numbering import NumberGenerator
from erp_billing.services.open_item import OpenItemService

ZERO = Decimal("0")

batch_logger = logger.getChild("batch")


@dataclass
class BillingScope:
    billing_date: date
    include_all_previous_periods: bool
    due_schedules: list[DueSchedule] = field(default_factory=list)
    estimated_total: Decimal = ZERO
    overdue_count: int = 0
    current_count: int = 0
    month_groups: dict[str, int] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.due_schedules)

    @property
    def is_empty(self) -> bool:
        return not self.due_schedules


@dataclass
class InvoiceBatchResult:
    batch_id: str
    billing_date: date
    include_all_previous_periods: bool
    expected_due_schedules: int = 0
    processed_due_schedules: int = 0
    created_invoices: int = 0
    created_open_items: int = 0
    total_amount: Decimal = ZERO
    errors: list[str] = field(default_factory=list)
    message: str = ""

    @property
    def is_consistent(self) -> bool:
        return self.processed_due_schedules == self.created_invoices == self.created_open_items

    @property
    def is_complete(self) -> bool:
        return self.is_consistent and self.processed_due_schedules == self.expected_due_schedules

    def raise_for_inconsistency(self) -> None:
        if not self.is_consistent:
            raise InconsistentError(
                "Invoice batch counts disagree",
                batch_id=self.batch_id,
                processed=self.processed_due_schedules,
                invoices=self.created_invoices,
                open_items=self.created_open_items,
            )


class InvoiceBatchAnalyzer:
    """Read-only selection of the due schedules a batch run would bill."""

    def __init__(self, session: Session, today: Callable[[], date] = date.today) -> None:
        self.session = session
        self.today = today

    def analyze_billing_scope(self, billing_date: date, include_all_previous_periods: bool = True) -> BillingScope:
        statement = (
            select(DueSchedule, Subscription)
            .join(Subscription, Subscription.id == DueSchedule.subscription_id)
            .where(DueSchedule.status.in_(OWED_STATUSES))
            .where(Subscription.deleted_at.is_(None))
        )
        if include_all_previous_periods:
            statement = statement.where(DueSchedule.due_date <= billing_date)
        else:
            statement = statement.where(DueSchedule.due_date == billing_date)
        statement = statement.order_by(
            DueSchedule.subscription_id, DueSchedule.due_date, DueSchedule.due_number
        )
        rows = self.session.exec(statement).all()

        scope = BillingScope(billing_date=billing_date, include_all_previous_periods=include_all_previous_periods)
        months: Counter[str] = Counter()
        today = self.today()
        for schedule, subscription in rows:
            scope.due_schedules.append(schedule)
            scope.estimated_total += self._estimate(subscription)
            if schedule.status == DueStatus.OVERDUE or schedule.due_date < today:
                scope.overdue_count += 1
            else:
                scope.current_count += 1
            months[f"{schedule.due_date:%Y-%m}"] += 1
        scope.month_groups = dict(sorted(months.items()))

        batch_logger.info(
            f"[analyze_billing_scope] {billing_date} "
            f"({'accumulated' if include_all_previous_periods else 'exact'}): "
            f"{scope.count} schedules, estimated {scope.estimated_total}"
        )
        return scope

    def can_run(self, billing_date: date, include_all_previous_periods: bool = True) -> bool:
        return not self.analyze_billing_scope(billing_date, include_all_previous_periods).is_empty

    def _estimate(self, subscription: Subscription) -> Decimal:
        if subscription.monthly_price and subscription.monthly_price > ZERO:
            return subscription.monthly_price
        if subscription.product_id:
            product = self.session.get(Product, subscription.product_id)
            if product is not None and product.price:
                return product.price
        return ZERO


class InvoiceBatchService:
    """Turns the analyzed scope into invoices and open items, one transaction per schedule."""

    def __init__(
        self,
        session: Session,
        numbers: NumberGenerator | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.session = session
        self.today = today
        self.numbers = numbers or NumberGenerator(session, today=today)
        self.analyzer = InvoiceBatchAnalyzer(session, today=today)
        self.due_schedules = DueScheduleService(session, numbers=self.numbers, today=today)
        self.invoices = InvoiceService(session, numbers=self.numbers, today=today)
        self.open_items = OpenItemService(session, today=today)

    def run_invoice_batch(self, billing_date: date, include_all_previous_periods: bool = True) -> InvoiceBatchResult:
        scope = self.analyzer.analyze_billing_scope(billing_date, include_all_previous_periods)
        result = InvoiceBatchResult(
            batch_id=self.numbers.batch_id(billing_date),
            billing_date=billing_date,
            include_all_previous_periods=include_all_previous_periods,
            expected_due_schedules=scope.count,
        )
        if scope.is_empty:
            result.message = f"No due schedules to bill for {billing_date.isoformat()}"
            batch_logger.info(f"[run_invoice_batch] {result.message}")
            return result

        batch_logger.info(f"[run_invoice_batch] {result.batch_id} started with {scope.count} due schedules")
        work = [(schedule.id, schedule.due_number) for schedule in scope.due_schedules]
        for schedule_id, due_number in work:
            try:
                total = self._bill_schedule(schedule_id, billing_date, result.batch_id)
                self.session.commit()
            except (BillingError, SQLAlchemyError) as exc:
                self.session.rollback()
                result.errors.append(f"{due_number}: {exc}")
                batch_logger.warning(f"[run_invoice_batch] {due_number} skipped: {exc}")
                continue
            result.processed_due_schedules += 1
            result.created_invoices += 1
            result.created_open_items += 1
            result.total_amount += total

        result.message = (
            f"Processed {result.processed_due_schedules} of {result.expected_due_schedules} due schedules: "
            f"{result.created_invoices} invoices, {result.created_open_items} open items, "
            f"total {result.total_amount}"
        )
        if result.errors:
            result.message += f", {len(result.errors)} failed"
        if not result.is_consistent:
            batch_logger.error(f"[run_invoice_batch] {result.batch_id} inconsistent: {result.message}")
        else:
            batch_logger.info(f"[run_invoice_batch] {result.batch_id} finished: {result.message}")
        return result

    def _bill_schedule(self, schedule_id, billing_date: date, batch_id: str) -> Decimal:
        schedule = self.due_schedules.get(schedule_id)
        subscription = self.session.get(Subscription, schedule.subscription_id)
        if subscription is None:
            raise NotFoundError("Subscription not found", due_number=schedule.due_number)
        contract = self.session.get(Contract, subscription.contract_id)
        if contract is None:
            raise NotFoundError("Contract not found", subscription=subscription.subscription_number)
        customer = self.session.get(Customer, contract.customer_id)
        if customer is None:
            raise NotFoundError("Customer not found", contract=contract.contract_number)

        self.due_schedules.claim_for_billing(schedule)

        invoice, item = self.invoices.build_from_due_schedule(schedule, subscription, customer, billing_date, batch_id)
        open_item = self.open_items.build_for_invoice(invoice)
        schedule.invoice_id = invoice.id
        self.session.add(invoice)
        self.session.add(item)
        self.session.add(open_item)
        self.session.add(schedule)
        self.session.flush()
        return invoice.total_amount
