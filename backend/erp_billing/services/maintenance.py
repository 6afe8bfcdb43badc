from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Callable

from sqlalchemy import delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from erp_billing.core.logging_setup import logger
from erp_billing.models.contract import Contract
from erp_billing.models.customer import Address, Customer
from erp_billing.models.due_schedule import DueSchedule
from erp_billing.models.invoice import Invoice, InvoiceItem
from erp_billing.models.open_item import OpenItem
from erp_billing.models.product import Product
from erp_billing.models.subscription import Subscription
from erp_billing.services.consistency import ConsistencyAnalysis, ConsistencyService

# Child tables first so foreign keys are never violated.
BUSINESS_TABLES: list[type[SQLModel]] = [OpenItem, DueSchedule, InvoiceItem, Invoice, Subscription, Contract]


@dataclass
class StatusReport:
    customers: int = 0
    addresses: int = 0
    products: int = 0
    contracts: dict[str, int] = field(default_factory=dict)
    subscriptions: dict[str, int] = field(default_factory=dict)
    deleted_subscriptions: int = 0
    due_schedules: dict[str, int] = field(default_factory=dict)
    invoices: dict[str, int] = field(default_factory=dict)
    open_items: dict[str, int] = field(default_factory=dict)
    consistency: ConsistencyAnalysis = field(default_factory=ConsistencyAnalysis)


class MaintenanceService:
    def __init__(self, session: Session, today: Callable[[], date] = date.today) -> None:
        self.session = session
        self.today = today

    def status_report(self) -> StatusReport:
        report = StatusReport(
            customers=self._count(Customer),
            addresses=self._count(Address),
            products=self._count(Product),
            contracts=self._count_by_status(Contract),
            subscriptions=self._count_by_status(Subscription, Subscription.deleted_at.is_(None)),
            deleted_subscriptions=self._count(Subscription, Subscription.deleted_at.is_not(None)),
            due_schedules=self._count_by_status(DueSchedule),
            invoices=self._count_by_status(Invoice),
            open_items=self._count_by_status(OpenItem),
            consistency=ConsistencyService(self.session, today=self.today).analyze(),
        )
        return report

    def clear_business_data(self) -> dict[str, int]:
        """Delete all transactional rows. Customers, addresses and products stay."""
        deleted: dict[str, int] = {}
        try:
            connection = self.session.connection()
            for model in BUSINESS_TABLES:
                result = connection.execute(delete(model))
                deleted[model.__tablename__] = result.rowcount or 0
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception("[clear_business_data] rollback")
            raise
        self.session.expire_all()
        logger.warning(f"[clear_business_data] removed {deleted}")
        return deleted

    def _count(self, model: type[SQLModel], *criteria) -> int:
        statement = select(func.count()).select_from(model)
        for criterion in criteria:
            statement = statement.where(criterion)
        return self.session.exec(statement).one()

    def _count_by_status(self, model: type[SQLModel], *criteria) -> dict[str, int]:
        status_column = getattr(model, "status")
        statement = select(status_column, func.count()).select_from(model)
        for criterion in criteria:
            statement = statement.where(criterion)
        rows = self.session.exec(statement.group_by(status_column)).all()
        return {status.value: count for status, count in rows}
