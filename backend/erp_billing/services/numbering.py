from __future__ import annotations

import secrets
from datetime import date
from typing import Callable

from sqlmodel import Session, SQLModel, select

from erp_billing.core.config import settings
from erp_billing.core.errors import ConflictError
from erp_billing.models.contract import Contract
from erp_billing.models.customer import Customer
from erp_billing.models.due_schedule import DueSchedule
from erp_billing.models.invoice import Invoice
from erp_billing.models.product import Product
from erp_billing.models.subscription import Subscription


class NumberGenerator:
    """Issues business numbers that are unique within their table.

    A random suffix is drawn and checked against the database and against
    numbers already handed out by this generator (rows not yet flushed).
    """

    def __init__(self, session: Session, today: Callable[[], date] = date.today) -> None:
        self.session = session
        self.today = today
        self._issued: set[str] = set()

    def subscription_number(self) -> str:
        year = self.today().year
        return self._generate(Subscription, "subscription_number", lambda: f"SUB-{year}-{self._digits(6)}")

    def due_number(self) -> str:
        year = self.today().year
        return self._generate(DueSchedule, "due_number", lambda: f"DUE-{year}-{self._digits(6)}")

    def invoice_number(self, invoice_date: date | None = None) -> str:
        day = invoice_date or self.today()
        return self._generate(
            Invoice, "invoice_number", lambda: f"INV-{day.year}-{day.month:02d}-{self._digits(6)}"
        )

    def contract_number(self) -> str:
        year = self.today().year
        return self._generate(Contract, "contract_number", lambda: f"CONT-{year}-{self._digits(6)}")

    def customer_number(self) -> str:
        return self._generate(Customer, "customer_number", lambda: f"CUST-{self._digits(8)}")

    def product_number(self) -> str:
        return self._generate(Product, "product_number", lambda: f"PROD-{self._digits(6)}")

    def batch_id(self, billing_date: date) -> str:
        return f"BATCH-{billing_date:%Y%m%d}-{secrets.token_hex(4).upper()}"

    @staticmethod
    def _digits(width: int) -> str:
        return str(secrets.randbelow(10**width)).zfill(width)

    def _generate(self, model: type[SQLModel], column: str, factory: Callable[[], str]) -> str:
        attribute = getattr(model, column)
        for _ in range(settings.billing_number_max_attempts):
            candidate = factory()
            if candidate in self._issued:
                continue
            exists = self.session.exec(select(model).where(attribute == candidate)).first()
            if exists is None:
                self._issued.add(candidate)
                return candidate
        raise ConflictError(f"Could not generate a unique {column}", model=model.__name__)
