from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable

from pydantic import BaseModel, Field
from sqlmodel import Session

from erp_billing.core.errors import InvalidArgumentError
from erp_billing.core.logging_setup import logger
from erp_billing.models.open_item import OpenItemStatus
from erp_billing.models.subscription import BillingCycle
from erp_billing.schemas.contract import ContractCreate
from erp_billing.schemas.customer import AddressCreate, CustomerCreate
from erp_billing.schemas.product import ProductCreate
from erp_billing.schemas.subscription import SubscriptionCreate
from erp_billing.services.contract import ContractService
from erp_billing.services.customer import CustomerService
from erp_billing.services.invoice import InvoiceService
from erp_billing.services.invoice_batch import InvoiceBatchService
from erp_billing.services.numbering import NumberGenerator
from erp_billing.services.open_item import OpenItemService
from erp_billing.services.product import ProductService
from erp_billing.services.subscription import SubscriptionService
from erp_billing.utils.dates import add_months

_PRODUCTS = [
    ("Cloud Storage 100 GB", Decimal("9.90")),
    ("Office Suite", Decimal("24.50")),
    ("Managed Backup", Decimal("49.00")),
    ("Support Premium", Decimal("99.00")),
]
_PEOPLE = [
    ("Anna", "Schmidt", "Hauptstrasse 1", "10115", "Berlin"),
    ("Jonas", "Weber", "Marktplatz 5", "80331", "Muenchen"),
    ("Lea", "Fischer", "Ringstrasse 12", "50667", "Koeln"),
    ("Paul", "Wagner", "Bahnhofstrasse 3", "20095", "Hamburg"),
    ("Mia", "Becker", "Schillerweg 8", "70173", "Stuttgart"),
]
ZERO = Decimal("0")
_CYCLES = [BillingCycle.MONTHLY, BillingCycle.QUARTERLY, BillingCycle.MONTHLY, BillingCycle.ANNUALLY]


class SeedConfig(BaseModel):
    """Volumes and status ratios for demo data; every ratio group must sum to 1."""

    customers: int = Field(default=3, ge=1)
    subscriptions_per_customer: int = Field(default=2, ge=1)
    start_date: date | None = None
    bill_until: date | None = None

    active_contract_ratio: float = 1.0
    terminated_contract_ratio: float = 0.0

    active_subscription_ratio: float = 1.0
    cancelled_subscription_ratio: float = 0.0
    paused_subscription_ratio: float = 0.0

    open_open_item_ratio: float = 1.0
    paid_open_item_ratio: float = 0.0
    partially_paid_open_item_ratio: float = 0.0

    @classmethod
    def all_active(cls, **overrides) -> "SeedConfig":
        return cls(**overrides)

    @classmethod
    def realistic(cls, **overrides) -> "SeedConfig":
        values = dict(
            active_contract_ratio=0.8,
            terminated_contract_ratio=0.2,
            active_subscription_ratio=0.85,
            cancelled_subscription_ratio=0.10,
            paused_subscription_ratio=0.05,
            open_open_item_ratio=0.60,
            paid_open_item_ratio=0.25,
            partially_paid_open_item_ratio=0.15,
        )
        values.update(overrides)
        return cls(**values)

    @classmethod
    def development(cls, **overrides) -> "SeedConfig":
        values = dict(
            active_contract_ratio=0.95,
            terminated_contract_ratio=0.05,
            active_subscription_ratio=0.90,
            cancelled_subscription_ratio=0.05,
            paused_subscription_ratio=0.05,
            open_open_item_ratio=0.80,
            paid_open_item_ratio=0.15,
            partially_paid_open_item_ratio=0.05,
        )
        values.update(overrides)
        return cls(**values)

    def ratio_groups(self) -> dict[str, dict[str, float]]:
        return {
            "contract": {
                "active": self.active_contract_ratio,
                "terminated": self.terminated_contract_ratio,
            },
            "subscription": {
                "active": self.active_subscription_ratio,
                "cancelled": self.cancelled_subscription_ratio,
                "paused": self.paused_subscription_ratio,
            },
            "open_item": {
                "open": self.open_open_item_ratio,
                "paid": self.paid_open_item_ratio,
                "partially_paid": self.partially_paid_open_item_ratio,
            },
        }


@dataclass
class SeedResult:
    products: int = 0
    customers: int = 0
    contracts: int = 0
    subscriptions: int = 0
    due_schedules: int = 0
    invoices: int = 0
    terminated_contracts: int = 0
    cancelled_subscriptions: int = 0
    paused_subscriptions: int = 0
    paid_open_items: int = 0
    partially_paid_open_items: int = 0


def distribute(ratios: dict[str, float], index: int, total: int) -> str:
    """Deterministically assign the ``index``-th of ``total`` rows to a ratio bucket."""
    position = (index + 0.5) / total
    cumulative = 0.0
    for name, ratio in ratios.items():
        cumulative += ratio
        if position < cumulative:
            return name
    return next(iter(ratios))


class SeedService:
    def __init__(self, session: Session, today: Callable[[], date] = date.today) -> None:
        self.session = session
        self.today = today
        self.numbers = NumberGenerator(session, today=today)

    def validate(self, config: SeedConfig) -> None:
        for group, ratios in config.ratio_groups().items():
            if any(ratio < 0 or ratio > 1 for ratio in ratios.values()):
                raise InvalidArgumentError(f"{group} ratios must be between 0 and 1", ratios=ratios)
            if abs(sum(ratios.values()) - 1.0) > 1e-6:
                raise InvalidArgumentError(f"{group} ratios must add up to 1", ratios=ratios)

    def seed(self, config: SeedConfig) -> SeedResult:
        self.validate(config)
        today = self.today()
        start = config.start_date or add_months(today.replace(day=1), -6)
        groups = config.ratio_groups()
        result = SeedResult()

        products = ProductService(self.session, numbers=self.numbers)
        customers = CustomerService(self.session, numbers=self.numbers)
        contracts = ContractService(self.session, numbers=self.numbers, today=self.today)
        subscriptions = SubscriptionService(self.session, numbers=self.numbers, today=self.today)

        catalog = [products.create_product(ProductCreate(name=name, price=price)) for name, price in _PRODUCTS]
        result.products = len(catalog)

        contract_ids = []
        subscription_ids = []
        for index in range(config.customers):
            first, last, street, postal_code, city = _PEOPLE[index % len(_PEOPLE)]
            customer = customers.create_customer(
                CustomerCreate(
                    first_name=first,
                    last_name=last,
                    email=f"{first.lower()}.{last.lower()}.{index}@example.com",
                    billing_address=AddressCreate(street=street, postal_code=postal_code, city=city),
                )
            )
            contract = contracts.create_contract(
                ContractCreate(title=f"Service agreement {customer.last_name}", start_date=start, customer_id=customer.id)
            )
            contract_ids.append(contract.id)
            for offset in range(config.subscriptions_per_customer):
                product = catalog[(index + offset) % len(catalog)]
                subscription = subscriptions.create(
                    SubscriptionCreate(
                        product_name=product.name,
                        monthly_price=product.price,
                        start_date=start,
                        billing_cycle=_CYCLES[(index + offset) % len(_CYCLES)],
                        contract_id=contract.id,
                        product_id=product.id,
                    )
                )
                subscription_ids.append(subscription.id)
                result.due_schedules += sum(len(sync.due_numbers) for sync in subscriptions.last_sync)
        result.customers = config.customers
        result.contracts = len(contract_ids)
        result.subscriptions = len(subscription_ids)

        for index, subscription_id in enumerate(subscription_ids):
            bucket = distribute(groups["subscription"], index, len(subscription_ids))
            if bucket == "cancelled":
                subscriptions.cancel(subscription_id, today)
                result.cancelled_subscriptions += 1
            elif bucket == "paused":
                subscriptions.pause(subscription_id)
                result.paused_subscriptions += 1

        if config.bill_until is not None:
            batch = InvoiceBatchService(self.session, numbers=self.numbers, today=self.today)
            outcome = batch.run_invoice_batch(config.bill_until, include_all_previous_periods=True)
            result.invoices = outcome.created_invoices
            self._settle_open_items(outcome.batch_id, groups["open_item"], result)

        for index, contract_id in enumerate(contract_ids):
            if distribute(groups["contract"], index, len(contract_ids)) == "terminated":
                contracts.terminate_contract(contract_id, today)
                result.terminated_contracts += 1

        logger.info(f"[seed] demo data created: {result}")
        return result

    def _settle_open_items(self, batch_id: str, ratios: dict[str, float], result: SeedResult) -> None:
        invoices = InvoiceService(self.session, numbers=self.numbers, today=self.today)
        open_items = OpenItemService(self.session, today=self.today)
        items = [
            item
            for invoice in invoices.list_by_batch(batch_id)
            for item in open_items.list_by_invoice(invoice.id)
            if item.status != OpenItemStatus.PAID
        ]
        for index, item in enumerate(items):
            bucket = distribute(ratios, index, len(items))
            if bucket == "paid":
                open_items.record_payment(item.id, item.outstanding_amount)
                result.paid_open_items += 1
            elif bucket == "partially_paid":
                half = (item.amount / 2).quantize(Decimal("0.01"))
                if ZERO < half < item.amount:
                    open_items.record_payment(item.id, half)
                    result.partially_paid_open_items += 1
