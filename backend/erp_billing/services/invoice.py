from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Iterable
from uuid import UUID

from sqlmodel import Session, select

from erp_billing.core.config import settings
from erp_billing.core.errors import ConflictError, NotFoundError
from erp_billing.core.logging_setup import logger
from erp_billing.models.customer import Address, Customer
from erp_billing.models.due_schedule import DueSchedule
from erp_billing.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from erp_billing.models.open_item import OpenItem, OpenItemStatus
from erp_billing.models.product import Product
from erp_billing.models.subscription import Subscription
from erp_billing.services.numbering import NumberGenerator

ZERO = Decimal("0")
CENT = Decimal("0.01")


def line_total(item: InvoiceItem) -> Decimal:
    return (item.quantity * item.unit_price).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_total(items: Iterable[InvoiceItem]) -> Decimal:
    total = ZERO
    for item in items:
        net = line_total(item)
        tax = (net * (item.tax_rate or ZERO) / Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)
        total += net + tax
    return total


class InvoiceService:
    def __init__(
        self,
        session: Session,
        numbers: NumberGenerator | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.session = session
        self.today = today
        self.numbers = numbers or NumberGenerator(session, today=today)

    def get(self, invoice_id: UUID) -> Invoice:
        invoice = self.session.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice not found", invoice_id=str(invoice_id))
        return invoice

    def list_items(self, invoice_id: UUID) -> list[InvoiceItem]:
        statement = select(InvoiceItem).where(InvoiceItem.invoice_id == invoice_id).order_by(InvoiceItem.created_at)
        return list(self.session.exec(statement).all())

    def list_by_customer(self, customer_id: UUID) -> list[Invoice]:
        statement = (
            select(Invoice).where(Invoice.customer_id == customer_id).order_by(Invoice.invoice_date.desc())
        )
        return list(self.session.exec(statement).all())

    def list_by_batch(self, batch_id: str) -> list[Invoice]:
        statement = select(Invoice).where(Invoice.batch_id == batch_id).order_by(Invoice.invoice_number)
        return list(self.session.exec(statement).all())

    def build_from_due_schedule(
        self,
        schedule: DueSchedule,
        subscription: Subscription,
        customer: Customer,
        billing_date: date,
        batch_id: str | None = None,
    ) -> tuple[Invoice, InvoiceItem]:
        """ACTIVE invoice with a single line for one billing period. Caller persists both rows."""
        product = self.session.get(Product, subscription.product_id) if subscription.product_id else None
        address = self.session.get(Address, customer.billing_address_id) if customer.billing_address_id else None

        invoice = Invoice(
            invoice_number=self.numbers.invoice_number(billing_date),
            invoice_date=billing_date,
            due_date=billing_date + timedelta(days=settings.billing_payment_term_days),
            status=InvoiceStatus.ACTIVE,
            billing_address=address.as_text() if address else None,
            customer_id=customer.id,
            subscription_id=subscription.id,
            batch_id=batch_id,
            notes=f"Subscription {subscription.subscription_number}, due schedule {schedule.due_number}",
        )
        item = InvoiceItem(
            invoice_id=invoice.id,
            description=(
                f"{subscription.product_name} "
                f"({schedule.period_start:%d.%m.%Y} - {schedule.period_end:%d.%m.%Y})"
            ),
            quantity=Decimal("1"),
            unit=product.unit if product else "month",
            unit_price=schedule.amount,
            tax_rate=settings.billing_default_tax_rate,
            product_id=subscription.product_id,
            product_name=product.name if product else subscription.product_name,
            period_start=schedule.period_start,
            period_end=schedule.period_end,
        )
        item.line_total = line_total(item)
        invoice.total_amount = calculate_total([item])
        return invoice, item

    def cancel(self, invoice_id: UUID) -> Invoice:
        """Cancel the invoice together with its open items."""
        invoice = self.get(invoice_id)
        if invoice.status == InvoiceStatus.CANCELLED:
            return invoice
        open_items = self.session.exec(select(OpenItem).where(OpenItem.invoice_id == invoice.id)).all()
        if any((item.paid_amount or ZERO) > ZERO for item in open_items):
            raise ConflictError("Cannot cancel an invoice with recorded payments", invoice_number=invoice.invoice_number)

        now = datetime.utcnow()
        invoice.status = InvoiceStatus.CANCELLED
        invoice.updated_at = now
        self.session.add(invoice)
        for item in open_items:
            if item.status != OpenItemStatus.CANCELLED:
                item.status = OpenItemStatus.CANCELLED
                item.updated_at = now
                self.session.add(item)
        self.session.commit()
        self.session.refresh(invoice)
        logger.info(f"[cancel_invoice] {invoice.invoice_number} cancelled with {len(open_items)} open items")
        return invoice
