from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Callable
from uuid import UUID

from sqlmodel import Session, select

from erp_billing.core.errors import ConflictError, InvalidArgumentError, NotFoundError
from erp_billing.core.logging_setup import logger
from erp_billing.models.invoice import Invoice
from erp_billing.models.open_item import OpenItem, OpenItemStatus

ZERO = Decimal("0")

COLLECTIBLE_STATUSES = (OpenItemStatus.OPEN, OpenItemStatus.PARTIALLY_PAID, OpenItemStatus.OVERDUE)


class OpenItemService:
    def __init__(self, session: Session, today: Callable[[], date] = date.today) -> None:
        self.session = session
        self.today = today

    def build_for_invoice(self, invoice: Invoice) -> OpenItem:
        """Receivable for the full invoice total, due with the invoice. Caller persists it."""
        item = OpenItem(
            invoice_id=invoice.id,
            description=f"Invoice {invoice.invoice_number}",
            amount=invoice.total_amount,
            paid_amount=ZERO,
            due_date=invoice.due_date,
        )
        item.status = self.derive_status(item)
        return item

    def derive_status(self, item: OpenItem) -> OpenItemStatus:
        paid = item.paid_amount or ZERO
        if paid >= item.amount:
            return OpenItemStatus.PAID
        if item.due_date < self.today():
            return OpenItemStatus.OVERDUE
        if paid > ZERO:
            return OpenItemStatus.PARTIALLY_PAID
        return OpenItemStatus.OPEN

    def get(self, item_id: UUID) -> OpenItem:
        item = self.session.get(OpenItem, item_id)
        if item is None:
            raise NotFoundError("Open item not found", open_item_id=str(item_id))
        return item

    def list_by_invoice(self, invoice_id: UUID) -> list[OpenItem]:
        statement = select(OpenItem).where(OpenItem.invoice_id == invoice_id).order_by(OpenItem.created_at)
        return list(self.session.exec(statement).all())

    def list_by_status(self, status: OpenItemStatus) -> list[OpenItem]:
        statement = select(OpenItem).where(OpenItem.status == status).order_by(OpenItem.due_date)
        return list(self.session.exec(statement).all())

    def record_payment(self, item_id: UUID, amount: Decimal) -> OpenItem:
        item = self.get(item_id)
        if amount is None or amount <= ZERO:
            raise InvalidArgumentError("Payment amount must be positive")
        if item.status not in COLLECTIBLE_STATUSES:
            raise ConflictError(f"Cannot record payment on a {item.status.value} open item")
        new_paid = (item.paid_amount or ZERO) + amount
        if new_paid > item.amount:
            raise InvalidArgumentError(
                "Payment exceeds the outstanding amount", outstanding=str(item.outstanding_amount)
            )
        item.paid_amount = new_paid
        item.status = self.derive_status(item)
        item.updated_at = datetime.utcnow()
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        logger.info(f"[open_item_payment] {item.id} paid {new_paid}/{item.amount} -> {item.status.value}")
        return item

    def send_reminder(self, item_id: UUID) -> OpenItem:
        item = self.get(item_id)
        if item.status not in COLLECTIBLE_STATUSES:
            raise ConflictError(f"No reminder for a {item.status.value} open item")
        item.reminder_count += 1
        item.last_reminder_date = self.today()
        item.updated_at = datetime.utcnow()
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        return item
