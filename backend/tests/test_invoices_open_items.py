from datetime import date
from decimal import Decimal

import pytest
from sqlmodel import select

from erp_billing.core.errors import ConflictError, InvalidArgumentError
from erp_billing.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from erp_billing.models.open_item import OpenItem, OpenItemStatus
from erp_billing.services.invoice import InvoiceService, calculate_total
from erp_billing.services.invoice_batch import InvoiceBatchService
from erp_billing.services.open_item import OpenItemService
from tests.conftest import TODAY, make_subscription  # type: ignore


def _billed_invoice(db_session) -> tuple[Invoice, OpenItem]:
    make_subscription(db_session)
    InvoiceBatchService(db_session, today=lambda: TODAY).run_invoice_batch(date(2024, 3, 1), False)
    invoice = db_session.exec(select(Invoice)).one()
    item = db_session.exec(select(OpenItem).where(OpenItem.invoice_id == invoice.id)).one()
    return invoice, item


def test_calculate_total_applies_tax():
    items = [
        InvoiceItem(description="A", quantity=Decimal("2"), unit_price=Decimal("10.00"), tax_rate=Decimal("19")),
        InvoiceItem(description="B", quantity=Decimal("1.5"), unit_price=Decimal("3.33"), tax_rate=Decimal("0")),
    ]

    assert calculate_total(items) == Decimal("28.80")


def test_open_item_payment_lifecycle(db_session):
    _, item = _billed_invoice(db_session)
    service = OpenItemService(db_session, today=lambda: TODAY)

    partial = service.record_payment(item.id, Decimal("30.00"))
    assert partial.status == OpenItemStatus.PARTIALLY_PAID
    assert partial.outstanding_amount == Decimal("70.00")

    with pytest.raises(InvalidArgumentError):
        service.record_payment(item.id, Decimal("80.00"))
    with pytest.raises(InvalidArgumentError):
        service.record_payment(item.id, Decimal("-1.00"))

    paid = service.record_payment(item.id, Decimal("70.00"))
    assert paid.status == OpenItemStatus.PAID
    assert paid.paid_amount == paid.amount

    with pytest.raises(ConflictError):
        service.record_payment(item.id, Decimal("1.00"))
    with pytest.raises(ConflictError):
        service.send_reminder(item.id)


def test_open_item_reminder(db_session):
    _, item = _billed_invoice(db_session)

    reminded = OpenItemService(db_session, today=lambda: TODAY).send_reminder(item.id)

    assert reminded.reminder_count == 1
    assert reminded.last_reminder_date == TODAY


def test_cancel_invoice_cancels_open_items(db_session):
    invoice, item = _billed_invoice(db_session)
    service = InvoiceService(db_session, today=lambda: TODAY)

    cancelled = service.cancel(invoice.id)

    assert cancelled.status == InvoiceStatus.CANCELLED
    assert OpenItemService(db_session).get(item.id).status == OpenItemStatus.CANCELLED
    assert service.cancel(invoice.id).status == InvoiceStatus.CANCELLED


def test_cancel_invoice_with_payments_is_rejected(db_session):
    invoice, item = _billed_invoice(db_session)
    OpenItemService(db_session, today=lambda: TODAY).record_payment(item.id, Decimal("10.00"))

    with pytest.raises(ConflictError):
        InvoiceService(db_session, today=lambda: TODAY).cancel(invoice.id)


def test_invoice_lookups(db_session):
    invoice, _ = _billed_invoice(db_session)
    service = InvoiceService(db_session, today=lambda: TODAY)

    assert [found.id for found in service.list_by_customer(invoice.customer_id)] == [invoice.id]
    assert [found.id for found in service.list_by_batch(invoice.batch_id)] == [invoice.id]
    items = service.list_items(invoice.id)
    assert len(items) == 1
    assert items[0].description == "Cloud Storage (01.03.2024 - 31.03.2024)"
