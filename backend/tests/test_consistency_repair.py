from datetime import date
from decimal import Decimal

from sqlmodel import select

from erp_billing.models.contract import ContractStatus
from erp_billing.models.due_schedule import DueStatus
from erp_billing.models.invoice import Invoice, InvoiceStatus
from erp_billing.models.open_item import OpenItem, OpenItemStatus
from erp_billing.models.subscription import SubscriptionStatus
from erp_billing.services.consistency import ConsistencyService
from erp_billing.services.due_schedule import DueScheduleService
from erp_billing.services.invoice_batch import InvoiceBatchService
from erp_billing.services.subscription import SubscriptionService
from tests.conftest import TODAY, make_contract, make_customer, make_subscription  # type: ignore


def _repair(db_session) -> ConsistencyService:
    return ConsistencyService(db_session, today=lambda: TODAY)


def _bill(db_session, billing_date: date = date(2024, 3, 1)):
    return InvoiceBatchService(db_session, today=lambda: TODAY).run_invoice_batch(billing_date)


def test_clean_data_has_no_inconsistencies(db_session):
    make_subscription(db_session)
    _bill(db_session)

    analysis = _repair(db_session).analyze()

    assert analysis.total == 0


def test_missing_open_item_is_created(db_session):
    customer = make_customer(db_session)
    invoice = Invoice(
        invoice_number="INV-2024-02-000001",
        invoice_date=date(2024, 2, 1),
        due_date=date(2024, 2, 15),
        status=InvoiceStatus.ACTIVE,
        total_amount=Decimal("200.00"),
        customer_id=customer.id,
    )
    db_session.add(invoice)
    db_session.commit()
    service = _repair(db_session)
    assert service.analyze().invoices_without_open_items == 1

    report = service.repair_consistency()

    items = db_session.exec(select(OpenItem).where(OpenItem.invoice_id == invoice.id)).all()
    assert len(items) == 1
    assert items[0].amount == Decimal("200.00")
    assert items[0].due_date == date(2024, 2, 15)
    assert items[0].status == OpenItemStatus.OVERDUE
    assert report.before.invoices_without_open_items == 1
    assert report.after.total == 0
    assert report.improved


def test_open_items_follow_invoice_state(db_session):
    make_subscription(db_session)
    _bill(db_session)
    cancelled, mismatched = db_session.exec(select(Invoice).order_by(Invoice.invoice_number)).all()[:2]
    cancelled.status = InvoiceStatus.CANCELLED
    db_session.add(cancelled)
    item = db_session.exec(select(OpenItem).where(OpenItem.invoice_id == mismatched.id)).one()
    item.amount = Decimal("80.00")
    db_session.add(item)
    db_session.add(OpenItem(description="Stray", amount=Decimal("5.00"), due_date=date(2024, 4, 1)))
    db_session.commit()

    service = _repair(db_session)
    analysis = service.analyze()
    assert analysis.cancelled_invoices_with_open_items == 1
    assert analysis.invoice_open_item_amount_mismatches == 1
    assert analysis.orphaned_open_items == 1
    assert analysis.overdue_open_items == 0

    report = service.repair_consistency()

    assert report.after.total == 0
    items = {item.invoice_id: item for item in db_session.exec(select(OpenItem)).all()}
    assert None not in items
    assert items[cancelled.id].status == OpenItemStatus.CANCELLED
    assert items[mismatched.id].amount == Decimal("100.00")
    assert items[mismatched.id].status == OpenItemStatus.OPEN
    assert {check.name for check in report.checks if check.fixed} == {
        "orphaned_open_items",
        "invoice_open_item_amounts",
        "cancelled_invoice_open_items",
    }


def test_past_due_open_items_become_overdue(db_session):
    make_subscription(db_session)
    _bill(db_session)

    report = ConsistencyService(db_session, today=lambda: date(2024, 4, 1)).repair_consistency()

    statuses = {item.status for item in db_session.exec(select(OpenItem)).all()}
    assert statuses == {OpenItemStatus.OVERDUE}
    assert report.fixed == 3


def test_subscription_of_terminated_contract_is_cancelled(db_session):
    contract = make_contract(db_session)
    subscription = make_subscription(db_session, contract, end=date(2024, 6, 1))
    contract.status = ContractStatus.TERMINATED
    contract.end_date = date(2024, 3, 31)
    db_session.add(contract)
    db_session.commit()

    report = _repair(db_session).repair_consistency()

    refreshed = SubscriptionService(db_session).get(subscription.id)
    assert refreshed.status == SubscriptionStatus.CANCELLED
    assert refreshed.end_date == date(2024, 3, 31)
    schedules = DueScheduleService(db_session).list_by_subscription(subscription.id)
    assert [schedule.status for schedule in schedules][-2:] == [DueStatus.CANCELLED, DueStatus.CANCELLED]
    assert report.before.active_subscriptions_of_terminated_contracts == 1
    assert report.after.active_subscriptions_of_terminated_contracts == 0


def test_owed_schedules_of_inactive_subscriptions_are_paused(db_session):
    subscription = make_subscription(db_session, end=date(2024, 6, 1))
    subscription.status = SubscriptionStatus.PAUSED
    db_session.add(subscription)
    db_session.commit()

    report = _repair(db_session).repair_consistency()

    statuses = [schedule.status for schedule in DueScheduleService(db_session).list_by_subscription(subscription.id)]
    assert statuses == [DueStatus.PENDING] * 3 + [DueStatus.PAUSED] * 2
    assert report.before.orphaned_due_schedules == 2


def test_completed_schedule_without_invoice_is_reopened(db_session):
    subscription = make_subscription(db_session)
    schedule = DueScheduleService(db_session).list_by_subscription(subscription.id)[0]
    schedule.status = DueStatus.COMPLETED
    db_session.add(schedule)
    db_session.commit()

    _repair(db_session).repair_consistency()

    reopened = DueScheduleService(db_session).get(schedule.id)
    assert reopened.status == DueStatus.PENDING
    assert reopened.invoice_id is None


def test_repair_is_idempotent(db_session):
    make_subscription(db_session)
    _bill(db_session)
    item = db_session.exec(select(OpenItem)).first()
    item.amount = Decimal("1.00")
    db_session.add(item)
    db_session.commit()
    service = _repair(db_session)
    service.repair_consistency()

    second = service.repair_consistency()

    assert second.fixed == 0
    assert second.before.total == 0
    assert not second.improved
