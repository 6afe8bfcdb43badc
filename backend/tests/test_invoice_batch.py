from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlmodel import select

from erp_billing.core.errors import InconsistentError
from erp_billing.models.due_schedule import DueSchedule, DueStatus
from erp_billing.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from erp_billing.models.open_item import OpenItem, OpenItemStatus
from erp_billing.models.subscription import Subscription
from erp_billing.services.due_schedule import DueScheduleService
from erp_billing.services.invoice_batch import InvoiceBatchAnalyzer, InvoiceBatchResult, InvoiceBatchService
from tests.conftest import TODAY, make_subscription  # type: ignore


def _batch(db_session) -> InvoiceBatchService:
    return InvoiceBatchService(db_session, today=lambda: TODAY)


def test_analyzer_accumulates_previous_periods(db_session):
    make_subscription(db_session)
    analyzer = InvoiceBatchAnalyzer(db_session, today=lambda: TODAY)

    scope = analyzer.analyze_billing_scope(date(2024, 3, 1))

    assert scope.count == 3
    assert scope.estimated_total == Decimal("300.00")
    assert scope.month_groups == {"2024-01": 1, "2024-02": 1, "2024-03": 1}
    assert scope.overdue_count == 3
    assert scope.current_count == 0

    exact = analyzer.analyze_billing_scope(date(2024, 3, 1), include_all_previous_periods=False)
    assert [schedule.due_date for schedule in exact.due_schedules] == [date(2024, 3, 1)]

    assert analyzer.can_run(date(2024, 3, 1)) is True
    assert analyzer.can_run(date(2023, 12, 31)) is False


def test_analyzer_does_not_modify_data(db_session):
    subscription = make_subscription(db_session)
    InvoiceBatchAnalyzer(db_session, today=lambda: TODAY).analyze_billing_scope(date(2024, 12, 1))

    schedules = DueScheduleService(db_session).list_by_subscription(subscription.id)
    assert all(schedule.status == DueStatus.PENDING for schedule in schedules)
    assert db_session.exec(select(Invoice)).all() == []


def test_batch_creates_invoice_and_open_item_per_schedule(db_session):
    subscription = make_subscription(db_session)

    result = _batch(db_session).run_invoice_batch(date(2024, 3, 1))

    assert result.expected_due_schedules == 3
    assert result.processed_due_schedules == 3
    assert result.created_invoices == 3
    assert result.created_open_items == 3
    assert result.total_amount == Decimal("300.00")
    assert result.errors == []
    assert result.is_complete
    assert result.batch_id.startswith("BATCH-20240301-")
    result.raise_for_inconsistency()

    invoices = db_session.exec(select(Invoice).order_by(Invoice.invoice_number)).all()
    assert len(invoices) == 3
    for invoice in invoices:
        assert invoice.status == InvoiceStatus.ACTIVE
        assert invoice.invoice_number.startswith("INV-2024-03-")
        assert invoice.due_date == date(2024, 3, 1) + timedelta(days=14)
        assert invoice.subscription_id == subscription.id
        assert invoice.batch_id == result.batch_id
        assert invoice.billing_address == "Hauptstrasse 1, 10115 Berlin, DE"

    items = db_session.exec(select(InvoiceItem)).all()
    assert sorted(item.period_start for item in items) == [date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1)]
    assert all(item.line_total == Decimal("100.00") for item in items)

    open_items = db_session.exec(select(OpenItem)).all()
    assert len(open_items) == 3
    assert all(item.amount == Decimal("100.00") for item in open_items)
    assert all(item.status == OpenItemStatus.OPEN for item in open_items)

    billed = db_session.exec(select(DueSchedule).where(DueSchedule.status == DueStatus.COMPLETED)).all()
    assert len(billed) == 3
    assert {schedule.invoice_id for schedule in billed} == {invoice.id for invoice in invoices}


def test_rerun_for_same_date_is_a_noop(db_session):
    make_subscription(db_session)
    service = _batch(db_session)
    service.run_invoice_batch(date(2024, 3, 1))

    rerun = service.run_invoice_batch(date(2024, 3, 1))

    assert rerun.processed_due_schedules == 0
    assert rerun.expected_due_schedules == 0
    assert rerun.message.startswith("No due schedules to bill")
    assert len(db_session.exec(select(Invoice)).all()) == 3


def test_exact_date_mode_bills_only_matching_schedules(db_session):
    make_subscription(db_session)

    result = _batch(db_session).run_invoice_batch(date(2024, 2, 1), include_all_previous_periods=False)

    assert result.processed_due_schedules == 1
    assert result.total_amount == Decimal("100.00")


def test_overdue_schedules_are_still_billed(db_session):
    make_subscription(db_session)
    DueScheduleService(db_session, today=lambda: TODAY).mark_overdue()

    result = _batch(db_session).run_invoice_batch(date(2024, 3, 1))

    assert result.processed_due_schedules == 3


def test_failing_schedule_is_skipped_and_reported(db_session):
    make_subscription(db_session)
    orphan = Subscription(
        subscription_number="SUB-2024-999999",
        product_name="Orphan",
        monthly_price=Decimal("50.00"),
        start_date=date(2024, 1, 1),
        end_date=date(2025, 1, 1),
        contract_id=uuid4(),
    )
    db_session.add(orphan)
    db_session.commit()
    DueScheduleService(db_session, today=lambda: TODAY).generate_schedules(orphan.id, 1)

    result = _batch(db_session).run_invoice_batch(date(2024, 3, 1))

    assert result.expected_due_schedules == 4
    assert result.processed_due_schedules == 3
    assert result.created_invoices == 3
    assert len(result.errors) == 1
    assert "Contract not found" in result.errors[0]
    assert result.is_consistent
    assert not result.is_complete
    assert "1 failed" in result.message

    remaining = DueScheduleService(db_session).list_by_subscription(orphan.id)
    assert remaining[0].status == DueStatus.PENDING
    assert remaining[0].invoice_id is None


def test_inconsistent_result_raises():
    result = InvoiceBatchResult(
        batch_id="BATCH-20240301-ABCDEF12",
        billing_date=date(2024, 3, 1),
        include_all_previous_periods=True,
        expected_due_schedules=2,
        processed_due_schedules=2,
        created_invoices=1,
        created_open_items=1,
    )

    assert not result.is_consistent
    with pytest.raises(InconsistentError):
        result.raise_for_inconsistency()
