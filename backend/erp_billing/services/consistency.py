"""Reconciliation of invoices, open items, due schedules and subscriptions.

Every check looks at a fresh snapshot of its inconsistency class and commits
its fixes on its own, so a failing check never undoes the others. Running the
whole pass again is harmless: fixed rows no longer match any finder.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Callable

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from erp_billing.core.logging_setup import logger
from erp_billing.models.contract import Contract, ContractStatus
from erp_billing.models.due_schedule import OWED_STATUSES, DueSchedule, DueStatus
from erp_billing.models.invoice import Invoice, InvoiceStatus
from erp_billing.models.open_item import OpenItem, OpenItemStatus
from erp_billing.models.subscription import Subscription, SubscriptionStatus
from erp_billing.services.open_item import OpenItemService
from erp_billing.services.subscription import SubscriptionService

ZERO = Decimal("0")

repair_logger = logger.getChild("consistency")


@dataclass
class ConsistencyAnalysis:
    invoices_without_open_items: int = 0
    orphaned_open_items: int = 0
    overdue_open_items: int = 0
    active_subscriptions_of_terminated_contracts: int = 0
    orphaned_due_schedules: int = 0
    invoice_open_item_amount_mismatches: int = 0
    cancelled_invoices_with_open_items: int = 0
    completed_schedules_without_invoice: int = 0

    @property
    def total(self) -> int:
        return sum(self.as_dict().values())

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class CheckResult:
    name: str
    found: int = 0
    fixed: int = 0
    error: str | None = None


@dataclass
class RepairReport:
    before: ConsistencyAnalysis
    after: ConsistencyAnalysis
    checks: list[CheckResult] = field(default_factory=list)

    @property
    def fixed(self) -> int:
        return sum(check.fixed for check in self.checks)

    @property
    def improved(self) -> bool:
        return self.after.total < self.before.total


class ConsistencyService:
    def __init__(self, session: Session, today: Callable[[], date] = date.today) -> None:
        self.session = session
        self.today = today
        self.open_items = OpenItemService(session, today=today)
        self.subscriptions = SubscriptionService(session, today=today)

    def analyze(self) -> ConsistencyAnalysis:
        return ConsistencyAnalysis(
            invoices_without_open_items=len(self._invoices_without_open_items()),
            orphaned_open_items=len(self._orphaned_open_items()),
            overdue_open_items=len(self._overdue_open_items()),
            active_subscriptions_of_terminated_contracts=len(self._subscriptions_of_terminated_contracts()),
            orphaned_due_schedules=len(self._orphaned_due_schedules()),
            invoice_open_item_amount_mismatches=len(self._amount_mismatches()),
            cancelled_invoices_with_open_items=len(self._open_items_of_cancelled_invoices()),
            completed_schedules_without_invoice=len(self._completed_schedules_without_invoice()),
        )

    def repair_consistency(self) -> RepairReport:
        before = self.analyze()
        repair_logger.info(f"[repair_consistency] start, {before.total} inconsistencies: {before.as_dict()}")
        checks = [
            self._run("missing_open_items", self._create_missing_open_items),
            self._run("orphaned_open_items", self._delete_orphaned_open_items),
            self._run("overdue_open_items", self._mark_overdue_open_items),
            self._run("terminated_contract_subscriptions", self._cancel_subscriptions_of_terminated_contracts),
            self._run("orphaned_due_schedules", self._fix_orphaned_due_schedules),
            self._run("invoice_open_item_amounts", self._sync_open_item_amounts),
            self._run("cancelled_invoice_open_items", self._cancel_open_items_of_cancelled_invoices),
            self._run("completed_schedules_without_invoice", self._reopen_completed_schedules_without_invoice),
        ]
        after = self.analyze()
        report = RepairReport(before=before, after=after, checks=checks)
        repair_logger.info(
            f"[repair_consistency] done, fixed {report.fixed}, {before.total} -> {after.total} inconsistencies"
        )
        return report

    def _run(self, name: str, check: Callable[[], tuple[int, int]]) -> CheckResult:
        try:
            found, fixed = check()
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            repair_logger.exception(f"[repair_consistency] check {name} failed")
            return CheckResult(name=name, error=str(exc))
        if found:
            repair_logger.info(f"[repair_consistency] {name}: found {found}, fixed {fixed}")
        return CheckResult(name=name, found=found, fixed=fixed)

    # ------------------------------------------------------------------
    # Finders
    # ------------------------------------------------------------------
    def _invoices_without_open_items(self) -> list[Invoice]:
        has_open_item = select(OpenItem.id).where(OpenItem.invoice_id == Invoice.id).exists()
        statement = (
            select(Invoice)
            .where(Invoice.status != InvoiceStatus.CANCELLED)
            .where(Invoice.total_amount > ZERO)
            .where(~has_open_item)
        )
        return list(self.session.exec(statement).all())

    def _orphaned_open_items(self) -> list[OpenItem]:
        invoice_exists = select(Invoice.id).where(Invoice.id == OpenItem.invoice_id).exists()
        statement = select(OpenItem).where(or_(OpenItem.invoice_id.is_(None), ~invoice_exists))
        return list(self.session.exec(statement).all())

    def _overdue_open_items(self) -> list[OpenItem]:
        statement = (
            select(OpenItem)
            .where(OpenItem.status.in_((OpenItemStatus.OPEN, OpenItemStatus.PARTIALLY_PAID)))
            .where(OpenItem.due_date < self.today())
        )
        return list(self.session.exec(statement).all())

    def _subscriptions_of_terminated_contracts(self) -> list[tuple[Subscription, Contract]]:
        statement = (
            select(Subscription, Contract)
            .join(Contract, Contract.id == Subscription.contract_id)
            .where(Contract.status == ContractStatus.TERMINATED)
            .where(Subscription.status == SubscriptionStatus.ACTIVE)
            .where(Subscription.deleted_at.is_(None))
        )
        return list(self.session.exec(statement).all())

    def _orphaned_due_schedules(self) -> list[tuple[DueSchedule, DueStatus]]:
        """Owed schedules paired with the status they should move to."""
        statement = (
            select(DueSchedule, Subscription)
            .outerjoin(Subscription, Subscription.id == DueSchedule.subscription_id)
            .where(DueSchedule.status.in_(OWED_STATUSES))
            .order_by(DueSchedule.due_date)
        )
        today = self.today()
        findings: list[tuple[DueSchedule, DueStatus]] = []
        for schedule, subscription in self.session.exec(statement).all():
            if subscription is None or subscription.deleted_at is not None:
                findings.append((schedule, DueStatus.CANCELLED))
                continue
            if subscription.status == SubscriptionStatus.ACTIVE:
                continue
            if subscription.status == SubscriptionStatus.PAUSED:
                cutoff = today
            else:
                cutoff = subscription.end_date or today
            if schedule.due_date > cutoff:
                findings.append((schedule, DueStatus.PAUSED))
        return findings

    def _amount_mismatches(self) -> list[tuple[Invoice, list[OpenItem]]]:
        statement = (
            select(Invoice, OpenItem)
            .join(OpenItem, OpenItem.invoice_id == Invoice.id)
            .where(Invoice.status != InvoiceStatus.CANCELLED)
            .where(OpenItem.status != OpenItemStatus.CANCELLED)
            .order_by(Invoice.invoice_number)
        )
        grouped: dict[object, tuple[Invoice, list[OpenItem]]] = {}
        for invoice, item in self.session.exec(statement).all():
            grouped.setdefault(invoice.id, (invoice, []))[1].append(item)
        return [
            (invoice, items)
            for invoice, items in grouped.values()
            if sum((item.amount for item in items), ZERO) != invoice.total_amount
        ]

    def _open_items_of_cancelled_invoices(self) -> list[OpenItem]:
        statement = (
            select(OpenItem)
            .join(Invoice, Invoice.id == OpenItem.invoice_id)
            .where(Invoice.status == InvoiceStatus.CANCELLED)
            .where(OpenItem.status != OpenItemStatus.CANCELLED)
        )
        return list(self.session.exec(statement).all())

    def _completed_schedules_without_invoice(self) -> list[DueSchedule]:
        invoice_exists = select(Invoice.id).where(Invoice.id == DueSchedule.invoice_id).exists()
        statement = (
            select(DueSchedule)
            .where(DueSchedule.status == DueStatus.COMPLETED)
            .where(or_(DueSchedule.invoice_id.is_(None), ~invoice_exists))
        )
        return list(self.session.exec(statement).all())

    # ------------------------------------------------------------------
    # Fixes, each returning (found, fixed)
    # ------------------------------------------------------------------
    def _create_missing_open_items(self) -> tuple[int, int]:
        invoices = self._invoices_without_open_items()
        for invoice in invoices:
            self.session.add(self.open_items.build_for_invoice(invoice))
            repair_logger.info(f"[repair_consistency] open item created for {invoice.invoice_number}")
        return len(invoices), len(invoices)

    def _delete_orphaned_open_items(self) -> tuple[int, int]:
        items = self._orphaned_open_items()
        for item in items:
            self.session.delete(item)
        return len(items), len(items)

    def _mark_overdue_open_items(self) -> tuple[int, int]:
        items = self._overdue_open_items()
        now = datetime.utcnow()
        for item in items:
            item.status = OpenItemStatus.OVERDUE
            item.updated_at = now
            self.session.add(item)
        return len(items), len(items)

    def _cancel_subscriptions_of_terminated_contracts(self) -> tuple[int, int]:
        rows = self._subscriptions_of_terminated_contracts()
        for subscription, contract in rows:
            self.subscriptions.align_with_terminated_contract(subscription, contract)
            repair_logger.info(
                f"[repair_consistency] {subscription.subscription_number} cancelled, "
                f"contract {contract.contract_number} is terminated"
            )
        return len(rows), len(rows)

    def _fix_orphaned_due_schedules(self) -> tuple[int, int]:
        findings = self._orphaned_due_schedules()
        now = datetime.utcnow()
        for schedule, target in findings:
            schedule.status = target
            schedule.updated_at = now
            self.session.add(schedule)
        return len(findings), len(findings)

    def _sync_open_item_amounts(self) -> tuple[int, int]:
        mismatches = self._amount_mismatches()
        fixed = 0
        now = datetime.utcnow()
        for invoice, items in mismatches:
            if len(items) != 1:
                repair_logger.warning(
                    f"[repair_consistency] {invoice.invoice_number} total {invoice.total_amount} "
                    f"spread over {len(items)} open items, manual review needed"
                )
                continue
            item = items[0]
            if (item.paid_amount or ZERO) > invoice.total_amount:
                repair_logger.warning(
                    f"[repair_consistency] {invoice.invoice_number} paid {item.paid_amount} exceeds "
                    f"total {invoice.total_amount}, manual review needed"
                )
                continue
            item.amount = invoice.total_amount
            item.status = self.open_items.derive_status(item)
            item.updated_at = now
            self.session.add(item)
            fixed += 1
        return len(mismatches), fixed

    def _cancel_open_items_of_cancelled_invoices(self) -> tuple[int, int]:
        items = self._open_items_of_cancelled_invoices()
        now = datetime.utcnow()
        for item in items:
            item.status = OpenItemStatus.CANCELLED
            item.updated_at = now
            self.session.add(item)
        return len(items), len(items)

    def _reopen_completed_schedules_without_invoice(self) -> tuple[int, int]:
        schedules = self._completed_schedules_without_invoice()
        now = datetime.utcnow()
        for schedule in schedules:
            schedule.status = DueStatus.PENDING
            schedule.invoice_id = None
            schedule.updated_at = now
            self.session.add(schedule)
        return len(schedules), len(schedules)
