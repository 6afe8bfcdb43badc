from __future__ import annotations

from datetime import date, datetime
from typing import Callable
from uuid import UUID

from sqlmodel import Session, select

from erp_billing.core.errors import ConflictError, InvalidArgumentError, NotFoundError
from erp_billing.core.logging_setup import logger
from erp_billing.models.contract import Contract, ContractStatus
from erp_billing.models.customer import Customer
from erp_billing.models.subscription import Subscription, SubscriptionStatus
from erp_billing.schemas.contract import ContractCreate, ContractUpdate
from erp_billing.services.numbering import NumberGenerator
from erp_billing.services.subscription import ScheduleSync, SubscriptionService


class ContractService:
    def __init__(
        self,
        session: Session,
        numbers: NumberGenerator | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.session = session
        self.today = today
        self.numbers = numbers or NumberGenerator(session, today=today)
        self.subscriptions = SubscriptionService(session, numbers=self.numbers, today=today)

    def list_contracts(self, customer_id: UUID | None = None) -> list[Contract]:
        statement = select(Contract)
        if customer_id is not None:
            statement = statement.where(Contract.customer_id == customer_id)
        return list(self.session.exec(statement.order_by(Contract.start_date)).all())

    def get_contract(self, contract_id: UUID) -> Contract:
        contract = self.session.get(Contract, contract_id)
        if contract is None:
            raise NotFoundError("Contract not found", contract_id=str(contract_id))
        return contract

    def create_contract(self, payload: ContractCreate) -> Contract:
        title = payload.title.strip()
        if not title:
            raise InvalidArgumentError("Contract title is required")
        if self.session.get(Customer, payload.customer_id) is None:
            raise InvalidArgumentError("Customer not found", customer_id=str(payload.customer_id))
        if payload.end_date is not None and payload.end_date < payload.start_date:
            raise InvalidArgumentError("End date must not be before start date")
        contract = Contract(
            contract_number=self.numbers.contract_number(),
            title=title,
            start_date=payload.start_date,
            end_date=payload.end_date,
            notes=payload.notes,
            customer_id=payload.customer_id,
        )
        self.session.add(contract)
        self.session.commit()
        self.session.refresh(contract)
        return contract

    def update_contract(self, contract_id: UUID, payload: ContractUpdate) -> Contract:
        contract = self.get_contract(contract_id)
        update_data = payload.model_dump(exclude_unset=True)
        if "title" in update_data and not (update_data["title"] or "").strip():
            raise InvalidArgumentError("Contract title is required")
        if update_data.get("end_date") is not None and update_data["end_date"] < contract.start_date:
            raise InvalidArgumentError("End date must not be before start date")
        for key, value in update_data.items():
            setattr(contract, key, value)
        contract.updated_at = datetime.utcnow()
        self.session.add(contract)
        self.session.commit()
        self.session.refresh(contract)
        return contract

    def delete_contract(self, contract_id: UUID) -> None:
        contract = self.get_contract(contract_id)
        referenced = self.session.exec(select(Subscription.id).where(Subscription.contract_id == contract.id)).first()
        if referenced is not None:
            raise ConflictError("Cannot delete contract with subscriptions", contract_number=contract.contract_number)
        self.session.delete(contract)
        self.session.commit()

    def terminate_contract(self, contract_id: UUID, termination_date: date | None = None) -> Contract:
        """Terminate the contract and cancel its ACTIVE subscriptions as of the contract end date."""
        contract = self.get_contract(contract_id)
        if contract.status == ContractStatus.TERMINATED:
            raise ConflictError("Contract is already terminated", contract_number=contract.contract_number)

        contract.status = ContractStatus.TERMINATED
        contract.end_date = termination_date or self.today()
        contract.updated_at = datetime.utcnow()
        self.session.add(contract)

        statement = (
            select(Subscription)
            .where(Subscription.contract_id == contract.id)
            .where(Subscription.status == SubscriptionStatus.ACTIVE)
            .where(Subscription.deleted_at.is_(None))
        )
        sync: list[ScheduleSync] = []
        for subscription in self.session.exec(statement).all():
            cancelled = self.subscriptions.align_with_terminated_contract(subscription, contract)
            sync.append(
                ScheduleSync("cancelled", subscription.subscription_number, [s.due_number for s in cancelled])
            )
        self.session.commit()
        self.session.refresh(contract)
        self.subscriptions.last_sync = sync
        logger.info(
            f"[terminate_contract] {contract.contract_number} terminated as of {contract.end_date}, "
            f"{len(sync)} subscriptions cancelled"
        )
        return contract
