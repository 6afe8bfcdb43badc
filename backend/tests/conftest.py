from __future__ import annotations

import os
import uuid
from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import text
from sqlmodel import Session, SQLModel, create_engine

from erp_billing.api.deps import get_clock, get_db
from erp_billing.db import session as db_session_module
from erp_billing.main import app
from erp_billing.models.contract import Contract
from erp_billing.models.customer import Customer
from erp_billing.models.subscription import BillingCycle, Subscription
from erp_billing.schemas.contract import ContractCreate
from erp_billing.schemas.customer import AddressCreate, CustomerCreate
from erp_billing.schemas.subscription import SubscriptionCreate
from erp_billing.services.contract import ContractService
from erp_billing.services.customer import CustomerService
from erp_billing.services.subscription import SubscriptionService

pytestmark = pytest.mark.anyio

TODAY = date(2024, 3, 15)


@pytest.fixture()
def db_engine(tmp_path):
    test_database_url = os.getenv("TEST_DATABASE_URL")
    if not test_database_url:
        db_path = tmp_path / f"test_{uuid.uuid4().hex}.db"
        test_database_url = f"sqlite:///{db_path}"

    is_postgres = test_database_url.startswith("postgresql")

    admin_engine = None
    schema_name = None

    if is_postgres:
        schema_name = f"test_{uuid.uuid4().hex}"
        admin_engine = create_engine(test_database_url, future=True)
        with admin_engine.connect() as conn:
            conn.execution_options(isolation_level="AUTOCOMMIT").execute(
                text(f'CREATE SCHEMA IF NOT EXISTS "{schema_name}"')
            )
        connect_args = {"options": f"-csearch_path={schema_name},public"}
        engine = create_engine(test_database_url, connect_args=connect_args, future=True)
    else:
        engine = create_engine(test_database_url, connect_args={"check_same_thread": False})

    SQLModel.metadata.create_all(bind=engine)

    original_engine = db_session_module.engine
    db_session_module.engine = engine

    def override_dependency():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = override_dependency

    yield engine

    app.dependency_overrides.pop(get_db, None)
    db_session_module.engine = original_engine
    engine.dispose()
    if is_postgres and admin_engine and schema_name:
        with admin_engine.connect() as conn:
            conn.execution_options(isolation_level="AUTOCOMMIT").execute(
                text(f'DROP SCHEMA IF EXISTS "{schema_name}" CASCADE')
            )
        admin_engine.dispose()


@pytest.fixture()
def clock():
    return lambda: TODAY


@pytest.fixture()
def client(db_engine, clock) -> TestClient:
    app.dependency_overrides[get_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.pop(get_clock, None)


@pytest.fixture()
def db_session(db_engine) -> Session:
    with Session(db_engine) as session:
        yield session


def make_customer(session: Session, last_name: str = "Schmidt") -> Customer:
    payload = CustomerCreate(
        first_name="Anna",
        last_name=last_name,
        email=f"{uuid.uuid4().hex[:8]}@example.com",
        billing_address=AddressCreate(street="Hauptstrasse 1", postal_code="10115", city="Berlin"),
    )
    return CustomerService(session).create_customer(payload)


def make_contract(session: Session, customer: Customer | None = None, start: date = date(2024, 1, 1)) -> Contract:
    customer = customer or make_customer(session)
    payload = ContractCreate(title="Service agreement", start_date=start, customer_id=customer.id)
    return ContractService(session, today=lambda: TODAY).create_contract(payload)


def make_subscription(
    session: Session,
    contract: Contract | None = None,
    *,
    start: date = date(2024, 1, 1),
    end: date | None = None,
    price: str = "100.00",
    cycle: BillingCycle = BillingCycle.MONTHLY,
    auto_renewal: bool = True,
    today=lambda: TODAY,
) -> Subscription:
    contract = contract or make_contract(session, start=start)
    payload = SubscriptionCreate(
        product_name="Cloud Storage",
        monthly_price=Decimal(price),
        start_date=start,
        end_date=end,
        billing_cycle=cycle,
        auto_renewal=auto_renewal,
        contract_id=contract.id,
    )
    return SubscriptionService(session, today=today).create(payload)
