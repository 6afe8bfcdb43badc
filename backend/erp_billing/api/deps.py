from datetime import date
from typing import Callable, Generator

from fastapi import HTTPException
from sqlmodel import Session

from erp_billing.core.errors import BillingError
from erp_billing.db.session import get_session


def get_db() -> Generator[Session, None, None]:
    yield from get_session()


def get_clock() -> Callable[[], date]:
    return date.today


def http_error(exc: BillingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)
