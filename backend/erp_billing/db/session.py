import os
from typing import Any, Generator

from sqlmodel import Session, SQLModel, create_engine

from erp_billing.core.config import settings
from erp_billing.core.logging_setup import logger
import erp_billing.db.base  # noqa: F401


def _connect_args(database_url: str) -> dict[str, Any]:
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    if database_url.startswith("postgresql"):
        client_encoding = os.getenv("POSTGRES_CLIENT_ENCODING", "UTF8")
        return {"options": f"-c client_encoding={client_encoding}"}
    return {}


engine = create_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=not settings.database_url.startswith("sqlite"),
    connect_args=_connect_args(settings.database_url),
)


def init_db() -> None:
    SQLModel.metadata.create_all(bind=engine)
    tables = ", ".join(sorted(SQLModel.metadata.tables))
    logger.info(f"[init_db] schema ready on {engine.url.render_as_string(hide_password=True)}: {tables}")


def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
