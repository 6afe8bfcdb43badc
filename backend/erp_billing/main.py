from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from erp_billing.api.routes import (
    billing_batch,
    contracts,
    customers,
    due_schedules,
    health,
    invoices,
    maintenance,
    products,
    subscriptions,
)
from erp_billing.core.config import settings
from erp_billing.core.logging_setup import logger
from erp_billing.db.session import init_db


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncGenerator[None, None]:
    init_db()
    yield


def _normalize_origin(value: str | None) -> str | None:
    if not value:
        return None
    cleaned = value.strip().rstrip("/")
    return cleaned or None


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.project_name,
        debug=settings.debug,
        lifespan=lifespan,
    )

    origins: list[str] = []
    for item in settings.allowed_origins:
        normalized = _normalize_origin(item)
        if normalized and normalized not in origins:
            origins.append(normalized)

    logger.info(f"CORS configured with origins: {origins}")

    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(health.router, prefix="/health")
    application.include_router(customers.router, prefix=settings.api_v1_str)
    application.include_router(products.router, prefix=settings.api_v1_str)
    application.include_router(contracts.router, prefix=settings.api_v1_str)
    application.include_router(subscriptions.router, prefix=settings.api_v1_str)
    application.include_router(due_schedules.router, prefix=settings.api_v1_str)
    application.include_router(invoices.router, prefix=settings.api_v1_str)
    application.include_router(billing_batch.router, prefix=settings.api_v1_str)
    application.include_router(maintenance.router, prefix=settings.api_v1_str)

    @application.get("/")
    def root():
        return {"service": settings.project_name}

    logger.info(f"{settings.project_name} API initialized")
    return application


app = create_app()
