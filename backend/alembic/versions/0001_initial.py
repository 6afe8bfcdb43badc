"""Billing schema baseline: master data, subscriptions, due schedules, invoices and open items."""

from __future__ import annotations

from alembic import op
from sqlmodel import SQLModel

from erp_billing.db.base import *  # noqa: F401,F403

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    SQLModel.metadata.create_all(bind=op.get_bind())


def downgrade() -> None:
    SQLModel.metadata.drop_all(bind=op.get_bind())
