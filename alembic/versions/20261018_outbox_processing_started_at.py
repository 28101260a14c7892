"""notification_outbox: processing_started_at for stuck-row detection

Revision ID: 20261018_outbox_processing_started_at
Revises: 20261017_initial_schema
Create Date: 2026-10-18 10:30:00.000000
"""
from __future__ import annotations
from typing import Sequence, Set, Union

from alembic import op
import sqlalchemy as sa

revision: str = "20261018_outbox_processing_started_at"
down_revision: Union[str, None] = "20261017_initial_schema"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _columns(bind, table: str) -> Set[str]:
    insp = sa.inspect(bind)
    return {c["name"] for c in insp.get_columns(table)}


def _index_names(bind, table: str) -> Set[str]:
    insp = sa.inspect(bind)
    return {ix["name"] for ix in insp.get_indexes(table)}


def upgrade() -> None:
    bind = op.get_bind()

    if "processing_started_at" not in _columns(bind, "notification_outbox"):
        op.add_column("notification_outbox", sa.Column("processing_started_at", sa.DateTime(), nullable=True))

    # строки, уже висящие в processing, считаем начатыми в момент миграции
    op.execute(
        "UPDATE notification_outbox SET processing_started_at = CURRENT_TIMESTAMP "
        "WHERE status = 'processing' AND processing_started_at IS NULL"
    )

    if "ix_notification_outbox_status_processing" not in _index_names(bind, "notification_outbox"):
        op.create_index(
            "ix_notification_outbox_status_processing",
            "notification_outbox",
            ["status", "processing_started_at"],
        )


def downgrade() -> None:
    bind = op.get_bind()
    if "ix_notification_outbox_status_processing" in _index_names(bind, "notification_outbox"):
        op.drop_index("ix_notification_outbox_status_processing", table_name="notification_outbox")
    if "processing_started_at" in _columns(bind, "notification_outbox"):
        with op.batch_alter_table("notification_outbox") as batch:
            batch.drop_column("processing_started_at")
