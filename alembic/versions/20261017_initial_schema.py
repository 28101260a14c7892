"""initial schema: users, items, groups, invitations, recipients, claims, notifications, outbox

Revision ID: 20261017_initial_schema
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""
from __future__ import annotations
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "20261017_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID = sa.String(length=32)

item_status = sa.Enum("active", "received", "archived", name="item_status")
member_role = sa.Enum("owner", "admin", "member", name="member_role")
invitation_status = sa.Enum("pending", "accepted", "declined", "expired", name="invitation_status")
outbox_status = sa.Enum("pending", "processing", "sent", "failed", name="outbox_status")

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", ID, primary_key=True),
        sa.Column("external_id", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("avatar_url", sa.String(length=2048), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_users_external_id", "users", ["external_id"], unique=True)
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "items",
        sa.Column("id", ID, primary_key=True),
        sa.Column("owner_id", ID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("url", sa.String(length=2048), nullable=True),
        sa.Column("price", sa.Integer(), nullable=True, comment="Цена в центах"),
        sa.Column("notes", sa.String(length=1000), nullable=True),
        sa.Column("image_url", sa.String(length=2048), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=True, comment="Приоритет 1..5"),
        sa.Column("status", item_status, nullable=False, server_default=sa.text("'active'")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("price IS NULL OR price >= 0", name="ck_items_price_non_negative"),
        sa.CheckConstraint("priority IS NULL OR (priority >= 1 AND priority <= 5)", name="ck_items_priority_range"),
    )
    op.create_index("ix_items_owner_id", "items", ["owner_id"])
    op.create_index("ix_items_owner_status", "items", ["owner_id", "status"])

    op.create_table(
        "groups",
        sa.Column("id", ID, primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("owner_id", ID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_groups_name", "groups", ["name"])
    op.create_index("ix_groups_owner_id", "groups", ["owner_id"])

    op.create_table(
        "group_members",
        sa.Column("id", ID, primary_key=True),
        sa.Column("group_id", ID, sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", ID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", member_role, nullable=False, server_default=sa.text("'member'")),
        sa.Column("joined_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
    )
    op.create_index("ix_group_members_group_id", "group_members", ["group_id"])
    op.create_index("ix_group_members_user_id", "group_members", ["user_id"])
    op.create_index("ix_group_members_user_group", "group_members", ["user_id", "group_id"])

    op.create_table(
        "invitations",
        sa.Column("id", ID, primary_key=True),
        sa.Column("group_id", ID, sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("inviter_id", ID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("invitee_email", sa.String(length=320), nullable=False),
        sa.Column("token", sa.String(length=64), nullable=False),
        # тип member_role уже создан вместе с group_members
        sa.Column(
            "role",
            postgresql.ENUM("owner", "admin", "member", name="member_role", create_type=False)
            if op.get_bind().dialect.name == "postgresql" else member_role,
            nullable=False,
            server_default=sa.text("'member'"),
        ),
        sa.Column("status", invitation_status, nullable=False, server_default=sa.text("'pending'")),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_invitations_group_id", "invitations", ["group_id"])
    op.create_index("ix_invitations_invitee_email", "invitations", ["invitee_email"])
    op.create_index("ix_invitations_token", "invitations", ["token"], unique=True)
    op.create_index("ix_invitations_email_status", "invitations", ["invitee_email", "status"])

    op.create_table(
        "item_recipients",
        sa.Column("id", ID, primary_key=True),
        sa.Column("item_id", ID, sa.ForeignKey("items.id", ondelete="CASCADE"), nullable=False),
        sa.Column("group_id", ID, sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("item_id", "group_id", name="uq_item_recipients_item_group"),
    )
    op.create_index("ix_item_recipients_item_id", "item_recipients", ["item_id"])
    op.create_index("ix_item_recipients_group_id", "item_recipients", ["group_id"])

    op.create_table(
        "claims",
        sa.Column("id", ID, primary_key=True),
        sa.Column("item_id", ID, sa.ForeignKey("items.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", ID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=True, comment="NULL = полная бронь; иначе центы"),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("purchased_at", sa.DateTime(), nullable=True),
        sa.Column("reminded_at", sa.DateTime(), nullable=True, comment="Когда отправили напоминание об истечении"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount IS NULL OR amount > 0", name="ck_claims_amount_positive"),
    )
    op.create_index("ix_claims_item_id", "claims", ["item_id"])
    op.create_index("ix_claims_user_id", "claims", ["user_id"])
    op.create_index("ix_claims_expires_at", "claims", ["expires_at"])
    # не больше одной полной брони на позицию
    op.create_index(
        "uq_claims_item_full",
        "claims",
        ["item_id"],
        unique=True,
        postgresql_where=sa.text("amount IS NULL"),
        sqlite_where=sa.text("amount IS NULL"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", ID, primary_key=True),
        sa.Column("user_id", ID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("body", sa.String(length=1000), nullable=False),
        sa.Column("data", JSONType, nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "read"])
    op.create_index("ix_notifications_user_created", "notifications", ["user_id", "created_at"])

    op.create_table(
        "notification_outbox",
        sa.Column("id", ID, primary_key=True),
        sa.Column("user_id", ID, nullable=False),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("body", sa.String(length=1000), nullable=False),
        sa.Column("data", JSONType, nullable=True),
        sa.Column("status", outbox_status, nullable=False, server_default=sa.text("'pending'")),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_error", sa.String(length=1000), nullable=True),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        # В Postgres UNIQUE допускает несколько NULL: то, что нужно.
        sa.UniqueConstraint("idempotency_key", name="uq_notification_outbox_idempotency_key"),
    )
    op.create_index("ix_notification_outbox_status_created", "notification_outbox", ["status", "created_at"])


def downgrade() -> None:
    op.drop_table("notification_outbox")
    op.drop_table("notifications")
    op.drop_index("uq_claims_item_full", table_name="claims")
    op.drop_table("claims")
    op.drop_table("item_recipients")
    op.drop_table("invitations")
    op.drop_table("group_members")
    op.drop_table("groups")
    op.drop_table("items")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in (outbox_status, invitation_status, member_role, item_status):
        enum_type.drop(bind, checkfirst=True)
