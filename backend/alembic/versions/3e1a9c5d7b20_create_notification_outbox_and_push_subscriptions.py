"""create notification_outbox and push_subscriptions tables

Revision ID: 3e1a9c5d7b20
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "3e1a9c5d7b20"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "notification_outbox",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("constellation_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("recipient_user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("actor_user_id", postgresql.UUID(as_uuid=True), nullable=True),

        sa.Column("event_type", sa.String(length=32), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),

        sa.Column("status", sa.String(length=20), nullable=False, server_default="queued"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),

        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
    )

    # Enforce the five-state lifecycle at the DB level; producers write rows directly.
    op.create_check_constraint(
        "ck_notification_outbox_status_valid",
        "notification_outbox",
        "status IN ('queued','processing','sent','failed','discarded')",
    )

    op.create_index("ix_notification_outbox_constellation_id", "notification_outbox", ["constellation_id"])
    op.create_index("ix_notification_outbox_recipient_user_id", "notification_outbox", ["recipient_user_id"])
    op.create_index("ix_notification_outbox_status_next", "notification_outbox", ["status", "next_attempt_at"])

    op.create_table(
        "push_subscriptions",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_push_subscriptions_user_active", "push_subscriptions", ["user_id", "is_active"])


def downgrade() -> None:
    op.drop_index("ix_push_subscriptions_user_active", table_name="push_subscriptions")
    op.drop_table("push_subscriptions")

    op.drop_index("ix_notification_outbox_status_next", table_name="notification_outbox")
    op.drop_index("ix_notification_outbox_recipient_user_id", table_name="notification_outbox")
    op.drop_index("ix_notification_outbox_constellation_id", table_name="notification_outbox")
    op.drop_constraint("ck_notification_outbox_status_valid", "notification_outbox", type_="check")
    op.drop_table("notification_outbox")
