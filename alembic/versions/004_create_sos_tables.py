"""Create sos_alerts and sos_recipients tables.

Revision ID: 004
Revises: 003
Create Date: 2026-03-09

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "sos_alerts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("sender_id", sa.Integer(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("battery_level", sa.Integer(), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="ACTIVE"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["sender_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_sos_alerts_sender_id"), "sos_alerts", ["sender_id"], unique=False)

    op.create_table(
        "sos_recipients",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("sos_alert_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["sos_alert_id"], ["sos_alerts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sos_alert_id", "user_id", name="uq_sos_recipient"),
    )
    op.create_index(op.f("ix_sos_recipients_sos_alert_id"), "sos_recipients", ["sos_alert_id"], unique=False)
    op.create_index(op.f("ix_sos_recipients_user_id"), "sos_recipients", ["user_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_sos_recipients_user_id"), table_name="sos_recipients")
    op.drop_index(op.f("ix_sos_recipients_sos_alert_id"), table_name="sos_recipients")
    op.drop_table("sos_recipients")
    op.drop_index(op.f("ix_sos_alerts_sender_id"), table_name="sos_alerts")
    op.drop_table("sos_alerts")
