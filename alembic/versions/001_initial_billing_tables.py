"""users + overages tables for overage billing

Revision ID: 001_initial
Revises:
Create Date: 2026-09-28
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("hubspot_portal_id", sa.String(64), nullable=True),
        sa.Column("plan_id", sa.String(64), nullable=False, server_default="starter"),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"])
    op.create_index("ix_users_hubspot_portal_id", "users", ["hubspot_portal_id"])

    op.create_table(
        "overages",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(64), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", sa.String(64), nullable=False),
        sa.Column("amount", sa.Integer, nullable=False, server_default="0"),
        sa.Column("period_start", sa.DateTime, nullable=False),
        sa.Column("period_end", sa.DateTime, nullable=False),
        sa.Column("billed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_overages_user_id", "overages", ["user_id"])
    op.create_index("ix_overages_billed", "overages", ["billed"])


def downgrade() -> None:
    op.drop_index("ix_overages_billed", table_name="overages")
    op.drop_index("ix_overages_user_id", table_name="overages")
    op.drop_table("overages")
    op.drop_index("ix_users_hubspot_portal_id", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
