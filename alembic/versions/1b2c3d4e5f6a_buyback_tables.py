"""Buyback and module revenue tables

Revision ID: 1b2c3d4e5f6a
Revises: 0a1b2c3d4e5f
Create Date: 2026-10-19 12:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = "1b2c3d4e5f6a"
down_revision = "0a1b2c3d4e5f"
branch_labels = None
depends_on = None

MONEY = sa.Numeric(36, 8)


def upgrade() -> None:
    op.create_table(
        "vcoin_buybacks",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("usd_spent", MONEY, nullable=False),
        sa.Column("vcn_bought", MONEY, nullable=False),
        sa.Column("vcn_burned", MONEY, nullable=False),
        sa.Column("vcn_locked", MONEY, nullable=False),
        sa.Column("avg_price", MONEY, nullable=False),
        sa.Column("dex_used", sa.String(60), nullable=False),
        sa.Column("executed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_vcoin_buybacks_executed_at", "vcoin_buybacks", ["executed_at"])

    op.create_table(
        "module_revenues",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("module_name", sa.String(60), nullable=False),
        sa.Column("month", sa.Date(), nullable=False),
        sa.Column("revenue_usd", MONEY, nullable=False, server_default="0"),
        sa.Column("costs_usd", MONEY, nullable=False, server_default="0"),
        sa.Column("profit_usd", MONEY, nullable=False, server_default="0"),
        sa.Column("vcn_fees_collected", MONEY, nullable=False, server_default="0"),
        sa.Column("vcn_burned", MONEY, nullable=False, server_default="0"),
        sa.Column("vcn_staked", MONEY, nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("module_name", "month", name="uq_module_revenues_module_month"),
    )


def downgrade() -> None:
    op.drop_table("module_revenues")
    op.drop_index("ix_vcoin_buybacks_executed_at", table_name="vcoin_buybacks")
    op.drop_table("vcoin_buybacks")
