"""Initial reward schema

Creates the collaborator tables (users, posts, comments, post_interactions,
follows) as well, for standalone deployments.

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "0a1b2c3d4e5f"
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(36, 8)


def _ts(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    # --- Collaborator tables ---
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("username", sa.String(50), nullable=False, unique=True),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("avatar_url", sa.String(500), nullable=True),
        sa.Column("verification_tier", sa.String(20), nullable=False, server_default="BASIC"),
        _ts("created_at"),
    )
    op.create_table(
        "posts",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("media_type", sa.String(10), nullable=True),
        sa.Column("likes_count", sa.Integer(), server_default="0"),
        sa.Column("comments_count", sa.Integer(), server_default="0"),
        sa.Column("shares_count", sa.Integer(), server_default="0"),
        sa.Column("reposts_count", sa.Integer(), server_default="0"),
        sa.Column("views_count", sa.Integer(), server_default="0"),
        _ts("created_at"),
    )
    op.create_index("ix_posts_user_time", "posts", ["user_id", "created_at"])
    op.create_index("ix_posts_created_at", "posts", ["created_at"])

    op.create_table(
        "comments",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("post_id", sa.BigInteger(), sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        _ts("created_at"),
    )
    op.create_index("ix_comments_user_time", "comments", ["user_id", "created_at"])
    op.create_index("ix_comments_post", "comments", ["post_id"])

    op.create_table(
        "post_interactions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("post_id", sa.BigInteger(), sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("interaction_type", sa.String(20), nullable=False),
        sa.Column("vcoin_earned", MONEY, server_default="0"),
        _ts("created_at"),
    )
    op.create_index("ix_interactions_user_time", "post_interactions", ["user_id", "created_at"])

    op.create_table(
        "follows",
        sa.Column("follower_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("following_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        _ts("created_at"),
    )
    op.create_index("ix_follows_following", "follows", ["following_id"])
    op.create_index("ix_follows_follower_time", "follows", ["follower_id", "created_at"])

    # --- Scoring caches and audit ---
    op.create_table(
        "bot_detection_flags",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("flag_type", sa.String(40), nullable=False),
        sa.Column("flag_date", sa.Date(), nullable=False),
        sa.Column("severity", sa.String(10), nullable=False),
        sa.Column("penalty_applied", sa.Float(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(10), nullable=False, server_default="ACTIVE"),
        sa.Column("activity_snapshot", postgresql.JSONB(), nullable=True),
        _ts("flagged_at"),
        _ts("resolved_at"),
        sa.UniqueConstraint("user_id", "flag_type", "flag_date", name="uq_bot_flags_user_type_day"),
    )
    op.create_index("ix_bot_flags_user_status", "bot_detection_flags", ["user_id", "status"])
    op.create_index("ix_bot_flags_flagged_at", "bot_detection_flags", ["flagged_at"])

    op.create_table(
        "content_quality_scores",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("post_id", sa.BigInteger(), sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("engagement_rate", sa.Float(), server_default="0"),
        sa.Column("retention_score", sa.Float(), server_default="0"),
        sa.Column("virality_score", sa.Float(), server_default="0"),
        sa.Column("comment_quality", sa.Float(), server_default="0"),
        sa.Column("overall_score", sa.Float(), server_default="0"),
        sa.Column("multiplier", sa.Float(), server_default="1"),
        _ts("calculated_at"),
        sa.UniqueConstraint("post_id", name="uq_content_quality_post"),
    )

    op.create_table(
        "user_reputation_scores",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("account_age_score", sa.Float(), server_default="1"),
        sa.Column("historical_quality_score", sa.Float(), server_default="1"),
        sa.Column("verification_score", sa.Float(), server_default="1"),
        sa.Column("community_standing_score", sa.Float(), server_default="1"),
        sa.Column("overall_reputation", sa.Float(), server_default="1"),
        _ts("last_calculated"),
        sa.UniqueConstraint("user_id", name="uq_user_reputation_user"),
    )

    op.create_table(
        "daily_reward_distributions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("distribution_date", sa.Date(), nullable=False),
        sa.Column("total_pool", MONEY, nullable=False),
        sa.Column("active_users_count", sa.Integer(), server_default="0"),
        sa.Column("qualifying_users_count", sa.Integer(), server_default="0"),
        sa.Column("total_points", sa.BigInteger(), server_default="0"),
        sa.Column("vcn_distributed", MONEY, server_default="0"),
        sa.Column("avg_reward_per_user", MONEY, server_default="0"),
        sa.Column("top_earner_user_id", sa.BigInteger(), nullable=True),
        sa.Column("top_earner_amount", MONEY, nullable=True),
        sa.Column("attempted_count", sa.Integer(), server_default="0"),
        sa.Column("succeeded_count", sa.Integer(), server_default="0"),
        _ts("created_at"),
        sa.UniqueConstraint("distribution_date", name="uq_daily_distribution_date"),
    )

    # --- Ledger ---
    op.create_table(
        "vcoin_balances",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("available", MONEY, nullable=False, server_default="0"),
        sa.Column("staked", MONEY, nullable=False, server_default="0"),
        sa.Column("earned_total", MONEY, nullable=False, server_default="0"),
        sa.Column("spent_total", MONEY, nullable=False, server_default="0"),
        _ts("last_reward_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("user_id", name="uq_vcoin_balances_user"),
        sa.CheckConstraint("available >= 0", name="ck_vcoin_balances_available_nonneg"),
        sa.CheckConstraint("staked >= 0", name="ck_vcoin_balances_staked_nonneg"),
    )

    op.create_table(
        "vcoin_transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("principal", MONEY, nullable=False, server_default="0"),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("source", sa.String(60), nullable=False),
        sa.Column("related_entity_id", sa.String(64), nullable=True),
        sa.Column("related_user_id", sa.BigInteger(), nullable=True),
        sa.Column("idempotency_key", sa.String(120), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="completed"),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        _ts("created_at"),
        sa.UniqueConstraint("idempotency_key", name="uq_vcoin_transactions_idempotency"),
    )
    op.create_index("ix_vcoin_tx_user_time", "vcoin_transactions", ["user_id", "created_at"])
    op.create_index("ix_vcoin_tx_type_time", "vcoin_transactions", ["type", "created_at"])
    op.create_index("ix_vcoin_tx_source", "vcoin_transactions", ["source"])

    op.create_table(
        "vcoin_stakes",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("feature_type", sa.String(40), nullable=False),
        sa.Column("lock_period_days", sa.Integer(), nullable=False),
        _ts("start_date", nullable=False),
        _ts("unlock_date", nullable=False),
        sa.Column("status", sa.String(12), nullable=False, server_default="ACTIVE"),
        sa.Column("apy", sa.Numeric(8, 4), nullable=False),
        sa.Column("rewards_earned", MONEY, nullable=False, server_default="0"),
        _ts("withdrawn_at"),
    )
    op.create_index("ix_vcoin_stakes_user", "vcoin_stakes", ["user_id"])
    op.create_index("ix_vcoin_stakes_status_unlock", "vcoin_stakes", ["status", "unlock_date"])

    op.create_table(
        "vcoin_burns",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("source", sa.String(60), nullable=False),
        sa.Column(
            "related_transaction_id", sa.BigInteger(),
            sa.ForeignKey("vcoin_transactions.id", ondelete="SET NULL"), nullable=True,
        ),
        _ts("created_at"),
    )


def downgrade() -> None:
    for table in (
        "vcoin_burns",
        "vcoin_stakes",
        "vcoin_transactions",
        "vcoin_balances",
        "daily_reward_distributions",
        "user_reputation_scores",
        "content_quality_scores",
        "bot_detection_flags",
        "follows",
        "post_interactions",
        "comments",
        "posts",
        "users",
    ):
        op.drop_table(table)
