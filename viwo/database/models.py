"""
viwo.database.models — SQLAlchemy 2.0 Data Models
==================================================

Collaborator tables (owned by the social app, read-only here):
- users              — Account metadata (age, verification tier)
- posts              — Content items with engagement counters
- comments           — Comments on posts
- post_interactions  — Likes, shares and reposts
- follows            — Follower graph

Reward tables (owned by this package):
- bot_detection_flags       — Audit trail of tripped bot heuristics
- content_quality_scores    — Per-post quality cache (upserted)
- user_reputation_scores    — Per-user reputation cache (upserted)
- daily_reward_distributions — One write-once summary per rewarded day
- vcoin_balances            — Per-user available / staked totals
- vcoin_transactions        — Append-only signed ledger
- vcoin_stakes              — Time-locked deposits
- vcoin_burns               — Burned transfer fees and buyback burns
- vcoin_buybacks            — Treasury buybacks (burned + locked VCN)
- module_revenues           — Monthly revenue / costs per product module
"""

from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from viwo.constants import utcnow

# Ledger precision: 28 integer digits, 8 fractional
Money = Numeric(36, 8, asdecimal=True)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all ViWo ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ActivityType(enum.StrEnum):
    """Every action that earns points in the daily run."""
    TEXT_POST = "TEXT_POST"
    IMAGE_POST = "IMAGE_POST"
    VIDEO_POST = "VIDEO_POST"
    LIKE = "LIKE"
    COMMENT = "COMMENT"
    SHARE = "SHARE"
    REPOST = "REPOST"
    FOLLOW = "FOLLOW"


class InteractionKind(enum.StrEnum):
    """Values of ``post_interactions.interaction_type``."""
    LIKE = "like"
    SHARE = "share"
    REPOST = "repost"


class FlagType(enum.StrEnum):
    EXCESSIVE_POSTS = "EXCESSIVE_POSTS"
    EXCESSIVE_LIKES = "EXCESSIVE_LIKES"
    EXCESSIVE_COMMENTS = "EXCESSIVE_COMMENTS"
    EXCESSIVE_SHARES = "EXCESSIVE_SHARES"
    EXCESSIVE_FOLLOWS = "EXCESSIVE_FOLLOWS"
    HIGH_VELOCITY = "HIGH_VELOCITY"
    LOW_DIVERSITY = "LOW_DIVERSITY"
    LIKE_ONLY_PATTERN = "LIKE_ONLY_PATTERN"


class FlagSeverity(enum.StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class FlagStatus(enum.StrEnum):
    ACTIVE = "ACTIVE"
    RESOLVED = "RESOLVED"


class TransactionType(enum.StrEnum):
    """Ledger row kinds.  ``amount`` sign follows the holder's net change."""
    EARN = "earn"
    SPEND = "spend"
    SEND = "send"
    RECEIVE = "receive"
    STAKE = "stake"
    UNSTAKE = "unstake"


class StakeStatus(enum.StrEnum):
    ACTIVE = "ACTIVE"
    UNLOCKED = "UNLOCKED"
    WITHDRAWN = "WITHDRAWN"


class VerificationTier(enum.StrEnum):
    BASIC = "BASIC"
    VERIFIED = "VERIFIED"
    PREMIUM = "PREMIUM"
    ENTERPRISE = "ENTERPRISE"


class StakeFeature(enum.StrEnum):
    """Premium features unlocked by staking a minimum amount."""
    IDENTITY_PREMIUM = "IDENTITY_PREMIUM"
    CONTENT_CREATOR_PRO = "CONTENT_CREATOR_PRO"
    DAO_FOUNDER = "DAO_FOUNDER"
    QUALITY_CURATOR = "QUALITY_CURATOR"
    TRUSTED_MODERATOR = "TRUSTED_MODERATOR"


# ===========================================================================
# Collaborator tables
# ===========================================================================
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    avatar_url: Mapped[str | None] = mapped_column(String(500), default=None)
    verification_tier: Mapped[str] = mapped_column(
        String(20), nullable=False, default=VerificationTier.BASIC.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} tier={self.verification_tier}>"


class Post(Base):
    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    media_type: Mapped[str | None] = mapped_column(String(10), default=None)  # image, video
    likes_count: Mapped[int] = mapped_column(Integer, default=0)
    comments_count: Mapped[int] = mapped_column(Integer, default=0)
    shares_count: Mapped[int] = mapped_column(Integer, default=0)
    reposts_count: Mapped[int] = mapped_column(Integer, default=0)
    views_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    __table_args__ = (
        Index("ix_posts_user_time", "user_id", "created_at"),
        Index("ix_posts_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Post id={self.id} user={self.user_id} media={self.media_type}>"


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    __table_args__ = (
        Index("ix_comments_user_time", "user_id", "created_at"),
        Index("ix_comments_post", "post_id"),
    )


class PostInteraction(Base):
    __tablename__ = "post_interactions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    interaction_type: Mapped[str] = mapped_column(String(20), nullable=False)
    vcoin_earned: Mapped[Decimal] = mapped_column(Money, default=Decimal(0))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    __table_args__ = (
        Index("ix_interactions_user_time", "user_id", "created_at"),
    )


class Follow(Base):
    __tablename__ = "follows"

    follower_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    following_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    __table_args__ = (
        Index("ix_follows_following", "following_id"),
        Index("ix_follows_follower_time", "follower_id", "created_at"),
    )


# ===========================================================================
# Reward tables
# ===========================================================================
class BotDetectionFlag(Base):
    """One tripped heuristic per user, rule and UTC day.  Only ``resolve_flag``
    mutates a row."""
    __tablename__ = "bot_detection_flags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    flag_type: Mapped[str] = mapped_column(String(40), nullable=False)
    flag_date: Mapped[date] = mapped_column(Date, nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False)
    penalty_applied: Mapped[float] = mapped_column(Float, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=FlagStatus.ACTIVE.value
    )
    activity_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    flagged_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    __table_args__ = (
        UniqueConstraint("user_id", "flag_type", "flag_date", name="uq_bot_flags_user_type_day"),
        Index("ix_bot_flags_user_status", "user_id", "status"),
        Index("ix_bot_flags_flagged_at", "flagged_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<BotDetectionFlag id={self.id} user={self.user_id} "
            f"{self.flag_type} {self.severity} {self.status}>"
        )


class ContentQualityScore(Base):
    __tablename__ = "content_quality_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False
    )
    engagement_rate: Mapped[float] = mapped_column(Float, default=0.0)
    retention_score: Mapped[float] = mapped_column(Float, default=0.0)
    virality_score: Mapped[float] = mapped_column(Float, default=0.0)
    comment_quality: Mapped[float] = mapped_column(Float, default=0.0)
    overall_score: Mapped[float] = mapped_column(Float, default=0.0)
    multiplier: Mapped[float] = mapped_column(Float, default=1.0)
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    __table_args__ = (
        UniqueConstraint("post_id", name="uq_content_quality_post"),
    )

    def __repr__(self) -> str:
        return f"<ContentQualityScore post={self.post_id} overall={self.overall_score:.4f} x{self.multiplier}>"


class UserReputationScore(Base):
    __tablename__ = "user_reputation_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    account_age_score: Mapped[float] = mapped_column(Float, default=1.0)
    historical_quality_score: Mapped[float] = mapped_column(Float, default=1.0)
    verification_score: Mapped[float] = mapped_column(Float, default=1.0)
    community_standing_score: Mapped[float] = mapped_column(Float, default=1.0)
    overall_reputation: Mapped[float] = mapped_column(Float, default=1.0)
    last_calculated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_user_reputation_user"),
    )

    def __repr__(self) -> str:
        return f"<UserReputationScore user={self.user_id} overall={self.overall_reputation:.3f}>"


class DailyRewardDistribution(Base):
    """Write-once summary of one rewarded day.  Its existence is the run guard."""
    __tablename__ = "daily_reward_distributions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    distribution_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_pool: Mapped[Decimal] = mapped_column(Money, nullable=False)
    active_users_count: Mapped[int] = mapped_column(Integer, default=0)
    qualifying_users_count: Mapped[int] = mapped_column(Integer, default=0)
    total_points: Mapped[int] = mapped_column(BigInteger, default=0)
    vcn_distributed: Mapped[Decimal] = mapped_column(Money, default=Decimal(0))
    avg_reward_per_user: Mapped[Decimal] = mapped_column(Money, default=Decimal(0))
    top_earner_user_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    top_earner_amount: Mapped[Decimal | None] = mapped_column(Money, default=None)
    attempted_count: Mapped[int] = mapped_column(Integer, default=0)
    succeeded_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    __table_args__ = (
        UniqueConstraint("distribution_date", name="uq_daily_distribution_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<DailyRewardDistribution {self.distribution_date} "
            f"distributed={self.vcn_distributed} users={self.succeeded_count}>"
        )


class VCoinBalance(Base):
    __tablename__ = "vcoin_balances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    available: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal(0))
    staked: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal(0))
    earned_total: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal(0))
    spent_total: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal(0))
    last_reward_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_vcoin_balances_user"),
        CheckConstraint("available >= 0", name="ck_vcoin_balances_available_nonneg"),
        CheckConstraint("staked >= 0", name="ck_vcoin_balances_staked_nonneg"),
    )

    def __repr__(self) -> str:
        return f"<VCoinBalance user={self.user_id} available={self.available} staked={self.staked}>"


class VCoinTransaction(Base):
    """Append-only ledger row.

    ``amount`` is the signed change of the holder's ``available + staked``;
    ``principal`` carries the moved principal on stake/unstake rows.
    """
    __tablename__ = "vcoin_transactions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    principal: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal(0))
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    source: Mapped[str] = mapped_column(String(60), nullable=False)
    related_entity_id: Mapped[str | None] = mapped_column(String(64), default=None)
    related_user_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    idempotency_key: Mapped[str | None] = mapped_column(String(120), default=None)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="completed")
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_vcoin_transactions_idempotency"),
        Index("ix_vcoin_tx_user_time", "user_id", "created_at"),
        Index("ix_vcoin_tx_type_time", "type", "created_at"),
        Index("ix_vcoin_tx_source", "source"),
    )

    def __repr__(self) -> str:
        return f"<VCoinTransaction id={self.id} user={self.user_id} {self.type} {self.amount} {self.source}>"


class VCoinStake(Base):
    __tablename__ = "vcoin_stakes"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    feature_type: Mapped[str] = mapped_column(String(40), nullable=False)
    lock_period_days: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    unlock_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(
        String(12), nullable=False, default=StakeStatus.ACTIVE.value
    )
    apy: Mapped[Decimal] = mapped_column(Numeric(8, 4), nullable=False)
    rewards_earned: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal(0))
    withdrawn_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    __table_args__ = (
        Index("ix_vcoin_stakes_user", "user_id"),
        Index("ix_vcoin_stakes_status_unlock", "status", "unlock_date"),
    )

    def __repr__(self) -> str:
        return f"<VCoinStake id={self.id} user={self.user_id} {self.amount} {self.status}>"


class VCoinBurn(Base):
    __tablename__ = "vcoin_burns"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    source: Mapped[str] = mapped_column(String(60), nullable=False)
    related_transaction_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("vcoin_transactions.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    def __repr__(self) -> str:
        return f"<VCoinBurn id={self.id} amount={self.amount} source={self.source}>"


class VCoinBuyback(Base):
    """One treasury buyback: profit converted to VCN, part burned, part locked."""
    __tablename__ = "vcoin_buybacks"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    usd_spent: Mapped[Decimal] = mapped_column(Money, nullable=False)
    vcn_bought: Mapped[Decimal] = mapped_column(Money, nullable=False)
    vcn_burned: Mapped[Decimal] = mapped_column(Money, nullable=False)
    vcn_locked: Mapped[Decimal] = mapped_column(Money, nullable=False)
    avg_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    dex_used: Mapped[str] = mapped_column(String(60), nullable=False)
    executed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    __table_args__ = (
        Index("ix_vcoin_buybacks_executed_at", "executed_at"),
    )

    def __repr__(self) -> str:
        return f"<VCoinBuyback id={self.id} usd={self.usd_spent} bought={self.vcn_bought}>"


class ModuleRevenue(Base):
    """Monthly revenue and costs of one product module (upserted)."""
    __tablename__ = "module_revenues"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    module_name: Mapped[str] = mapped_column(String(60), nullable=False)
    month: Mapped[date] = mapped_column(Date, nullable=False)
    revenue_usd: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal(0))
    costs_usd: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal(0))
    profit_usd: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal(0))
    vcn_fees_collected: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal(0))
    vcn_burned: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal(0))
    vcn_staked: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal(0))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("module_name", "month", name="uq_module_revenues_module_month"),
    )

    def __repr__(self) -> str:
        return f"<ModuleRevenue {self.module_name} {self.month} profit={self.profit_usd}>"
