"""
viwo.engine.reputation — Account reputation multiplier
=======================================================

Four sub-scores (account age, historical content quality, verification
tier, community standing) are blended into one per-user multiplier and
clamped to ``[0.3, 5.0]``.
"""

from __future__ import annotations

from dataclasses import dataclass

from viwo.config import DEFAULT_TIER_MULTIPLIERS

_W_AGE = 0.25
_W_QUALITY = 0.35
_W_VERIFICATION = 0.25
_W_STANDING = 0.15

REPUTATION_FLOOR = 0.3
REPUTATION_CEILING = 5.0


@dataclass(frozen=True, slots=True)
class AccountSignals:
    """Everything the scorer needs to know about one account."""

    account_age_days: float
    verification_tier: str
    follower_count: int
    post_count: int
    # overall_score of recent posts that have a quality row
    recent_quality_scores: tuple[float, ...] = ()


@dataclass(frozen=True, slots=True)
class ReputationBreakdown:
    account_age_score: float
    historical_quality_score: float
    verification_score: float
    community_standing_score: float
    overall_reputation: float


# ---------------------------------------------------------------------------
# Sub-scores
# ---------------------------------------------------------------------------
def account_age_score(age_days: float) -> float:
    if age_days > 365:
        return 2.0
    if age_days > 180:
        return 1.5
    if age_days > 90:
        return 1.3
    if age_days > 30:
        return 1.2
    return 1.0


def historical_quality_score(scores: tuple[float, ...]) -> float:
    """Bucket the mean quality of recent posts; 1.0 without data."""
    if not scores:
        return 1.0
    avg = sum(scores) / len(scores)
    if avg > 0.08:
        return 2.0
    if avg > 0.05:
        return 1.5
    if avg > 0.02:
        return 1.2
    if avg < 0.005:
        return 0.5
    return 1.0


def community_standing_score(follower_count: int, post_count: int) -> float:
    if follower_count > 10_000:
        return 2.0
    if follower_count > 1_000:
        return 1.7
    if follower_count > 100:
        return 1.4
    if follower_count > 10:
        return 1.2
    if follower_count == 0 and post_count == 0:
        return 0.5
    return 1.0


def clamp_reputation(value: float) -> float:
    return min(max(value, REPUTATION_FLOOR), REPUTATION_CEILING)


# ---------------------------------------------------------------------------
# Combination
# ---------------------------------------------------------------------------
def score_reputation(
    signals: AccountSignals,
    tier_multipliers: dict[str, float] | None = None,
) -> ReputationBreakdown:
    """Compute every sub-score for *signals* and blend them."""
    tiers = tier_multipliers if tier_multipliers is not None else DEFAULT_TIER_MULTIPLIERS

    age = account_age_score(signals.account_age_days)
    quality = historical_quality_score(signals.recent_quality_scores)
    verification = tiers.get(signals.verification_tier, 1.0)
    standing = community_standing_score(signals.follower_count, signals.post_count)

    overall = clamp_reputation(
        age * _W_AGE
        + quality * _W_QUALITY
        + verification * _W_VERIFICATION
        + standing * _W_STANDING
    )

    return ReputationBreakdown(
        account_age_score=age,
        historical_quality_score=quality,
        verification_score=verification,
        community_standing_score=standing,
        overall_reputation=overall,
    )
