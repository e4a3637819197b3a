"""
viwo.engine.anti_bot — Bot heuristics
======================================

Pure scoring: turns one day of :class:`ActivityCounts` into a penalty
multiplier in ``(0, 1]`` plus the list of heuristics that tripped.  The
filter never blocks a user; it only scales their points.

Rules apply independently and multiply into the penalty:

1. Per-type daily caps → ``EXCESSIVE_<TYPE>``
2. Average hourly velocity → ``HIGH_VELOCITY``
3. Too few distinct activity types for the volume → ``LOW_DIVERSITY``
4. Mass likes with no posts or comments → ``LIKE_ONLY_PATTERN``
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from viwo.config import DEFAULT_DAILY_CAPS
from viwo.database.models import FlagSeverity, FlagType
from viwo.engine.events import ActivityCounts

if TYPE_CHECKING:
    from viwo.config import RewardsConfig

__all__ = [
    "BotCheck",
    "BotRules",
    "describe_flag",
    "evaluate_activity",
    "severity_for",
]

_CAP_FLAGS: tuple[tuple[str, FlagType], ...] = (
    ("posts", FlagType.EXCESSIVE_POSTS),
    ("likes", FlagType.EXCESSIVE_LIKES),
    ("comments", FlagType.EXCESSIVE_COMMENTS),
    ("shares", FlagType.EXCESSIVE_SHARES),
    ("follows", FlagType.EXCESSIVE_FOLLOWS),
)

_HOURS_PER_DAY = 24
LIKELY_BOT_BELOW = 0.5


# ---------------------------------------------------------------------------
# Rule parameters
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BotRules:
    caps: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_DAILY_CAPS))
    cap_penalty: float = 0.5
    velocity_threshold: float = 100.0
    velocity_penalty: float = 0.3
    diversity_min_types: int = 3
    diversity_min_actions: int = 20
    diversity_penalty: float = 0.5
    like_only_threshold: int = 100
    like_only_penalty: float = 0.3

    @classmethod
    def from_config(cls, config: RewardsConfig) -> BotRules:
        return cls(
            caps=dict(config.daily_caps),
            cap_penalty=config.cap_penalty,
            velocity_threshold=config.velocity_threshold,
            velocity_penalty=config.velocity_penalty,
            diversity_min_types=config.diversity_min_types,
            diversity_min_actions=config.diversity_min_actions,
            diversity_penalty=config.diversity_penalty,
            like_only_threshold=config.like_only_threshold,
            like_only_penalty=config.like_only_penalty,
        )


@dataclass(frozen=True, slots=True)
class BotCheck:
    """Outcome of :func:`evaluate_activity`."""

    penalty: float
    flags: tuple[FlagType, ...]
    is_likely_bot: bool

    @property
    def severity(self) -> FlagSeverity:
        return severity_for(self.penalty)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------
def evaluate_activity(counts: ActivityCounts, rules: BotRules | None = None) -> BotCheck:
    """Apply every heuristic to *counts* and combine the factors."""
    rules = rules or BotRules()
    penalty = 1.0
    flags: list[FlagType] = []

    # 1. Daily caps
    for attr, flag in _CAP_FLAGS:
        cap = rules.caps.get(attr)
        if cap is not None and getattr(counts, attr) > cap:
            penalty *= rules.cap_penalty
            flags.append(flag)

    # 2. Velocity (averaged across the day)
    total = counts.velocity_actions
    if total / _HOURS_PER_DAY > rules.velocity_threshold:
        penalty *= rules.velocity_penalty
        flags.append(FlagType.HIGH_VELOCITY)

    # 3. Diversity
    distinct = sum(1 for n in counts.diversity_counts if n > 0)
    if distinct < rules.diversity_min_types and total > rules.diversity_min_actions:
        penalty *= rules.diversity_penalty
        flags.append(FlagType.LOW_DIVERSITY)

    # 4. Like-only pattern
    if (
        counts.likes > rules.like_only_threshold
        and counts.comments == 0
        and counts.posts == 0
    ):
        penalty *= rules.like_only_penalty
        flags.append(FlagType.LIKE_ONLY_PATTERN)

    return BotCheck(
        penalty=penalty,
        flags=tuple(flags),
        is_likely_bot=penalty < LIKELY_BOT_BELOW,
    )


def severity_for(penalty: float) -> FlagSeverity:
    """Severity of every flag raised in a check, from its final penalty."""
    if penalty < 0.3:
        return FlagSeverity.HIGH
    if penalty < 0.5:
        return FlagSeverity.MEDIUM
    return FlagSeverity.LOW


def describe_flag(flag: FlagType) -> str:
    return f"Detected {flag.value.lower().replace('_', ' ')} behavior"
