"""
viwo.engine.points — Point calculation pipeline
================================================

Pure combination stage of the daily run::

    raw      = Σ base_points[type] × time_decay(age)
    filtered = raw × bot_penalty
    final    = round_half_up(filtered × quality_multiplier × reputation)

``final`` is monotone non-decreasing in each of the three multipliers.
Event age is measured against the reference instant of the run (the end
of the window being rewarded), so a one-day window always decays by 1.0.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from viwo.constants import as_utc
from viwo.engine.events import ActivityEvent

# (max age in days inclusive, factor)
DECAY_STEPS: tuple[tuple[float, float], ...] = (
    (1, 1.0),
    (3, 0.95),
    (7, 0.70),
    (14, 0.45),
    (30, 0.20),
    (60, 0.08),
    (90, 0.05),
)
DECAY_FLOOR = 0.03

_SECONDS_PER_DAY = 86_400


@dataclass(frozen=True, slots=True)
class PointsBreakdown:
    raw_points: float
    bot_penalty: float
    filtered_points: float
    quality_multiplier: float
    reputation_multiplier: float
    final_points: int


def time_decay(age_days: float) -> float:
    for max_age, factor in DECAY_STEPS:
        if age_days <= max_age:
            return factor
    return DECAY_FLOOR


def event_age_days(event: ActivityEvent, reference: datetime) -> float:
    delta = as_utc(reference) - as_utc(event.occurred_at)
    return max(delta.total_seconds(), 0.0) / _SECONDS_PER_DAY


def raw_points(
    events: Iterable[ActivityEvent],
    weights: dict[str, int],
    reference: datetime,
) -> float:
    """Sum of decayed base points.  Unknown types weigh 0."""
    return sum(
        weights.get(event.type.value, 0) * time_decay(event_age_days(event, reference))
        for event in events
    )


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def combine_points(
    raw: float,
    bot_penalty: float,
    quality_multiplier: float,
    reputation_multiplier: float,
) -> PointsBreakdown:
    filtered = raw * bot_penalty
    final = round_half_up(filtered * quality_multiplier * reputation_multiplier)
    return PointsBreakdown(
        raw_points=raw,
        bot_penalty=bot_penalty,
        filtered_points=filtered,
        quality_multiplier=quality_multiplier,
        reputation_multiplier=reputation_multiplier,
        final_points=max(final, 0),
    )
