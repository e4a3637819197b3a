"""
viwo.engine.quality — Content quality score
============================================

Converts a post's current engagement counters into an overall quality
score and a reward multiplier bucket.  Pure: the same counters always
give the same score, which is why the persisted rows are only a cache.
"""

from __future__ import annotations

from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Weights and buckets (single source of truth)
# ---------------------------------------------------------------------------
_W_ENGAGEMENT = 0.4
_W_RETENTION = 0.2
_W_VIRALITY = 0.3
_W_COMMENT = 0.1

_REPOST_WEIGHT = 1.5
_COMMENT_LENGTH_NORM = 100.0

# Retention is a placeholder until watch-time analytics exist.
_RETENTION_VIDEO = 0.7
_RETENTION_DEFAULT = 1.0

# (upper bound exclusive, multiplier); anything above the last bound gets 10x
MULTIPLIER_BUCKETS: tuple[tuple[float, float], ...] = (
    (0.005, 0.1),
    (0.01, 0.5),
    (0.02, 1.0),
    (0.05, 2.0),
    (0.10, 5.0),
)
MAX_MULTIPLIER = 10.0


@dataclass(frozen=True, slots=True)
class PostMetrics:
    likes: int = 0
    comments: int = 0
    shares: int = 0
    reposts: int = 0
    views: int = 0
    media_type: str | None = None
    avg_comment_length: float = 0.0


@dataclass(frozen=True, slots=True)
class QualityBreakdown:
    engagement_rate: float
    retention_score: float
    virality_score: float
    comment_quality: float
    overall_score: float
    multiplier: float


def multiplier_for(overall: float) -> float:
    for bound, multiplier in MULTIPLIER_BUCKETS:
        if overall < bound:
            return multiplier
    return MAX_MULTIPLIER


def score_content(metrics: PostMetrics) -> QualityBreakdown:
    """Score one post from its counters."""
    views = max(metrics.views, 1)

    engagement = (metrics.likes + metrics.comments + metrics.shares) / views
    retention = _RETENTION_VIDEO if metrics.media_type == "video" else _RETENTION_DEFAULT
    virality = (metrics.shares + metrics.reposts * _REPOST_WEIGHT) / views
    comment_quality = (
        min(metrics.avg_comment_length / _COMMENT_LENGTH_NORM, 1.0)
        if metrics.avg_comment_length > 0
        else 0.0
    )

    overall = (
        engagement * _W_ENGAGEMENT
        + retention * _W_RETENTION
        + virality * _W_VIRALITY
        + comment_quality * _W_COMMENT
    )

    return QualityBreakdown(
        engagement_rate=engagement,
        retention_score=retention,
        virality_score=virality,
        comment_quality=comment_quality,
        overall_score=overall,
        multiplier=multiplier_for(overall),
    )
