"""
viwo.config — YAML Configuration Loader
=========================================

Every tuning knob of the reward pipeline (emission schedule, caps, point
weights, bot-rule factors, multiplier tables, fee split, APY table, buyback
split) lives on one immutable :class:`RewardsConfig`.  It is built once at
process start and handed to each component's constructor; nothing reads tuning
values from globals.

Secrets and infrastructure (``DATABASE_URL``, ``JWT_SECRET``) stay in the
environment (``.env``), not in this file.

Usage::

    from viwo.config import load_config

    cfg = load_config()               # ./config.yaml, or defaults if absent
    print(cfg.daily_pool)             # Decimal('155556')
    print(cfg.per_user_cap)           # Decimal('1666.66666666')
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any

import yaml

from viwo.constants import to_vcn

# ---------------------------------------------------------------------------
# Default tables (single source of truth)
# ---------------------------------------------------------------------------
DEFAULT_ACTIVITY_POINTS: dict[str, int] = {
    "TEXT_POST": 10,
    "IMAGE_POST": 20,
    "VIDEO_POST": 50,
    "LIKE": 1,
    "COMMENT": 8,
    "SHARE": 10,
    "REPOST": 12,
    "FOLLOW": 2,
}

DEFAULT_DAILY_CAPS: dict[str, int] = {
    "posts": 50,
    "likes": 500,
    "comments": 200,
    "shares": 100,
    "follows": 100,
}

DEFAULT_TIER_MULTIPLIERS: dict[str, float] = {
    "BASIC": 1.0,
    "VERIFIED": 1.4,
    "PREMIUM": 1.8,
    "ENTERPRISE": 2.5,
}

# (min lock days, APY percent), longest lock first
DEFAULT_APY_TABLE: tuple[tuple[int, Decimal], ...] = (
    (365, Decimal("12.0")),
    (180, Decimal("8.0")),
    (90, Decimal("5.0")),
    (30, Decimal("3.0")),
)

DEFAULT_STAKE_REQUIREMENTS: dict[str, Decimal] = {
    "IDENTITY_PREMIUM": Decimal("500"),
    "CONTENT_CREATOR_PRO": Decimal("1000"),
    "DAO_FOUNDER": Decimal("2000"),
    "QUALITY_CURATOR": Decimal("250"),
    "TRUSTED_MODERATOR": Decimal("500"),
}

DEFAULT_ACTION_REWARDS: dict[str, Decimal] = {
    "LIKE": Decimal("0.5"),
    "SHARE": Decimal("1.0"),
    "REPOST": Decimal("1.2"),
}

CAP_POLICIES = ("none", "redistribute")


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RewardsConfig:
    """Immutable reward-pipeline configuration.

    Defaults reproduce the production token economy; a ``config.yaml``
    only needs the keys it wants to change.  Mapping-valued keys are
    merged over the defaults, so overriding one weight keeps the rest.
    """

    # Emission & pool
    monthly_emission: Decimal = Decimal("5833333")
    daily_allocation: Decimal = Decimal("0.8")
    vcn_price_usd: Decimal = Decimal("0.03")
    max_daily_reward_usd: Decimal = Decimal("50")
    vcn_total_supply: Decimal = Decimal("1000000000")
    min_points: int = 10
    cap_policy: str = "none"

    # Points
    activity_points: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_ACTIVITY_POINTS))
    points_lookback_days: int = 1
    quality_lookback_days: int = 30
    quality_sample_size: int = 20

    # Bot heuristics
    daily_caps: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_DAILY_CAPS))
    cap_penalty: float = 0.5
    velocity_threshold: float = 100.0
    velocity_penalty: float = 0.3
    diversity_min_types: int = 3
    diversity_min_actions: int = 20
    diversity_penalty: float = 0.5
    like_only_threshold: int = 100
    like_only_penalty: float = 0.3

    # Reputation
    tier_multipliers: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_TIER_MULTIPLIERS))
    reputation_sample_size: int = 20

    # Ledger fees
    transaction_fee_rate: Decimal = Decimal("0.05")
    burn_rate: Decimal = Decimal("0.2")
    treasury_rate: Decimal = Decimal("0.5")
    rewards_rate: Decimal = Decimal("0.3")

    # Immediate per-action rewards
    action_rewards: dict[str, Decimal] = field(default_factory=lambda: dict(DEFAULT_ACTION_REWARDS))

    # Staking
    apy_table: tuple[tuple[int, Decimal], ...] = DEFAULT_APY_TABLE
    min_lock_days: int = 30
    stake_requirements: dict[str, Decimal] = field(
        default_factory=lambda: dict(DEFAULT_STAKE_REQUIREMENTS)
    )

    # Treasury buyback
    buyback_allocation: Decimal = Decimal("0.25")
    buyback_burn_percent: Decimal = Decimal("0.5")
    buyback_dex: str = "UniswapV3"

    # Batch resilience
    user_retry_attempts: int = 3
    retry_backoff_seconds: float = 0.5

    def __post_init__(self) -> None:
        if self.cap_policy not in CAP_POLICIES:
            raise ValueError(
                f"cap_policy must be one of {CAP_POLICIES}, got {self.cap_policy!r}"
            )
        split = self.burn_rate + self.treasury_rate + self.rewards_rate
        if split != Decimal(1):
            raise ValueError(f"burn/treasury/rewards rates must sum to 1, got {split}")
        if self.vcn_price_usd <= 0:
            raise ValueError("vcn_price_usd must be positive")
        if self.user_retry_attempts < 1:
            raise ValueError("user_retry_attempts must be >= 1")
        for name in ("buyback_allocation", "buyback_burn_percent"):
            value = getattr(self, name)
            if not Decimal(0) <= value <= Decimal(1):
                raise ValueError(f"{name} must be between 0 and 1, got {value}")

    @property
    def daily_pool(self) -> Decimal:
        """``round(monthly_emission × daily_allocation / 30)`` in whole VCN."""
        raw = self.monthly_emission * self.daily_allocation / Decimal(30)
        return raw.quantize(Decimal(1), rounding=ROUND_HALF_UP)

    @property
    def per_user_cap(self) -> Decimal:
        """Maximum VCN one user can receive from a single daily run."""
        return to_vcn(self.max_daily_reward_usd / self.vcn_price_usd)

    def apy_for(self, lock_days: int) -> Decimal:
        for min_days, apy in self.apy_table:
            if lock_days >= min_days:
                return apy
        return Decimal(0)


# ---------------------------------------------------------------------------
# YAML coercion
# ---------------------------------------------------------------------------
def _coerce(name: str, default: Any, raw: Any) -> Any:
    """Convert a YAML value to the type of its default."""
    if isinstance(default, bool):
        return bool(raw)
    if isinstance(default, Decimal):
        return Decimal(str(raw))
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, str):
        return str(raw)
    if isinstance(default, dict):
        if not isinstance(raw, dict):
            raise TypeError(f"{name} must be a mapping")
        sample = next(iter(default.values()))
        merged = dict(default)
        for key, value in raw.items():
            merged[str(key)] = _coerce(f"{name}.{key}", default.get(str(key), sample), value)
        return merged
    if isinstance(default, tuple):
        # apy_table is written in YAML as {days: apy_percent}
        if not isinstance(raw, dict):
            raise TypeError(f"{name} must be a mapping of days to percent")
        return tuple(
            sorted(((int(d), Decimal(str(p))) for d, p in raw.items()), reverse=True)
        )
    return raw


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> RewardsConfig:
    """Read *path* and return a :class:`RewardsConfig` instance.

    Parameters
    ----------
    path:
        YAML file to read.  When omitted, ``$VIWO_CONFIG`` is tried, then
        ``config.yaml`` in the working directory; if neither exists the
        built-in defaults are returned.

    Raises
    ------
    FileNotFoundError
        If an explicitly requested file doesn't exist.
    KeyError
        If the YAML file contains an unknown key.
    """
    explicit = path is not None or bool(os.getenv("VIWO_CONFIG"))
    config_path = Path(path or os.getenv("VIWO_CONFIG") or "config.yaml")

    if not config_path.exists():
        if explicit:
            raise FileNotFoundError(
                f"Configuration file not found: {config_path.resolve()}\n"
                "Hint: copy config.yaml.example → config.yaml and edit it."
            )
        return RewardsConfig()

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = RewardsConfig()
    known = {f.name for f in fields(RewardsConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise KeyError(f"Unknown configuration keys in {config_path}: {unknown}")

    values = {
        key: _coerce(key, getattr(defaults, key), value)
        for key, value in raw.items()
    }
    return RewardsConfig(**values)
