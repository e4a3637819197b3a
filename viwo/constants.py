"""
viwo.constants — Shared Constants & Helpers
=============================================

Single source of truth for money quantization, UTC handling and the
transaction ``source`` labels written to the ledger.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
from decimal import ROUND_DOWN, Decimal

# ---------------------------------------------------------------------------
# Money
# ---------------------------------------------------------------------------
VCN_PLACES = 8
VCN_QUANTUM = Decimal(1).scaleb(-VCN_PLACES)  # 0.00000001
ZERO = Decimal(0)


def to_vcn(value: Decimal | int | str, rounding: str = ROUND_DOWN) -> Decimal:
    """Quantize *value* to ledger precision.

    Rounds **down** by default so a sum of quantized shares never exceeds
    the amount being split.
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(VCN_QUANTUM, rounding=rounding)


# ---------------------------------------------------------------------------
# Ledger source labels
# ---------------------------------------------------------------------------
SOURCE_DAILY_REWARD = "DAILY_REWARD"
SOURCE_USER_TRANSFER = "user_transfer"
SOURCE_TRANSACTION_FEE = "TRANSACTION_FEE"
SOURCE_UNSTAKE = "UNSTAKE"
SOURCE_STAKE_PREFIX = "STAKE_"
SOURCE_ACTION_PREFIX = "ACTION_"
SOURCE_BUYBACK = "BUYBACK"


def daily_reward_key(day: date, user_id: int) -> str:
    """Idempotency key of one user's credit in one day's distribution."""
    return f"daily-reward:{day.isoformat()}:{user_id}"


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------
def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from the database.

    SQLite drops tzinfo on round-trip; every timestamp we write is UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Half-open ``[start, end)`` UTC window covering calendar *day*."""
    start = datetime.combine(day, time.min, tzinfo=UTC)
    return start, start + timedelta(days=1)


def previous_utc_day(now: datetime | None = None) -> date:
    now = as_utc(now) if now is not None else utcnow()
    return (now - timedelta(days=1)).date()
