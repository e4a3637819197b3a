"""
viwo.errors — Error Taxonomy
==============================

Business-rule violations are raised as the typed errors below and always
reach the caller.  The distribution "skip" outcomes are converted into a
``DistributionResult`` by the distributor and never escape a run.
Infrastructure errors (SQLAlchemy ``OperationalError`` etc.) are not
wrapped; the batch isolates them per user.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal


class VCoinError(Exception):
    """Base class for every domain error raised by viwo."""


# ---------------------------------------------------------------------------
# Distribution outcomes (reported, not faults)
# ---------------------------------------------------------------------------
class DistributionSkipped(VCoinError):
    """A daily run finished without paying anything."""

    reason: str = "skipped"

    def __init__(self, day: date) -> None:
        super().__init__(f"{self.reason} ({day.isoformat()})")
        self.day = day


class AlreadyDistributedError(DistributionSkipped):
    reason = "already distributed"


class NoActiveUsersError(DistributionSkipped):
    reason = "no active users"


class NoQualifyingUsersError(DistributionSkipped):
    reason = "no qualifying users"


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------
class InsufficientBalanceError(VCoinError):
    def __init__(self, user_id: int, available: Decimal, requested: Decimal) -> None:
        super().__init__(
            f"Insufficient balance for user {user_id}: "
            f"available={available} requested={requested}"
        )
        self.user_id = user_id
        self.available = available
        self.requested = requested


class InvalidAmountError(VCoinError):
    """Amount is zero, negative, or otherwise unusable."""


class SelfTransferError(VCoinError):
    """Sender and recipient are the same user."""


class UserNotFoundError(VCoinError):
    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------
class ContentNotFoundError(VCoinError):
    def __init__(self, post_id: int) -> None:
        super().__init__(f"Post {post_id} not found")
        self.post_id = post_id


class FlagNotFoundError(VCoinError):
    def __init__(self, flag_id: int) -> None:
        super().__init__(f"Bot flag {flag_id} not found")
        self.flag_id = flag_id


# ---------------------------------------------------------------------------
# Staking
# ---------------------------------------------------------------------------
class InvalidStakeError(VCoinError):
    """Unknown feature type or lock period below the minimum."""


class StakeNotFoundError(VCoinError):
    def __init__(self, stake_id: int) -> None:
        super().__init__(f"Stake {stake_id} not found")
        self.stake_id = stake_id


class NotStakeOwnerError(VCoinError):
    def __init__(self, stake_id: int, user_id: int) -> None:
        super().__init__(f"Stake {stake_id} does not belong to user {user_id}")
        self.stake_id = stake_id
        self.user_id = user_id


class StakeNotActiveError(VCoinError):
    def __init__(self, stake_id: int, status: str) -> None:
        super().__init__(f"Stake {stake_id} is {status}")
        self.stake_id = stake_id
        self.status = status


class StakeStillLockedError(VCoinError):
    def __init__(self, stake_id: int, unlock_date: datetime) -> None:
        super().__init__(f"Stake {stake_id} is locked until {unlock_date.isoformat()}")
        self.stake_id = stake_id
        self.unlock_date = unlock_date
