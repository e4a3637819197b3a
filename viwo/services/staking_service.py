"""
viwo.services.staking_service — Time-locked Stakes
===================================================

Stake lifecycle::

    ACTIVE ──(unlock_date passes, hourly sweep)──► UNLOCKED
      │                                               │
      └──────────(unstake after unlock_date)──────────┴──► WITHDRAWN

Staking moves principal from ``available`` to ``staked`` on the user's
balance row.  The move is internal, so the stake transaction carries
``amount=0`` and ``principal=p``.  Unstaking returns principal plus the
settled yield; only the yield is new money (``amount=rewards``).
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from viwo.constants import (
    SOURCE_STAKE_PREFIX,
    SOURCE_UNSTAKE,
    ZERO,
    as_utc,
    to_vcn,
    utcnow,
)
from viwo.database.engine import unit_of_work
from viwo.database.models import (
    StakeFeature,
    StakeStatus,
    TransactionType,
    VCoinStake,
    VCoinTransaction,
)
from viwo.errors import (
    InsufficientBalanceError,
    InvalidStakeError,
    NotStakeOwnerError,
    StakeNotActiveError,
    StakeNotFoundError,
    StakeStillLockedError,
)
from viwo.services.ledger_service import require_positive
from viwo.services.notifier import EVENT_CREDIT_OCCURRED

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from viwo.config import RewardsConfig
    from viwo.services.ledger_service import LedgerStore

logger = logging.getLogger(__name__)

_DAYS_PER_YEAR = Decimal(365)
_SECONDS_PER_DAY = Decimal(86_400)


def accrued_yield(
    amount: Decimal,
    apy: Decimal,
    start: datetime,
    lock_days: int,
    now: datetime,
) -> Decimal:
    """Simple interest for the elapsed part of the lock, capped at the lock."""
    elapsed_seconds = max((as_utc(now) - as_utc(start)).total_seconds(), 0.0)
    elapsed_days = min(Decimal(str(elapsed_seconds)) / _SECONDS_PER_DAY, Decimal(lock_days))
    return to_vcn(amount * apy / Decimal(100) * elapsed_days / _DAYS_PER_YEAR)


def _stake_to_dict(stake: VCoinStake, now: datetime) -> dict[str, Any]:
    unlock = as_utc(stake.unlock_date)
    if stake.status == StakeStatus.ACTIVE.value:
        days_remaining = max(0, math.ceil((unlock - now).total_seconds() / 86_400))
    else:
        days_remaining = 0
    return {
        "id": stake.id,
        "amount": str(to_vcn(stake.amount)),
        "featureType": stake.feature_type,
        "lockPeriodDays": stake.lock_period_days,
        "startDate": as_utc(stake.start_date).isoformat(),
        "unlockDate": unlock.isoformat(),
        "status": stake.status,
        "apy": str(stake.apy),
        "rewardsEarned": str(to_vcn(stake.rewards_earned)),
        "daysRemaining": days_remaining,
    }


class StakingService:
    def __init__(self, engine: Engine, config: RewardsConfig, ledger: LedgerStore) -> None:
        self.engine = engine
        self.config = config
        self.ledger = ledger

    # -- mutations ----------------------------------------------------------

    def stake(
        self,
        user_id: int,
        amount: Decimal | int | str,
        feature_type: str,
        lock_days: int,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Lock *amount* of the user's available balance for *lock_days*."""
        value = require_positive(amount)
        if feature_type not in StakeFeature.__members__:
            raise InvalidStakeError(f"Unknown feature type {feature_type!r}")
        if lock_days < self.config.min_lock_days:
            raise InvalidStakeError(
                f"Lock period must be at least {self.config.min_lock_days} days, got {lock_days}"
            )

        now = now or utcnow()
        apy = self.config.apy_for(lock_days)
        unlock = now + timedelta(days=lock_days)

        with unit_of_work(self.engine) as session:
            balance = self.ledger.lock_balance(session, user_id)
            if balance.available < value:
                raise InsufficientBalanceError(user_id, to_vcn(balance.available), value)

            stake = VCoinStake(
                user_id=user_id,
                amount=value,
                feature_type=feature_type,
                lock_period_days=lock_days,
                start_date=now,
                unlock_date=unlock,
                status=StakeStatus.ACTIVE.value,
                apy=apy,
                rewards_earned=ZERO,
            )
            session.add(stake)
            session.flush()

            balance.available -= value
            balance.staked += value
            session.add(VCoinTransaction(
                user_id=user_id,
                amount=ZERO,
                principal=value,
                type=TransactionType.STAKE.value,
                source=f"{SOURCE_STAKE_PREFIX}{feature_type}",
                related_entity_id=str(stake.id),
                status="completed",
                created_at=now,
            ))
            stake_id = stake.id

        logger.info(
            "User %d staked %s VCN for %d days at %s%% APY (stake %d)",
            user_id, value, lock_days, apy, stake_id,
        )
        return {
            "stakeId": stake_id,
            "amount": str(value),
            "featureType": feature_type,
            "lockPeriodDays": lock_days,
            "unlockDate": unlock.isoformat(),
            "apy": str(apy),
            "status": StakeStatus.ACTIVE.value,
        }

    def unstake(self, stake_id: int, user_id: int, now: datetime | None = None) -> dict[str, Any]:
        """Withdraw an unlocked stake: principal plus settled yield back to available."""
        now = now or utcnow()
        with unit_of_work(self.engine) as session:
            stake = session.scalar(
                select(VCoinStake).where(VCoinStake.id == stake_id).with_for_update()
            )
            if stake is None:
                raise StakeNotFoundError(stake_id)
            if stake.user_id != user_id:
                raise NotStakeOwnerError(stake_id, user_id)
            if stake.status == StakeStatus.WITHDRAWN.value:
                raise StakeNotActiveError(stake_id, stake.status)
            unlock = as_utc(stake.unlock_date)
            if now < unlock:
                raise StakeStillLockedError(stake_id, unlock)

            principal = to_vcn(stake.amount)
            rewards = accrued_yield(
                principal, Decimal(str(stake.apy)), stake.start_date, stake.lock_period_days, now
            )
            stake.rewards_earned = rewards
            stake.status = StakeStatus.WITHDRAWN.value
            stake.withdrawn_at = now

            balance = self.ledger.lock_balance(session, user_id)
            balance.staked -= principal
            balance.available += principal + rewards
            balance.earned_total += rewards
            tx = VCoinTransaction(
                user_id=user_id,
                amount=rewards,
                principal=principal,
                type=TransactionType.UNSTAKE.value,
                source=SOURCE_UNSTAKE,
                related_entity_id=str(stake_id),
                status="completed",
                created_at=now,
            )
            session.add(tx)
            session.flush()
            tx_id = tx.id

        logger.info("Stake %d withdrawn by user %d: %s + %s VCN", stake_id, user_id, principal, rewards)
        if rewards > ZERO:
            self.ledger.notifier.emit(EVENT_CREDIT_OCCURRED, {
                "user_id": user_id,
                "amount": str(rewards),
                "source": SOURCE_UNSTAKE,
                "transaction_id": tx_id,
            })
        return {
            "message": "Successfully unstaked",
            "principalReturned": str(principal),
            "rewardsEarned": str(rewards),
            "totalReturned": str(principal + rewards),
        }

    # -- sweeps -------------------------------------------------------------

    def process_unlocks(self, now: datetime | None = None) -> dict[str, int]:
        """Flip due ACTIVE stakes to UNLOCKED.  Funds stay staked."""
        now = now or utcnow()
        with unit_of_work(self.engine) as session:
            result = session.execute(
                update(VCoinStake)
                .where(
                    VCoinStake.status == StakeStatus.ACTIVE.value,
                    VCoinStake.unlock_date <= now,
                )
                .values(status=StakeStatus.UNLOCKED.value)
            )
            unlocked = result.rowcount or 0
        if unlocked:
            logger.info("Unlocked %d stakes", unlocked)
        return {"stakesUnlocked": unlocked}

    def accrue_rewards(self, now: datetime | None = None) -> dict[str, int]:
        """Refresh ``rewards_earned`` on every stake not yet withdrawn."""
        now = now or utcnow()
        with unit_of_work(self.engine) as session:
            stakes = session.scalars(
                select(VCoinStake).where(
                    VCoinStake.status.in_(
                        [StakeStatus.ACTIVE.value, StakeStatus.UNLOCKED.value]
                    )
                )
            ).all()
            for stake in stakes:
                stake.rewards_earned = accrued_yield(
                    to_vcn(stake.amount),
                    Decimal(str(stake.apy)),
                    stake.start_date,
                    stake.lock_period_days,
                    now,
                )
        logger.info("Accrued yield on %d stakes", len(stakes))
        return {"stakesAccrued": len(stakes)}

    # -- reads --------------------------------------------------------------

    def get_user_stakes(self, user_id: int, now: datetime | None = None) -> list[dict[str, Any]]:
        now = now or utcnow()
        with Session(self.engine) as session:
            stakes = session.scalars(
                select(VCoinStake)
                .where(VCoinStake.user_id == user_id)
                .order_by(VCoinStake.start_date.desc(), VCoinStake.id.desc())
            ).all()
            return [_stake_to_dict(s, now) for s in stakes]

    def get_requirements(self) -> dict[str, Any]:
        return {
            "requirements": {k: str(v) for k, v in self.config.stake_requirements.items()},
            "apyRates": {f"{days}_DAYS": str(apy) for days, apy in sorted(self.config.apy_table)},
            "minLockDays": self.config.min_lock_days,
        }
