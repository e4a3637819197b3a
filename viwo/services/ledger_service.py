"""
viwo.services.ledger_service — Balances & Append-only Transaction Log
======================================================================

Leaf dependency of every other component.  All balance mutation goes
through this module and follows the same recipe inside one unit of work:

1. ``SELECT … FOR UPDATE`` the user's ``vcoin_balances`` row (created
   lazily under a SAVEPOINT if missing).
2. Validate against the locked values.
3. Append the ``vcoin_transactions`` row(s) and update the balance.

Reconciliation invariant kept by every mutation::

    Σ transactions.amount == available + staked == earned_total − spent_total

The ``lock_balance`` / ``apply_credit`` / ``apply_debit`` helpers take an
open :class:`Session` so other services (staking, the daily distributor)
can compose them into their own transactions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from viwo.constants import (
    SOURCE_TRANSACTION_FEE,
    SOURCE_USER_TRANSFER,
    ZERO,
    to_vcn,
    utcnow,
)
from viwo.database.engine import unit_of_work
from viwo.database.models import (
    StakeStatus,
    TransactionType,
    User,
    VCoinBalance,
    VCoinBurn,
    VCoinStake,
    VCoinTransaction,
)
from viwo.errors import (
    InsufficientBalanceError,
    InvalidAmountError,
    SelfTransferError,
    UserNotFoundError,
)
from viwo.services.notifier import EVENT_CREDIT_OCCURRED, LoggingNotifier, Notifier

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from viwo.config import RewardsConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BalanceView:
    user_id: int
    available: Decimal
    staked: Decimal
    earned_total: Decimal
    spent_total: Decimal
    last_reward_at: datetime | None = None

    @property
    def total(self) -> Decimal:
        return self.available + self.staked

    def as_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "available": str(self.available),
            "staked": str(self.staked),
            "total": str(self.total),
            "earnedTotal": str(self.earned_total),
            "spentTotal": str(self.spent_total),
        }


@dataclass(frozen=True, slots=True)
class CreditResult:
    transaction: VCoinTransaction
    duplicate: bool


@dataclass(frozen=True, slots=True)
class TransferResult:
    sent_transaction_id: int
    received_transaction_id: int
    amount_sent: Decimal
    amount_received: Decimal
    fee: Decimal
    burned: Decimal
    treasury: Decimal
    rewards_pool: Decimal

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "amountSent": str(self.amount_sent),
            "amountReceived": str(self.amount_received),
            "fee": str(self.fee),
            "feeBreakdown": {
                "burned": str(self.burned),
                "treasury": str(self.treasury),
                "rewards": str(self.rewards_pool),
            },
        }


@dataclass(frozen=True, slots=True)
class ReconciliationReport:
    user_id: int
    ledger_sum: Decimal
    holdings: Decimal
    net_earned: Decimal

    @property
    def ok(self) -> bool:
        return self.ledger_sum == self.holdings == self.net_earned


def _to_view(balance: VCoinBalance) -> BalanceView:
    return BalanceView(
        user_id=balance.user_id,
        available=to_vcn(balance.available),
        staked=to_vcn(balance.staked),
        earned_total=to_vcn(balance.earned_total),
        spent_total=to_vcn(balance.spent_total),
        last_reward_at=balance.last_reward_at,
    )


def tx_to_dict(tx: VCoinTransaction) -> dict[str, Any]:
    return {
        "id": tx.id,
        "amount": str(to_vcn(tx.amount)),
        "type": tx.type,
        "source": tx.source,
        "relatedEntityId": tx.related_entity_id,
        "relatedUserId": tx.related_user_id,
        "status": tx.status,
        "createdAt": tx.created_at.isoformat() if tx.created_at else None,
    }


def require_positive(amount: Decimal | int | str) -> Decimal:
    """Parse *amount* to ledger precision; reject zero, negative or NaN."""
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmountError(f"Invalid amount: {amount!r}") from exc
    if not value.is_finite():
        raise InvalidAmountError(f"Invalid amount: {amount!r}")
    value = to_vcn(value)
    if value <= ZERO:
        raise InvalidAmountError(f"Amount must be positive, got {amount!r}")
    return value


# ---------------------------------------------------------------------------
# LedgerStore
# ---------------------------------------------------------------------------
class LedgerStore:
    """Owns ``vcoin_balances``, ``vcoin_transactions`` and ``vcoin_burns``."""

    def __init__(
        self,
        engine: Engine,
        config: RewardsConfig,
        notifier: Notifier | None = None,
    ) -> None:
        self.engine = engine
        self.config = config
        self.notifier = notifier or LoggingNotifier()

    # -- session-level building blocks --------------------------------------

    def lock_balance(self, session: Session, user_id: int) -> VCoinBalance:
        """Return the user's balance row locked ``FOR UPDATE``.

        Creates an empty row on first touch.  A concurrent creator is
        absorbed by the SAVEPOINT and the row is re-read under lock.
        """
        stmt = select(VCoinBalance).where(VCoinBalance.user_id == user_id).with_for_update()
        balance = session.scalar(stmt)
        if balance is not None:
            return balance

        if session.get(User, user_id) is None:
            raise UserNotFoundError(user_id)

        try:
            with session.begin_nested():   # SAVEPOINT
                balance = VCoinBalance(
                    user_id=user_id,
                    available=ZERO,
                    staked=ZERO,
                    earned_total=ZERO,
                    spent_total=ZERO,
                )
                session.add(balance)
                session.flush()
        except IntegrityError:
            logger.debug("Balance row for user %d created concurrently", user_id)
            balance = session.scalar(stmt)
        return balance

    def apply_credit(
        self,
        session: Session,
        user_id: int,
        amount: Decimal,
        source: str,
        related_id: str | int | None = None,
        *,
        tx_type: str = TransactionType.EARN.value,
        idempotency_key: str | None = None,
        related_user_id: int | None = None,
        metadata: dict | None = None,
    ) -> CreditResult:
        """Credit *amount* inside *session*.

        When *idempotency_key* was already used, the existing transaction
        is returned with ``duplicate=True`` and the balance is untouched.
        """
        balance = self.lock_balance(session, user_id)

        if idempotency_key is not None:
            existing = session.scalar(
                select(VCoinTransaction).where(
                    VCoinTransaction.idempotency_key == idempotency_key
                )
            )
            if existing is not None:
                return CreditResult(transaction=existing, duplicate=True)

        now = utcnow()
        tx = VCoinTransaction(
            user_id=user_id,
            amount=amount,
            principal=ZERO,
            type=tx_type,
            source=source,
            related_entity_id=str(related_id) if related_id is not None else None,
            related_user_id=related_user_id,
            idempotency_key=idempotency_key,
            status="completed",
            metadata_=metadata,
            created_at=now,
        )
        session.add(tx)
        balance.available += amount
        balance.earned_total += amount
        if tx_type == TransactionType.EARN.value:
            balance.last_reward_at = now
        session.flush()
        return CreditResult(transaction=tx, duplicate=False)

    def apply_debit(
        self,
        session: Session,
        user_id: int,
        amount: Decimal,
        source: str,
        related_id: str | int | None = None,
        *,
        tx_type: str = TransactionType.SPEND.value,
        related_user_id: int | None = None,
        metadata: dict | None = None,
    ) -> VCoinTransaction:
        balance = self.lock_balance(session, user_id)
        if balance.available < amount:
            raise InsufficientBalanceError(user_id, to_vcn(balance.available), amount)

        tx = VCoinTransaction(
            user_id=user_id,
            amount=-amount,
            principal=ZERO,
            type=tx_type,
            source=source,
            related_entity_id=str(related_id) if related_id is not None else None,
            related_user_id=related_user_id,
            status="completed",
            metadata_=metadata,
            created_at=utcnow(),
        )
        session.add(tx)
        balance.available -= amount
        balance.spent_total += amount
        session.flush()
        return tx

    # -- public API ---------------------------------------------------------

    def credit(
        self,
        user_id: int,
        amount: Decimal | int | str,
        source: str,
        related_id: str | int | None = None,
        *,
        tx_type: str = TransactionType.EARN.value,
        idempotency_key: str | None = None,
    ) -> VCoinTransaction:
        """Add *amount* to the user's available balance."""
        return self.credit_once(
            user_id, amount, source, related_id,
            tx_type=tx_type, idempotency_key=idempotency_key,
        ).transaction

    def credit_once(
        self,
        user_id: int,
        amount: Decimal | int | str,
        source: str,
        related_id: str | int | None = None,
        *,
        tx_type: str = TransactionType.EARN.value,
        idempotency_key: str | None = None,
    ) -> CreditResult:
        """Like :meth:`credit` but reports whether the key was already used."""
        value = require_positive(amount)
        try:
            with unit_of_work(self.engine) as session:
                result = self.apply_credit(
                    session, user_id, value, source, related_id,
                    tx_type=tx_type, idempotency_key=idempotency_key,
                )
        except IntegrityError:
            # Lost a race on the idempotency key: the other writer's row wins.
            if idempotency_key is None:
                raise
            with unit_of_work(self.engine) as session:
                existing = session.scalar(
                    select(VCoinTransaction).where(
                        VCoinTransaction.idempotency_key == idempotency_key
                    )
                )
            if existing is None:
                raise
            return CreditResult(transaction=existing, duplicate=True)

        if not result.duplicate:
            self.notifier.emit(EVENT_CREDIT_OCCURRED, {
                "user_id": user_id,
                "amount": str(value),
                "source": source,
                "transaction_id": result.transaction.id,
            })
        return result

    def debit(
        self,
        user_id: int,
        amount: Decimal | int | str,
        source: str,
        related_id: str | int | None = None,
    ) -> VCoinTransaction:
        """Remove *amount* from available.

        Raises :class:`InsufficientBalanceError` rather than going negative.
        """
        value = require_positive(amount)
        with unit_of_work(self.engine) as session:
            return self.apply_debit(session, user_id, value, source, related_id)

    def transfer(
        self,
        from_id: int,
        to_id: int,
        amount: Decimal | int | str,
        fee_rate: Decimal | None = None,
        note: str | None = None,
    ) -> TransferResult:
        """Send *amount* from one user to another, minus the transaction fee.

        The fee is split into burn / treasury / rewards shares; the burn is
        recorded in ``vcoin_burns``.  Both balance rows are locked in
        ascending user id order.
        """
        if from_id == to_id:
            raise SelfTransferError("Cannot send VCoin to yourself")
        value = require_positive(amount)
        rate = self.config.transaction_fee_rate if fee_rate is None else Decimal(str(fee_rate))
        if rate < ZERO or rate >= Decimal(1):
            raise InvalidAmountError(f"fee_rate must be in [0, 1), got {rate}")

        fee = to_vcn(value * rate)
        burned = to_vcn(fee * self.config.burn_rate)
        treasury = to_vcn(fee * self.config.treasury_rate)
        rewards_pool = fee - burned - treasury
        received = value - fee

        with unit_of_work(self.engine) as session:
            if session.get(User, to_id) is None:
                raise UserNotFoundError(to_id)

            for uid in sorted((from_id, to_id)):
                self.lock_balance(session, uid)

            metadata = {
                "fee": str(fee),
                "burned": str(burned),
                "treasury": str(treasury),
                "rewards": str(rewards_pool),
            }
            if note:
                metadata["note"] = note

            sent = self.apply_debit(
                session, from_id, value, SOURCE_USER_TRANSFER,
                tx_type=TransactionType.SEND.value,
                related_user_id=to_id,
                metadata=metadata,
            )
            recv = self.apply_credit(
                session, to_id, received, SOURCE_USER_TRANSFER,
                tx_type=TransactionType.RECEIVE.value,
                related_user_id=from_id,
            ).transaction
            if burned > ZERO:
                session.add(VCoinBurn(
                    amount=burned,
                    source=SOURCE_TRANSACTION_FEE,
                    related_transaction_id=sent.id,
                    created_at=utcnow(),
                ))
            session.flush()
            sent_id, recv_id = sent.id, recv.id

        logger.info(
            "Transfer %s VCN from %d to %d (fee %s, burned %s)",
            value, from_id, to_id, fee, burned,
        )
        self.notifier.emit(EVENT_CREDIT_OCCURRED, {
            "user_id": to_id,
            "amount": str(received),
            "source": SOURCE_USER_TRANSFER,
            "transaction_id": recv_id,
            "from_user_id": from_id,
        })
        return TransferResult(
            sent_transaction_id=sent_id,
            received_transaction_id=recv_id,
            amount_sent=value,
            amount_received=received,
            fee=fee,
            burned=burned,
            treasury=treasury,
            rewards_pool=rewards_pool,
        )

    # -- reads --------------------------------------------------------------

    def get_balance(self, user_id: int) -> BalanceView:
        """Current balance, creating an empty row on first access."""
        with unit_of_work(self.engine) as session:
            balance = session.scalar(
                select(VCoinBalance).where(VCoinBalance.user_id == user_id)
            )
            if balance is None:
                balance = self.lock_balance(session, user_id)
            return _to_view(balance)

    def get_transactions(self, user_id: int, page: int = 1, limit: int = 20) -> dict[str, Any]:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        with unit_of_work(self.engine) as session:
            total = session.scalar(
                select(func.count()).select_from(VCoinTransaction).where(
                    VCoinTransaction.user_id == user_id
                )
            ) or 0
            rows = session.scalars(
                select(VCoinTransaction)
                .where(VCoinTransaction.user_id == user_id)
                .order_by(VCoinTransaction.created_at.desc(), VCoinTransaction.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).all()
            data = [tx_to_dict(tx) for tx in rows]

        return {
            "data": data,
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": (total + limit - 1) // limit,
        }

    def reconcile(self, user_id: int) -> ReconciliationReport:
        """Compare the transaction log with the balance row."""
        with unit_of_work(self.engine) as session:
            ledger_sum = session.scalar(
                select(func.coalesce(func.sum(VCoinTransaction.amount), 0)).where(
                    VCoinTransaction.user_id == user_id
                )
            )
            balance = session.scalar(
                select(VCoinBalance).where(VCoinBalance.user_id == user_id)
            )
            if balance is None:
                holdings = net = ZERO
            else:
                holdings = balance.available + balance.staked
                net = balance.earned_total - balance.spent_total

        report = ReconciliationReport(
            user_id=user_id,
            ledger_sum=to_vcn(Decimal(str(ledger_sum))),
            holdings=to_vcn(holdings),
            net_earned=to_vcn(net),
        )
        if not report.ok:
            logger.warning(
                "Ledger mismatch for user %d: ledger=%s holdings=%s net=%s",
                user_id, report.ledger_sum, report.holdings, report.net_earned,
            )
        return report

    def get_supply_stats(self) -> dict[str, Any]:
        with unit_of_work(self.engine) as session:
            burned = session.scalar(select(func.coalesce(func.sum(VCoinBurn.amount), 0)))
            staked = session.scalar(
                select(func.coalesce(func.sum(VCoinStake.amount), 0)).where(
                    VCoinStake.status.in_((StakeStatus.ACTIVE.value, StakeStatus.UNLOCKED.value))
                )
            )
            available_sum, staked_sum = session.execute(
                select(
                    func.coalesce(func.sum(VCoinBalance.available), 0),
                    func.coalesce(func.sum(VCoinBalance.staked), 0),
                )
            ).one()
            tx_count = session.scalar(select(func.count()).select_from(VCoinTransaction))

        circulating = Decimal(str(available_sum)) + Decimal(str(staked_sum))
        return {
            "totalSupply": str(self.config.vcn_total_supply),
            "totalBurned": str(to_vcn(Decimal(str(burned)))),
            "totalStaked": str(to_vcn(Decimal(str(staked)))),
            "totalCirculating": str(to_vcn(circulating)),
            "totalTransactions": tx_count or 0,
            "currentPrice": str(self.config.vcn_price_usd),
        }
