"""
tests/test_ledger_service.py — Ledger Store Tests
==================================================

Balance mutation, idempotent credits, fee-split transfers, paging and
the reconciliation invariant, against the in-memory SQLite engine.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from conftest import add_user
from sqlalchemy import select
from sqlalchemy.orm import Session

from viwo.constants import SOURCE_DAILY_REWARD, SOURCE_TRANSACTION_FEE
from viwo.database.models import TransactionType, VCoinBurn, VCoinTransaction
from viwo.errors import (
    InsufficientBalanceError,
    InvalidAmountError,
    SelfTransferError,
    UserNotFoundError,
)
from viwo.services.ledger_service import require_positive
from viwo.services.notifier import EVENT_CREDIT_OCCURRED


@pytest.fixture
def funded(services, db_engine):
    """Users 1 and 2; user 1 holds 200 VCN."""
    add_user(db_engine, 1)
    add_user(db_engine, 2)
    services.ledger.credit(1, 200, SOURCE_DAILY_REWARD)
    return services.ledger


class TestRequirePositive:
    @pytest.mark.parametrize("amount", [0, -1, "abc", "NaN", "0.000000001"])
    def test_rejects(self, amount):
        with pytest.raises(InvalidAmountError):
            require_positive(amount)

    def test_quantizes_down(self):
        assert require_positive("1.123456789") == Decimal("1.12345678")


# ===========================================================================
# Credit / debit
# ===========================================================================
class TestCredit:
    def test_credit_updates_balance(self, services, db_engine):
        add_user(db_engine, 1)
        tx = services.ledger.credit(1, "12.5", SOURCE_DAILY_REWARD, related_id="2026-03-14")
        assert tx.amount == Decimal("12.5")
        assert tx.type == TransactionType.EARN.value

        balance = services.ledger.get_balance(1)
        assert balance.available == Decimal("12.5")
        assert balance.earned_total == Decimal("12.5")
        assert balance.total == Decimal("12.5")

    def test_credit_publishes_event(self, services, db_engine, notifier):
        add_user(db_engine, 1)
        tx = services.ledger.credit(1, 3, SOURCE_DAILY_REWARD)
        events = notifier.of_type(EVENT_CREDIT_OCCURRED)
        assert events == [{
            "user_id": 1,
            "amount": "3.00000000",
            "source": SOURCE_DAILY_REWARD,
            "transaction_id": tx.id,
        }]

    def test_credit_once_is_idempotent(self, services, db_engine, notifier):
        add_user(db_engine, 1)
        first = services.ledger.credit_once(1, 10, SOURCE_DAILY_REWARD, idempotency_key="k-1")
        second = services.ledger.credit_once(1, 10, SOURCE_DAILY_REWARD, idempotency_key="k-1")
        assert first.duplicate is False
        assert second.duplicate is True
        assert second.transaction.id == first.transaction.id
        assert services.ledger.get_balance(1).available == Decimal("10")
        assert len(notifier.of_type(EVENT_CREDIT_OCCURRED)) == 1

    def test_unknown_user(self, services):
        with pytest.raises(UserNotFoundError):
            services.ledger.credit(404, 1, SOURCE_DAILY_REWARD)

    def test_non_positive_amount(self, services, db_engine):
        add_user(db_engine, 1)
        with pytest.raises(InvalidAmountError):
            services.ledger.credit(1, 0, SOURCE_DAILY_REWARD)


class TestDebit:
    def test_debit(self, funded):
        tx = funded.debit(1, 50, "MARKETPLACE")
        assert tx.amount == Decimal("-50")
        balance = funded.get_balance(1)
        assert balance.available == Decimal("150")
        assert balance.spent_total == Decimal("50")

    def test_insufficient_balance_leaves_balance_untouched(self, funded):
        with pytest.raises(InsufficientBalanceError) as exc_info:
            funded.debit(1, 201, "MARKETPLACE")
        assert exc_info.value.available == Decimal("200")
        assert funded.get_balance(1).available == Decimal("200")

    def test_empty_balance(self, funded):
        with pytest.raises(InsufficientBalanceError):
            funded.debit(2, 1, "MARKETPLACE")


# ===========================================================================
# Transfers
# ===========================================================================
class TestTransfer:
    def test_fee_split(self, funded, db_engine):
        result = funded.transfer(1, 2, 100, note="thanks")
        assert result.amount_sent == Decimal("100")
        assert result.amount_received == Decimal("95")
        assert result.fee == Decimal("5")
        assert result.burned == Decimal("1")
        assert result.treasury == Decimal("2.5")
        assert result.rewards_pool == Decimal("1.5")
        assert result.burned + result.treasury + result.rewards_pool == result.fee

        assert funded.get_balance(1).available == Decimal("100")
        assert funded.get_balance(2).available == Decimal("95")

        with Session(db_engine) as session:
            burn = session.scalar(select(VCoinBurn))
            sent = session.get(VCoinTransaction, result.sent_transaction_id)
        assert burn.source == SOURCE_TRANSACTION_FEE
        assert burn.related_transaction_id == result.sent_transaction_id
        assert sent.type == TransactionType.SEND.value
        assert sent.related_user_id == 2
        assert sent.metadata_["note"] == "thanks"

    def test_as_dict(self, funded):
        body = funded.transfer(1, 2, 100).as_dict()
        assert body["success"] is True
        assert Decimal(body["feeBreakdown"]["burned"]) == Decimal("1")

    def test_zero_fee_rate(self, funded):
        result = funded.transfer(1, 2, 10, fee_rate=Decimal(0))
        assert result.amount_received == Decimal("10")
        assert result.burned == Decimal(0)

    def test_self_transfer(self, funded):
        with pytest.raises(SelfTransferError):
            funded.transfer(1, 1, 10)

    def test_unknown_recipient(self, funded):
        with pytest.raises(UserNotFoundError):
            funded.transfer(1, 404, 10)
        assert funded.get_balance(1).available == Decimal("200")

    def test_insufficient(self, funded):
        with pytest.raises(InsufficientBalanceError):
            funded.transfer(2, 1, 10)

    def test_recipient_notified(self, funded, notifier):
        result = funded.transfer(1, 2, 100)
        last = notifier.of_type(EVENT_CREDIT_OCCURRED)[-1]
        assert last["user_id"] == 2
        assert last["from_user_id"] == 1
        assert last["transaction_id"] == result.received_transaction_id


# ===========================================================================
# Reads
# ===========================================================================
class TestReads:
    def test_get_transactions_paging(self, services, db_engine):
        add_user(db_engine, 1)
        for amount in range(1, 6):
            services.ledger.credit(1, amount, SOURCE_DAILY_REWARD)

        page = services.ledger.get_transactions(1, page=2, limit=2)
        assert page["total"] == 5
        assert page["totalPages"] == 3
        assert page["page"] == 2
        assert len(page["data"]) == 2

        everything = services.ledger.get_transactions(1, limit=500)
        assert everything["limit"] == 100
        ids = [row["id"] for row in everything["data"]]
        assert ids == sorted(ids, reverse=True)

    def test_get_balance_creates_empty_row(self, services, db_engine):
        add_user(db_engine, 1)
        balance = services.ledger.get_balance(1)
        assert balance.available == Decimal(0)
        assert balance.as_dict()["userId"] == 1

    def test_reconcile_after_transfer(self, funded):
        funded.transfer(1, 2, 100)
        for user_id in (1, 2):
            report = funded.reconcile(user_id)
            assert report.ok, report

    def test_reconcile_without_balance_row(self, services):
        assert services.ledger.reconcile(7).ok

    def test_supply_stats(self, funded):
        funded.transfer(1, 2, 100)
        stats = funded.get_supply_stats()
        assert Decimal(stats["totalBurned"]) == Decimal("1")
        assert Decimal(stats["totalStaked"]) == Decimal(0)
        assert Decimal(stats["totalCirculating"]) == Decimal("195")
        assert stats["totalTransactions"] == 3
        assert stats["totalSupply"] == "1000000000"
