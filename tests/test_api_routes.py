"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Integration tests for the wallet, rewards, staking, score and admin
routes using the FastAPI TestClient over the in-memory services.

These tests verify:
- Auth guards on user and admin endpoints
- Domain errors mapped to HTTP status codes
- Basic response structure of public endpoints
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from conftest import DAY_NOON, add_interactions, add_posts, add_user, make_user_token

from viwo.constants import SOURCE_DAILY_REWARD


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def wallet(services, db_engine):
    """Users 1 and 2; user 1 holds 1000 VCN."""
    add_user(db_engine, 1)
    add_user(db_engine, 2)
    services.ledger.credit(1, 1000, SOURCE_DAILY_REWARD)
    return services


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Auth guards
# ===========================================================================
class TestAdminAuthGuards:
    """Admin endpoints must return 401/403 for missing/invalid/non-admin tokens."""

    ADMIN_GET_ENDPOINTS = [
        "/api/admin/anti-bot/stats",
        "/api/admin/anti-bot/flags/1",
        "/api/admin/ledger/reconcile/1",
        "/api/admin/rewards/distributions/2026-03-14",
    ]

    ADMIN_POST_ENDPOINTS = [
        "/api/admin/rewards/distribute",
        "/api/admin/staking/process-unlocks",
        "/api/admin/staking/accrue",
        "/api/admin/quality/refresh",
        "/api/admin/reputation/refresh",
    ]

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_get_without_token_returns_401(self, client, endpoint):
        assert client.get(endpoint).status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_POST_ENDPOINTS)
    def test_post_without_token_returns_401(self, client, endpoint):
        assert client.post(endpoint).status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_non_admin_returns_403(self, client, endpoint):
        resp = client.get(endpoint, headers=_auth(make_user_token(1)))
        assert resp.status_code == 403

    def test_garbage_token_returns_401(self, client):
        resp = client.get("/api/admin/anti-bot/stats", headers=_auth("not-a-jwt"))
        assert resp.status_code == 401


class TestUserAuthGuards:
    @pytest.mark.parametrize(
        "endpoint",
        ["/api/vcoin/balance", "/api/vcoin/transactions", "/api/rewards/history",
         "/api/staking/my-stakes", "/api/reputation/me"],
    )
    def test_requires_token(self, client, endpoint):
        assert client.get(endpoint).status_code == 401

    def test_non_numeric_subject(self, client):
        from conftest import make_admin_token

        resp = client.get("/api/vcoin/balance", headers=_auth(make_admin_token(sub="abc")))
        assert resp.status_code == 401


# ===========================================================================
# Wallet
# ===========================================================================
class TestWallet:
    def test_balance(self, client, wallet):
        resp = client.get("/api/vcoin/balance", headers=_auth(make_user_token(1)))
        assert resp.status_code == 200
        body = resp.json()
        assert body["userId"] == 1
        assert Decimal(body["available"]) == Decimal("1000")

    def test_send(self, client, wallet):
        resp = client.post(
            "/api/vcoin/send",
            json={"recipient_id": 2, "amount": "100", "note": "lunch"},
            headers=_auth(make_user_token(1)),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert Decimal(body["amountReceived"]) == Decimal("95")
        assert Decimal(body["feeBreakdown"]["burned"]) == Decimal("1")

        history = client.get("/api/vcoin/transactions", headers=_auth(make_user_token(2))).json()
        assert history["total"] == 1
        assert history["data"][0]["type"] == "receive"

    def test_send_to_self_is_400(self, client, wallet):
        resp = client.post(
            "/api/vcoin/send",
            json={"recipient_id": 1, "amount": "1"},
            headers=_auth(make_user_token(1)),
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "SelfTransferError"

    def test_insufficient_is_400(self, client, wallet):
        resp = client.post(
            "/api/vcoin/send",
            json={"recipient_id": 1, "amount": "5"},
            headers=_auth(make_user_token(2)),
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "InsufficientBalanceError"

    def test_unknown_recipient_is_404(self, client, wallet):
        resp = client.post(
            "/api/vcoin/send",
            json={"recipient_id": 404, "amount": "5"},
            headers=_auth(make_user_token(1)),
        )
        assert resp.status_code == 404

    def test_supply_is_public(self, client, wallet):
        resp = client.get("/api/vcoin/supply")
        assert resp.status_code == 200
        assert resp.json()["totalTransactions"] == 1


# ===========================================================================
# Staking
# ===========================================================================
class TestStakingRoutes:
    STAKE = {"amount": "500", "feature_type": "IDENTITY_PREMIUM", "lock_days": 90}

    def test_stake_and_list(self, client, wallet):
        resp = client.post("/api/staking/stake", json=self.STAKE, headers=_auth(make_user_token(1)))
        assert resp.status_code == 200
        assert resp.json()["apy"] == "5.0"

        stakes = client.get("/api/staking/my-stakes", headers=_auth(make_user_token(1))).json()
        assert stakes["total"] == 1
        assert stakes["stakes"][0]["daysRemaining"] == 90

    def test_early_unstake_is_409(self, client, wallet):
        stake_id = client.post(
            "/api/staking/stake", json=self.STAKE, headers=_auth(make_user_token(1)),
        ).json()["stakeId"]
        resp = client.post(f"/api/staking/unstake/{stake_id}", headers=_auth(make_user_token(1)))
        assert resp.status_code == 409
        assert resp.json()["error"] == "StakeStillLockedError"

    def test_unstake_other_users_stake_is_403(self, client, wallet):
        stake_id = client.post(
            "/api/staking/stake", json=self.STAKE, headers=_auth(make_user_token(1)),
        ).json()["stakeId"]
        resp = client.post(f"/api/staking/unstake/{stake_id}", headers=_auth(make_user_token(2)))
        assert resp.status_code == 403

    def test_invalid_stake_is_400(self, client, wallet):
        body = dict(self.STAKE, lock_days=7)
        resp = client.post("/api/staking/stake", json=body, headers=_auth(make_user_token(1)))
        assert resp.status_code == 400
        assert resp.json()["error"] == "InvalidStakeError"

    def test_requirements(self, client):
        resp = client.get("/api/staking/requirements")
        assert resp.status_code == 200
        assert resp.json()["minLockDays"] == 30


# ===========================================================================
# Rewards
# ===========================================================================
class TestRewardRoutes:
    def test_action_reward_paid_once(self, client, wallet):
        body = {"action": "share", "related_id": "42"}
        first = client.post("/api/rewards/actions", json=body, headers=_auth(make_user_token(2)))
        second = client.post("/api/rewards/actions", json=body, headers=_auth(make_user_token(2)))
        assert first.json()["awarded"] is True
        assert Decimal(first.json()["transaction"]["amount"]) == Decimal("1")
        assert second.json() == {"awarded": False, "transaction": None}

    def test_unknown_action_is_400(self, client, wallet):
        resp = client.post(
            "/api/rewards/actions", json={"action": "follow"}, headers=_auth(make_user_token(2)),
        )
        assert resp.status_code == 400

    def test_leaderboard(self, client, wallet):
        resp = client.get("/api/rewards/leaderboard", params={"period": "weekly"})
        assert resp.status_code == 200
        board = resp.json()["leaderboard"]
        assert board[0]["user"]["id"] == 1

    def test_leaderboard_rejects_unknown_period(self, client):
        assert client.get("/api/rewards/leaderboard", params={"period": "yearly"}).status_code == 422


# ===========================================================================
# Scores
# ===========================================================================
class TestScoreRoutes:
    def test_quality_of_unknown_post_is_404(self, client):
        assert client.get("/api/quality/999").status_code == 404

    def test_quality(self, client, db_engine):
        add_user(db_engine, 1)
        (post_id,) = add_posts(db_engine, 1, 1)
        resp = client.get(f"/api/quality/{post_id}")
        assert resp.status_code == 200
        assert resp.json()["postId"] == post_id

    def test_my_reputation(self, client, db_engine):
        add_user(db_engine, 1)
        add_posts(db_engine, 1, 1)
        resp = client.get("/api/reputation/me", headers=_auth(make_user_token(1)))
        assert resp.status_code == 200
        assert resp.json()["overallReputation"] == pytest.approx(1.0)


# ===========================================================================
# Admin
# ===========================================================================
class TestAdminRoutes:
    def test_distribute_and_lookup(self, client, db_engine, admin_token):
        add_user(db_engine, 1)
        add_posts(db_engine, 1, 3, at=DAY_NOON)

        resp = client.post(
            "/api/admin/rewards/distribute", json={"day": "2026-03-14"}, headers=_auth(admin_token),
        )
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert resp.json()["recipients"] == 1

        again = client.post(
            "/api/admin/rewards/distribute", json={"day": "2026-03-14"}, headers=_auth(admin_token),
        )
        assert again.json() == {"success": False, "date": "2026-03-14", "reason": "already distributed"}

        record = client.get("/api/admin/rewards/distributions/2026-03-14", headers=_auth(admin_token))
        assert record.status_code == 200
        assert record.json()["qualifyingUsers"] == 1

    def test_missing_distribution_is_404(self, client, admin_token):
        resp = client.get("/api/admin/rewards/distributions/2026-03-13", headers=_auth(admin_token))
        assert resp.status_code == 404

    def test_reconcile(self, client, wallet, admin_token):
        resp = client.get("/api/admin/ledger/reconcile/1", headers=_auth(admin_token))
        assert resp.status_code == 200
        assert resp.json()["ok"] is True

    def test_jobs(self, client, admin_token):
        resp = client.post("/api/admin/staking/process-unlocks", headers=_auth(admin_token))
        assert resp.status_code == 200
        assert resp.json() == {"stakesUnlocked": 0}

    def test_bot_check_and_resolve(self, client, db_engine, admin_token):
        add_user(db_engine, 1)
        add_user(db_engine, 2)
        (post_id,) = add_posts(db_engine, 2, 1)
        add_interactions(db_engine, 1, post_id, "like", 600)

        resp = client.post(
            "/api/admin/anti-bot/check/1", params={"day": "2026-03-14"}, headers=_auth(admin_token),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["isLikelyBot"] is True
        assert "LIKE_ONLY_PATTERN" in body["flags"]
        assert body["activity"]["likes"] == 600

        flags = client.get("/api/admin/anti-bot/flags/1", headers=_auth(admin_token)).json()
        flag_id = flags["flags"][0]["id"]
        resolved = client.post(
            f"/api/admin/anti-bot/flags/{flag_id}/resolve",
            json={"resolution": "false positive"},
            headers=_auth(admin_token),
        )
        assert resolved.status_code == 200

        missing = client.post(
            "/api/admin/anti-bot/flags/9999/resolve",
            json={"resolution": "x"},
            headers=_auth(admin_token),
        )
        assert missing.status_code == 404


# ===========================================================================
# Treasury buyback
# ===========================================================================
class TestBuybackRoutes:
    def test_execute_requires_admin(self, client):
        body = {"monthly_profit": "1200"}
        assert client.post("/api/admin/buyback/execute", json=body).status_code == 401
        resp = client.post("/api/admin/buyback/execute", json=body, headers=_auth(make_user_token(1)))
        assert resp.status_code == 403

    def test_execute_then_public_reads(self, client, admin_token):
        resp = client.post(
            "/api/admin/buyback/execute", json={"monthly_profit": "1200"}, headers=_auth(admin_token),
        )
        assert resp.status_code == 200
        assert Decimal(resp.json()["vcnBurned"]) == Decimal("5000")

        history = client.get("/api/vcoin/buyback/history").json()
        assert history["total"] == 1
        assert client.get("/api/vcoin/buyback/stats").json()["totalBuybacks"] == 1
        assert Decimal(client.get("/api/vcoin/supply").json()["totalBurned"]) == Decimal("5000")

    def test_zero_profit_is_400(self, client, admin_token):
        resp = client.post(
            "/api/admin/buyback/execute", json={"monthly_profit": "0"}, headers=_auth(admin_token),
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "InvalidAmountError"

    def test_track_revenue(self, client, admin_token):
        body = {"module_name": "marketplace", "month": "2026-03-01", "revenue": "900", "costs": "300"}
        resp = client.post("/api/admin/buyback/revenue", json=body, headers=_auth(admin_token))
        assert resp.status_code == 200
        assert Decimal(resp.json()["profit"]) == Decimal("600")

        revenues = client.get("/api/vcoin/buyback/module-revenues").json()
        assert revenues[0]["module"] == "marketplace"
