"""
viwo.api.routes.admin — Operator endpoints (JWT‑protected)
===========================================================

Manual triggers for the periodic jobs, distribution lookups, ledger
reconciliation, bot-flag moderation and treasury buybacks.  Every route
requires a token with ``is_admin``.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from viwo.api.deps import ServicesDep, get_current_admin
from viwo.constants import day_bounds, previous_utc_day
from viwo.services.scheduler import run_job

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(get_current_admin)])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class DistributeRequest(BaseModel):
    day: date | None = None


class ResolveFlagRequest(BaseModel):
    resolution: str = Field(min_length=1, max_length=500)


class BuybackRequest(BaseModel):
    monthly_profit: Decimal
    dex_used: str | None = Field(default=None, max_length=60)


class ModuleRevenueRequest(BaseModel):
    module_name: str = Field(min_length=1, max_length=60)
    month: date
    revenue: Decimal
    costs: Decimal


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------
@router.post("/rewards/distribute")
def distribute(services: ServicesDep, body: DistributeRequest | None = None):
    result = services.distributor.run_daily_distribution(body.day if body else None)
    logger.info("Admin-triggered distribution for %s: success=%s", result.day, result.success)
    return result.as_dict()


@router.get("/rewards/distributions/{day}")
def get_distribution(day: date, services: ServicesDep):
    record = services.distributor.get_distribution(day)
    if record is None:
        raise HTTPException(404, f"No distribution recorded for {day.isoformat()}")
    return record


@router.get("/ledger/reconcile/{user_id}")
def reconcile(user_id: int, services: ServicesDep):
    report = services.ledger.reconcile(user_id)
    return {
        "userId": report.user_id,
        "ledgerSum": str(report.ledger_sum),
        "holdings": str(report.holdings),
        "netEarned": str(report.net_earned),
        "ok": report.ok,
    }


# ---------------------------------------------------------------------------
# Periodic jobs
# ---------------------------------------------------------------------------
@router.post("/staking/process-unlocks")
def process_unlocks(services: ServicesDep):
    return run_job("process_unlocks", services)


@router.post("/staking/accrue")
def accrue_stakes(services: ServicesDep):
    return run_job("accrue_stakes", services)


@router.post("/quality/refresh")
def refresh_quality(services: ServicesDep):
    return run_job("refresh_quality", services)


@router.post("/reputation/refresh")
def refresh_reputation(services: ServicesDep):
    return run_job("refresh_reputation", services)


# ---------------------------------------------------------------------------
# Anti-bot moderation
# ---------------------------------------------------------------------------
@router.post("/anti-bot/check/{user_id}")
def check_user(user_id: int, services: ServicesDep, day: date | None = None):
    """Run the bot heuristics over one UTC day (default: yesterday) and record flags."""
    day = day or previous_utc_day()
    start, end = day_bounds(day)
    result = services.bot_filter.apply(user_id, start, end)
    counts = services.aggregator.counts(user_id, start, end)
    return {
        "userId": user_id,
        "date": day.isoformat(),
        "penalty": result.penalty,
        "isLikelyBot": result.is_likely_bot,
        "flags": [flag.value for flag in result.flags],
        "activity": counts.as_dict(),
    }


@router.get("/anti-bot/flags/{user_id}")
def get_flags(user_id: int, services: ServicesDep):
    return services.bot_filter.get_user_flags(user_id)


@router.post("/anti-bot/flags/{flag_id}/resolve")
def resolve_flag(flag_id: int, body: ResolveFlagRequest, services: ServicesDep):
    return services.bot_filter.resolve_flag(flag_id, body.resolution)


@router.get("/anti-bot/stats")
def anti_bot_stats(services: ServicesDep):
    return services.bot_filter.get_system_stats()


# ---------------------------------------------------------------------------
# Treasury buyback
# ---------------------------------------------------------------------------
@router.post("/buyback/execute")
def execute_buyback(body: BuybackRequest, services: ServicesDep):
    return services.buyback.execute_buyback(body.monthly_profit, body.dex_used)


@router.post("/buyback/revenue")
def track_revenue(body: ModuleRevenueRequest, services: ServicesDep):
    return services.buyback.track_module_revenue(
        body.module_name, body.month, body.revenue, body.costs,
    )
