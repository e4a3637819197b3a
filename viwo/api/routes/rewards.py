"""
viwo.api.routes.rewards — Reward history, leaderboard and action rewards
=========================================================================
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Query
from pydantic import BaseModel

from viwo.api.deps import CurrentUserId, ServicesDep
from viwo.services.ledger_service import tx_to_dict

router = APIRouter(prefix="/rewards", tags=["rewards"])


class ActionRewardRequest(BaseModel):
    action: str
    related_id: str | None = None


@router.get("/history")
def get_history(
    user_id: CurrentUserId,
    services: ServicesDep,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    return services.distributor.get_reward_history(user_id, page=page, limit=limit)


@router.get("/leaderboard")
def get_leaderboard(
    services: ServicesDep,
    period: Literal["daily", "weekly", "monthly"] = "daily",
    limit: int = Query(10, ge=1, le=100),
):
    return services.distributor.get_leaderboard(period, limit)


@router.post("/actions")
def award_action(body: ActionRewardRequest, user_id: CurrentUserId, services: ServicesDep):
    """Immediate reward for a like / share / repost.  Paid once per target."""
    tx = services.distributor.award_action(user_id, body.action, body.related_id)
    return {"awarded": tx is not None, "transaction": tx_to_dict(tx) if tx else None}
