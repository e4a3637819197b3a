"""
viwo.api.routes.staking — Stake, unstake and stake listings
============================================================
"""

from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter
from pydantic import BaseModel, Field

from viwo.api.deps import CurrentUserId, ServicesDep

router = APIRouter(prefix="/staking", tags=["staking"])


class StakeRequest(BaseModel):
    amount: Decimal
    feature_type: str
    lock_days: int = Field(ge=1)


@router.post("/stake")
def stake(body: StakeRequest, user_id: CurrentUserId, services: ServicesDep):
    return services.staking.stake(user_id, body.amount, body.feature_type, body.lock_days)


@router.post("/unstake/{stake_id}")
def unstake(stake_id: int, user_id: CurrentUserId, services: ServicesDep):
    return services.staking.unstake(stake_id, user_id)


@router.get("/my-stakes")
def my_stakes(user_id: CurrentUserId, services: ServicesDep):
    stakes = services.staking.get_user_stakes(user_id)
    return {"stakes": stakes, "total": len(stakes)}


@router.get("/requirements")
def requirements(services: ServicesDep):
    return services.staking.get_requirements()
