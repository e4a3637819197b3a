"""
viwo.api.routes.vcoin — Wallet & token-economy endpoints
==========================================================
"""

from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from viwo.api.deps import CurrentUserId, ServicesDep

router = APIRouter(prefix="/vcoin", tags=["vcoin"])


class SendRequest(BaseModel):
    recipient_id: int
    amount: Decimal
    note: str | None = Field(default=None, max_length=280)


@router.get("/balance")
def get_balance(user_id: CurrentUserId, services: ServicesDep):
    return services.ledger.get_balance(user_id).as_dict()


@router.get("/transactions")
def get_transactions(
    user_id: CurrentUserId,
    services: ServicesDep,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    return services.ledger.get_transactions(user_id, page=page, limit=limit)


@router.post("/send")
def send(body: SendRequest, user_id: CurrentUserId, services: ServicesDep):
    result = services.ledger.transfer(user_id, body.recipient_id, body.amount, note=body.note)
    return result.as_dict()


@router.get("/supply")
def get_supply(services: ServicesDep):
    return services.ledger.get_supply_stats()


@router.get("/buyback/history")
def get_buyback_history(
    services: ServicesDep,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    return services.buyback.get_buyback_history(page=page, limit=limit)


@router.get("/buyback/stats")
def get_buyback_stats(services: ServicesDep):
    return services.buyback.get_buyback_stats()


@router.get("/buyback/module-revenues")
def get_module_revenues(services: ServicesDep):
    return services.buyback.get_module_revenues()
