"""
viwo.api.routes.scores — Content quality and reputation lookups
================================================================

Both lookups serve the cached row and compute it on a miss.
"""

from __future__ import annotations

from fastapi import APIRouter

from viwo.api.deps import CurrentUserId, ServicesDep

router = APIRouter(tags=["scores"])


@router.get("/quality/{post_id}")
def get_quality(post_id: int, services: ServicesDep):
    return services.quality.get_score(post_id)


@router.get("/reputation/me")
def get_my_reputation(user_id: CurrentUserId, services: ServicesDep):
    return services.reputation.get_reputation(user_id)


@router.get("/reputation/{user_id}")
def get_reputation(user_id: int, services: ServicesDep):
    return services.reputation.get_reputation(user_id)
