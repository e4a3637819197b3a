"""
viwo.engine.allocation — Proportional pool split under a per-user cap
======================================================================

Splits a fixed daily pool across users in proportion to their final
points.  Every share is quantized **down** to ledger precision so the
sum of shares never exceeds the pool.

Cap remainder policies:

* ``none`` — a capped user's excess stays in the pool, undistributed.
* ``redistribute`` — water-filling: the excess is re-split among the
  users still under the cap until nobody exceeds it or the pool is gone.
"""

from __future__ import annotations

from decimal import Decimal

from viwo.constants import ZERO, to_vcn

__all__ = ["allocate", "top_earner"]


def _split_uncapped(points: dict[int, int], pool: Decimal, cap: Decimal | None) -> dict[int, Decimal]:
    total = sum(points.values())
    rewards: dict[int, Decimal] = {}
    for user_id, user_points in points.items():
        share = Decimal(user_points) / Decimal(total) * pool
        if cap is not None:
            share = min(share, cap)
        rewards[user_id] = to_vcn(share)
    return rewards


def _water_fill(points: dict[int, int], pool: Decimal, cap: Decimal) -> dict[int, Decimal]:
    rewards: dict[int, Decimal] = {}
    remaining = pool
    open_users = dict(points)

    while open_users:
        total = Decimal(sum(open_users.values()))
        over_cap = [
            user_id
            for user_id, user_points in open_users.items()
            if Decimal(user_points) / total * remaining > cap
        ]
        if not over_cap:
            for user_id, user_points in open_users.items():
                rewards[user_id] = to_vcn(Decimal(user_points) / total * remaining)
            break
        for user_id in over_cap:
            rewards[user_id] = cap
            remaining -= cap
            del open_users[user_id]

    # Preserve the caller's ordering
    return {user_id: rewards[user_id] for user_id in points}


def allocate(
    points: dict[int, int],
    pool: Decimal,
    cap: Decimal | None = None,
    policy: str = "none",
) -> dict[int, Decimal]:
    """Return ``{user_id: reward}`` for every user in *points*.

    *points* must contain only qualifying users (positive points).
    """
    if not points:
        return {}
    if any(p <= 0 for p in points.values()):
        raise ValueError("allocate() needs strictly positive points")
    if pool <= ZERO:
        return {user_id: ZERO for user_id in points}

    if policy not in ("none", "redistribute"):
        raise ValueError(f"Unknown cap policy {policy!r}")
    if cap is not None:
        cap = to_vcn(cap)
    if policy == "redistribute" and cap is not None:
        return _water_fill(points, pool, cap)
    return _split_uncapped(points, pool, cap)


def top_earner(rewards: dict[int, Decimal]) -> tuple[int, Decimal] | None:
    """Highest reward; ties go to the earliest user in iteration order."""
    best: tuple[int, Decimal] | None = None
    for user_id, amount in rewards.items():
        if best is None or amount > best[1]:
            best = (user_id, amount)
    return best
