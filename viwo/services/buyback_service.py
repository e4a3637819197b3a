"""
viwo.services.buyback_service — Treasury Buybacks & Module Revenue
===================================================================

Monthly profit funds a VCN buyback::

    budget  = profit × buyback_allocation          (USD)
    bought  = budget / vcn_price_usd               (VCN)
    burned  = bought × buyback_burn_percent        → vcoin_burns (source BUYBACK)
    locked  = bought − burned

The buyback row and its burn row are written in one transaction.  The
DEX leg is simulated at the configured price; nothing is traded here.

Module revenue is tracked per ``(module, month)`` and upserted, so
re-reporting a month replaces its figures.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from viwo.constants import SOURCE_BUYBACK, ZERO, as_utc, to_vcn, utcnow
from viwo.database.engine import run_in_transaction, unit_of_work
from viwo.database.models import ModuleRevenue, VCoinBuyback, VCoinBurn
from viwo.errors import InvalidAmountError
from viwo.services.ledger_service import require_positive

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from viwo.config import RewardsConfig

logger = logging.getLogger(__name__)


def _usd(value: Decimal | int | str, name: str) -> Decimal:
    """Parse a non-negative USD figure to ledger precision."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmountError(f"Invalid {name}: {value!r}") from exc
    if not amount.is_finite() or amount < ZERO:
        raise InvalidAmountError(f"{name} must be a non-negative number, got {value!r}")
    return to_vcn(amount)


def buyback_to_dict(row: VCoinBuyback) -> dict[str, Any]:
    return {
        "id": row.id,
        "usdSpent": str(to_vcn(row.usd_spent)),
        "vcnBought": str(to_vcn(row.vcn_bought)),
        "vcnBurned": str(to_vcn(row.vcn_burned)),
        "vcnLocked": str(to_vcn(row.vcn_locked)),
        "avgPrice": str(to_vcn(row.avg_price)),
        "dexUsed": row.dex_used,
        "executedAt": as_utc(row.executed_at).isoformat() if row.executed_at else None,
    }


class BuybackService:
    def __init__(self, engine: Engine, config: RewardsConfig) -> None:
        self.engine = engine
        self.config = config

    # ------------------------------------------------------------------
    # Buyback
    # ------------------------------------------------------------------
    def execute_buyback(
        self,
        monthly_profit: Decimal | int | str,
        dex_used: str | None = None,
    ) -> dict[str, Any]:
        """Spend the buyback share of *monthly_profit* and burn part of it.

        Raises :class:`InvalidAmountError` when the profit is not positive
        or the configured allocation leaves nothing to spend.
        """
        profit = require_positive(monthly_profit)
        price = self.config.vcn_price_usd
        budget = to_vcn(profit * self.config.buyback_allocation)
        if budget <= ZERO:
            raise InvalidAmountError(f"Buyback budget is zero for profit {profit}")

        bought = to_vcn(budget / price)
        burned = to_vcn(bought * self.config.buyback_burn_percent)
        locked = bought - burned
        dex = dex_used or self.config.buyback_dex
        now = utcnow()

        def record_buyback(session: Session) -> VCoinBuyback:
            row = VCoinBuyback(
                usd_spent=budget,
                vcn_bought=bought,
                vcn_burned=burned,
                vcn_locked=locked,
                avg_price=price,
                dex_used=dex,
                executed_at=now,
            )
            session.add(row)
            session.flush()
            return row

        def record_burn(session: Session) -> VCoinBurn:
            burn = VCoinBurn(amount=burned, source=SOURCE_BUYBACK, created_at=now)
            session.add(burn)
            session.flush()
            return burn

        operations = [record_buyback]
        if burned > ZERO:
            operations.append(record_burn)
        buyback = run_in_transaction(self.engine, *operations)[0]

        logger.info(
            "Buyback %d via %s: spent $%s, bought %s VCN (burned %s, locked %s)",
            buyback.id, dex, budget, bought, burned, locked,
        )
        return {
            "buybackId": buyback.id,
            "budgetUsed": str(budget),
            "vcnBought": str(bought),
            "vcnBurned": str(burned),
            "vcnLocked": str(locked),
            "avgPrice": str(price),
            "dexUsed": dex,
        }

    def get_buyback_history(self, page: int = 1, limit: int = 10) -> dict[str, Any]:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        with Session(self.engine) as session:
            total = session.scalar(select(func.count()).select_from(VCoinBuyback)) or 0
            rows = session.scalars(
                select(VCoinBuyback)
                .order_by(VCoinBuyback.executed_at.desc(), VCoinBuyback.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).all()
            data = [buyback_to_dict(row) for row in rows]

        return {
            "data": data,
            "total": total,
            "page": page,
            "limit": limit,
            "totalPages": (total + limit - 1) // limit,
        }

    def get_buyback_stats(self) -> dict[str, Any]:
        with Session(self.engine) as session:
            count, spent, bought, burned, locked = session.execute(
                select(
                    func.count(VCoinBuyback.id),
                    func.coalesce(func.sum(VCoinBuyback.usd_spent), 0),
                    func.coalesce(func.sum(VCoinBuyback.vcn_bought), 0),
                    func.coalesce(func.sum(VCoinBuyback.vcn_burned), 0),
                    func.coalesce(func.sum(VCoinBuyback.vcn_locked), 0),
                )
            ).one()

        return {
            "totalBuybacks": count or 0,
            "totalUsdSpent": str(to_vcn(Decimal(str(spent)))),
            "totalVcnBought": str(to_vcn(Decimal(str(bought)))),
            "totalVcnBurned": str(to_vcn(Decimal(str(burned)))),
            "totalVcnLocked": str(to_vcn(Decimal(str(locked)))),
        }

    # ------------------------------------------------------------------
    # Module revenue
    # ------------------------------------------------------------------
    def track_module_revenue(
        self,
        module_name: str,
        month: date,
        revenue: Decimal | int | str,
        costs: Decimal | int | str,
    ) -> dict[str, Any]:
        """Upsert one module's figures for the calendar month containing *month*."""
        module_name = module_name.strip()
        if not module_name:
            raise InvalidAmountError("module_name must not be empty")
        revenue_usd = _usd(revenue, "revenue")
        costs_usd = _usd(costs, "costs")
        profit_usd = revenue_usd - costs_usd
        month = month.replace(day=1)

        stmt = select(ModuleRevenue).where(
            ModuleRevenue.module_name == module_name,
            ModuleRevenue.month == month,
        ).with_for_update()
        with unit_of_work(self.engine) as session:
            row = session.scalar(stmt)
            if row is None:
                try:
                    with session.begin_nested():   # SAVEPOINT
                        row = ModuleRevenue(module_name=module_name, month=month)
                        session.add(row)
                        session.flush()
                except IntegrityError:
                    logger.debug("Revenue row %s/%s created concurrently", module_name, month)
                    row = session.scalar(stmt)
            row.revenue_usd = revenue_usd
            row.costs_usd = costs_usd
            row.profit_usd = profit_usd
            row.updated_at = utcnow()

        logger.info(
            "Module revenue %s %s: revenue=$%s costs=$%s profit=$%s",
            module_name, month.strftime("%Y-%m"), revenue_usd, costs_usd, profit_usd,
        )
        return {
            "message": "Revenue tracked successfully",
            "module": module_name,
            "month": month.isoformat(),
            "profit": str(profit_usd),
        }

    def get_module_revenues(self, limit: int = 50) -> list[dict[str, Any]]:
        with Session(self.engine) as session:
            rows = session.scalars(
                select(ModuleRevenue)
                .order_by(ModuleRevenue.month.desc(), ModuleRevenue.module_name.asc())
                .limit(min(max(limit, 1), 200))
            ).all()
            return [
                {
                    "module": r.module_name,
                    "month": r.month.isoformat(),
                    "revenue": str(to_vcn(r.revenue_usd)),
                    "costs": str(to_vcn(r.costs_usd)),
                    "profit": str(to_vcn(r.profit_usd)),
                    "vcnFees": str(to_vcn(r.vcn_fees_collected)),
                    "vcnBurned": str(to_vcn(r.vcn_burned)),
                    "vcnStaked": str(to_vcn(r.vcn_staked)),
                }
                for r in rows
            ]
