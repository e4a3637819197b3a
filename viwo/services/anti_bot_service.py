"""
viwo.services.anti_bot_service — Bot Filter persistence & review
=================================================================

Wraps the pure heuristics in :mod:`viwo.engine.anti_bot`:

* ``apply`` counts a user's activity, evaluates it, persists one
  ``bot_detection_flags`` row per tripped rule and day and publishes
  ``flag_raised`` for newly written rows.  It never blocks the user.
* ``get_user_flags`` / ``resolve_flag`` / ``get_system_stats`` back the
  moderation endpoints.  Flags are never deleted.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import distinct, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from viwo.constants import utcnow
from viwo.database.engine import unit_of_work
from viwo.database.models import BotDetectionFlag, FlagSeverity, FlagStatus
from viwo.engine.anti_bot import BotCheck, BotRules, describe_flag, evaluate_activity
from viwo.engine.events import ActivityCounts
from viwo.errors import FlagNotFoundError
from viwo.services.notifier import EVENT_FLAG_RAISED, LoggingNotifier, Notifier

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from viwo.config import RewardsConfig
    from viwo.services.activity_service import ActivityAggregator

logger = logging.getLogger(__name__)


class BotFilter:
    def __init__(
        self,
        engine: Engine,
        config: RewardsConfig,
        aggregator: ActivityAggregator,
        notifier: Notifier | None = None,
    ) -> None:
        self.engine = engine
        self.rules = BotRules.from_config(config)
        self.aggregator = aggregator
        self.notifier = notifier or LoggingNotifier()

    def check(self, user_id: int, start: datetime, end: datetime) -> tuple[ActivityCounts, BotCheck]:
        """Evaluate without persisting anything."""
        counts = self.aggregator.counts(user_id, start, end)
        return counts, evaluate_activity(counts, self.rules)

    def apply(self, user_id: int, start: datetime, end: datetime) -> BotCheck:
        """Evaluate *user_id*'s window and record any tripped heuristics.

        Flags are keyed by ``(user, rule, start.date())``: re-evaluating a
        day only writes rules not already recorded for it, and the event
        is published only when something new was written.
        """
        counts, result = self.check(user_id, start, end)
        if not result.flags:
            return result

        flag_date = start.date()
        severity = result.severity
        snapshot = counts.as_dict()
        with unit_of_work(self.engine) as session:
            recorded = set(session.scalars(
                select(BotDetectionFlag.flag_type).where(
                    BotDetectionFlag.user_id == user_id,
                    BotDetectionFlag.flag_date == flag_date,
                )
            ))
            new_rows = []
            for flag in result.flags:
                if flag.value in recorded:
                    continue
                row = BotDetectionFlag(
                    user_id=user_id,
                    flag_type=flag.value,
                    flag_date=flag_date,
                    severity=severity.value,
                    penalty_applied=result.penalty,
                    description=describe_flag(flag),
                    status=FlagStatus.ACTIVE.value,
                    activity_snapshot=snapshot,
                    flagged_at=utcnow(),
                )
                try:
                    with session.begin_nested():   # SAVEPOINT
                        session.add(row)
                        session.flush()
                except IntegrityError:
                    logger.debug(
                        "Flag %s for user %d on %s recorded concurrently",
                        flag.value, user_id, flag_date,
                    )
                    continue
                new_rows.append(row)
            flag_ids = [row.id for row in new_rows]

        if not new_rows:
            logger.debug("User %d already flagged for %s; nothing new", user_id, flag_date)
            return result

        new_flags = [row.flag_type for row in new_rows]
        logger.info(
            "User %d flagged %s on %s (penalty=%.3f, severity=%s)",
            user_id, ",".join(new_flags), flag_date, result.penalty, severity.value,
        )
        self.notifier.emit(EVENT_FLAG_RAISED, {
            "user_id": user_id,
            "flags": new_flags,
            "flag_ids": flag_ids,
            "penalty": result.penalty,
            "severity": severity.value,
            "is_likely_bot": result.is_likely_bot,
        })
        return result

    # -- moderation ---------------------------------------------------------

    def get_user_flags(self, user_id: int) -> dict[str, Any]:
        with Session(self.engine) as session:
            flags = session.scalars(
                select(BotDetectionFlag)
                .where(
                    BotDetectionFlag.user_id == user_id,
                    BotDetectionFlag.status == FlagStatus.ACTIVE.value,
                )
                .order_by(BotDetectionFlag.flagged_at.desc(), BotDetectionFlag.id.desc())
            ).all()
            data = [
                {
                    "id": f.id,
                    "type": f.flag_type,
                    "severity": f.severity,
                    "description": f.description,
                    "penaltyApplied": f.penalty_applied,
                    "flaggedAt": f.flagged_at.isoformat(),
                }
                for f in flags
            ]

        return {
            "userId": user_id,
            "flags": data,
            "totalFlags": len(data),
            "highSeverityFlags": sum(1 for f in data if f["severity"] == FlagSeverity.HIGH.value),
        }

    def resolve_flag(self, flag_id: int, resolution: str) -> dict[str, Any]:
        """Mark a flag resolved.  The resolution note replaces the description."""
        with unit_of_work(self.engine) as session:
            flag = session.get(BotDetectionFlag, flag_id)
            if flag is None:
                raise FlagNotFoundError(flag_id)
            flag.status = FlagStatus.RESOLVED.value
            flag.resolved_at = utcnow()
            flag.description = resolution
        logger.info("Bot flag %d resolved: %s", flag_id, resolution)
        return {"message": "Flag resolved successfully", "flagId": flag_id}

    def get_system_stats(self) -> dict[str, Any]:
        with Session(self.engine) as session:
            total = session.scalar(select(func.count()).select_from(BotDetectionFlag)) or 0
            active = session.scalar(
                select(func.count()).select_from(BotDetectionFlag).where(
                    BotDetectionFlag.status == FlagStatus.ACTIVE.value
                )
            ) or 0
            unique_users = session.scalar(
                select(func.count(distinct(BotDetectionFlag.user_id))).where(
                    BotDetectionFlag.status == FlagStatus.ACTIVE.value
                )
            ) or 0

        return {
            "totalFlags": total,
            "activeFlags": active,
            "resolvedFlags": total - active,
            "uniqueUsersWithFlags": unique_users,
            "detectionRate": f"{active / total * 100:.2f}%" if total else "0%",
        }
