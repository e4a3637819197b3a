"""
viwo.services.notifier — Outbound event publisher
==================================================

The reward pipeline tells the rest of the app about two things:

* ``credit_occurred`` — a user's balance went up (daily reward, action
  reward, transfer received, stake yield).
* ``flag_raised`` — a bot heuristic tripped for a user.

Events are published **after** the transaction that produced them has
committed.  Delivery is best-effort: a failing publisher is logged and
never rolls back ledger work.

Backends:

* :class:`LoggingNotifier` — default; writes one INFO line per event.
* :class:`PgNotifyNotifier` — ``pg_notify('viwo_events', <json>)`` for
  listeners on the same PostgreSQL database.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from sqlalchemy import Engine, text

logger = logging.getLogger(__name__)

EVENT_CREDIT_OCCURRED = "credit_occurred"
EVENT_FLAG_RAISED = "flag_raised"
EVENT_NOTIFY_CHANNEL = "viwo_events"


class Notifier:
    """Base publisher.  Subclasses implement :meth:`publish`."""

    def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        raise NotImplementedError

    def emit(self, event_type: str, payload: dict[str, Any]) -> None:
        """Publish and log any failure instead of raising."""
        try:
            self.publish(event_type, payload)
        except Exception:
            logger.exception(
                "Failed to publish %s event", event_type,
                extra={"stage": "notify", "user_id": payload.get("user_id")},
            )


class LoggingNotifier(Notifier):
    def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        logger.info("event %s %s", event_type, json.dumps(payload, default=str))


class PgNotifyNotifier(Notifier):
    """Publish on a PostgreSQL NOTIFY channel with a JSON payload."""

    def __init__(self, engine: Engine, channel: str = EVENT_NOTIFY_CHANNEL) -> None:
        self.engine = engine
        self.channel = channel

    def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        raw = json.dumps({"type": event_type, **payload}, default=str)
        with self.engine.connect() as conn:
            conn.execute(
                text("SELECT pg_notify(:channel, :payload)"),
                {"channel": self.channel, "payload": raw},
            )
            conn.commit()


def notifier_from_env(engine: Engine) -> Notifier:
    """Pick a backend from ``NOTIFY_BACKEND`` (``log`` or ``pg``)."""
    backend = os.getenv("NOTIFY_BACKEND", "log").lower()
    if backend == "pg":
        return PgNotifyNotifier(engine)
    if backend != "log":
        logger.warning("Unknown NOTIFY_BACKEND %r — falling back to logging", backend)
    return LoggingNotifier()
