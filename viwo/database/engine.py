"""
viwo.database.engine — Database Connection & Transaction Scopes
================================================================

Every balance mutation in ViWo runs inside exactly one database
transaction.  This module owns the two helpers that draw that boundary:

* :func:`unit_of_work` — a context manager yielding a :class:`Session`
  that commits on success and rolls back on any exception.
* :func:`run_in_transaction` — runs several session-taking callables in
  one unit of work, all-or-nothing.

Usage::

    from viwo.database.engine import create_db_engine, init_db, unit_of_work

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    with unit_of_work(engine) as session:
        session.add(VCoinBalance(user_id=42))
        # commit happens automatically on block exit
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from viwo.database.models import Base

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from *url* or ``DATABASE_URL``.

    The connection pool is sized for one API process plus the batch jobs:
    * ``pool_size=5`` — five persistent connections.
    * ``max_overflow=10`` — up to 10 extra connections under load.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    Raises
    ------
    RuntimeError
        If neither *url* nor ``DATABASE_URL`` is set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    engine = create_engine(
        url,
        echo=False,        # Set True for SQL debugging
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,   # Reconnect stale connections automatically
        pool_timeout=10,      # Fail after 10s instead of hanging forever
        pool_recycle=3600,    # Recycle connections after 1 hour
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`viwo.database.models`.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained for dev/test environments
        where Alembic may not have run.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


# ---------------------------------------------------------------------------
# Transaction scopes
# ---------------------------------------------------------------------------
@contextmanager
def unit_of_work(engine: Engine) -> Iterator[Session]:
    """Yield a :class:`Session` that commits on success and rolls back
    on exception.

    Usage::

        with unit_of_work(engine) as session:
            balance = session.scalar(select(VCoinBalance).with_for_update())
            balance.available += amount
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def run_in_transaction(engine: Engine, *operations: Callable[[Session], Any]) -> list[Any]:
    """Run *operations* in order inside one unit of work.

    Each operation receives the shared session.  If any raises, nothing
    is committed and the exception propagates.  Returns each operation's
    result in order.
    """
    with unit_of_work(engine) as session:
        return [op(session) for op in operations]
