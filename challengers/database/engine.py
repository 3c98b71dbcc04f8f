"""
challengers.database.engine — Database Connection & Async Helper
================================================================

**Why this file exists:**
The interaction layer (whatever UI drives the game) runs on an ``asyncio``
event loop, while SQLAlchemy sessions are **synchronous**.  Every protocol
step is a plain sync function that opens its own session; the async side
ships it to a worker thread and awaits it before starting the next
dependent step::

    1. A link is opened / a QR is scanned   (async world).
    2. The handler calls ``await run_db(service_fn, engine, ...)``.
    3. ``run_db`` runs the sync function via ``asyncio.to_thread()``.
    4. The result comes back to the handler, which decides the next step.

Each call is one session, so each call is atomic on its own.  Multi-step
flows (commit a share, then build its link) are *not* wrapped in a single
transaction and are compensated explicitly by the caller.

Usage::

    from challengers.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # DATABASE_URL or ./challengers.db
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    player = await run_db(get_local_player, engine)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from dotenv import load_dotenv
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from challengers.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

DEFAULT_DATABASE_URL = "sqlite:///challengers.db"


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` for the local replica.

    Resolution order for the URL:
    * the *url* argument,
    * the ``DATABASE_URL`` env var,
    * ``sqlite:///challengers.db`` in the working directory.

    SQLite connections are opened with ``check_same_thread=False`` because
    :func:`run_db` executes queries on worker threads.
    """
    if url is None:
        load_dotenv()
    url = url or os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL

    connect_args: dict = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    engine = create_engine(
        url,
        echo=os.getenv("CHALLENGERS_SQL_ECHO") == "1",
        pool_pre_ping=True,
        connect_args=connect_args,
    )
    logger.info("Database engine created → %s", engine.url.render_as_string(hide_password=True))
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`challengers.database.models`.

    Safe to call on every startup.

    .. note::

        Managed installs run ``alembic upgrade head`` instead;
        ``create_all`` stays as the zero-setup path for a fresh device.
    """
    Base.metadata.create_all(engine)
    logger.info("Local replica schema ready (%d tables)", len(Base.metadata.tables))


def reset_db(engine: Engine) -> None:
    """Drop and recreate every table (the "full data reset" action)."""
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    logger.warning("Local data reset: all tables dropped and recreated.")


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """One unit of work: commit when the block exits cleanly, roll back
    when it raises.

    Objects stay readable after the block (``expire_on_commit=False``) so
    services can hand them back to callers.

    Usage::

        with get_session(engine) as session:
            session.add(LeaderboardEntry(nickname="ana", score=3, updated_at=now))
            # commit happens automatically on block exit
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


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await a synchronous store function without blocking the event loop.

    Every store access from the async side goes through this wrapper::

        result = await run_db(verify_claim_code, engine, player, code)

    Under the hood it calls :func:`asyncio.to_thread`, so the interaction
    loop is never blocked while SQLite does I/O.

    Returns
    -------
    T
        Whatever *func* returns.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
