"""
challengers.services.leaderboard_service — Leaderboard Gossip Merge
===================================================================

Every protocol payload piggybacks the sender's top-N leaderboard view.
Receiving devices merge it into their own table, so rankings spread
transitively ("I tell you what I've heard") with no server.

Merge order for one payload:
  1. the singular peer the payload is from (``from``/``claimer``),
  2. the local player's own row,
  3. the gossip batch, skipping any entry that names the local player.

Conflict rule for an existing nickname: overwrite when the score differs
OR the incoming timestamp is strictly newer.  Scores go *down* on monthly
resets, so "highest score wins" would never let a reset propagate.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from challengers.constants import GOSSIP_LIMIT, as_utc, utcnow
from challengers.database.engine import get_session
from challengers.database.models import LeaderboardEntry, Player
from challengers.services.events import TOPIC_LEADERBOARD, StoreEvents, notify

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from challengers.engine.payloads import GossipEntry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Upsert
# ---------------------------------------------------------------------------
def upsert_entry(
    session: Session,
    nickname: str | None,
    score: int | None,
    updated_at: datetime | None = None,
) -> bool:
    """Insert or update the row for *nickname*.

    A missing *updated_at* means "now".  A ``None`` score is rejected;
    zero is a valid score.

    Returns True if a row was written.
    """
    if not nickname or score is None:
        return False
    stamp = as_utc(updated_at) if updated_at is not None else utcnow()

    existing = session.scalar(
        select(LeaderboardEntry).where(LeaderboardEntry.nickname == nickname)
    )
    if existing is None:
        session.add(LeaderboardEntry(nickname=nickname, score=score, updated_at=stamp))
        session.flush()
        return True

    if existing.score != score or stamp > as_utc(existing.updated_at):
        existing.score = score
        existing.updated_at = stamp
        return True
    return False


def _safe_upsert(
    session: Session,
    nickname: str,
    score: int,
    updated_at: datetime | None = None,
) -> bool:
    """Upsert inside a SAVEPOINT; a failing row is logged and skipped."""
    try:
        with session.begin_nested():
            return upsert_entry(session, nickname, score, updated_at)
    except SQLAlchemyError:
        logger.exception("Failed to merge leaderboard entry for %r", nickname)
        return False


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------
def merge_into_session(session: Session, payload: Any, me: Player | None) -> int:
    """Apply the three merge passes for *payload* using *session*.

    *payload* is any protocol payload from :mod:`challengers.engine.payloads`
    (anything with ``peer()`` and ``gossip``).  *me* may be ``None`` when no
    local profile exists yet.

    Returns the number of rows written.
    """
    my_nickname = me.nickname if me is not None else None
    written = 0

    # 1. Singular peer field
    peer = payload.peer() if hasattr(payload, "peer") else None
    if peer is not None:
        nickname, score = peer
        if nickname != my_nickname:
            written += _safe_upsert(session, nickname, score)

    # 2. Self
    if me is not None:
        written += _safe_upsert(session, me.nickname, me.score or 0)

    # 3. Gossip batch
    entries: list[GossipEntry] = list(getattr(payload, "gossip", None) or [])
    for entry in entries:
        if entry.nickname == my_nickname:
            continue
        written += _safe_upsert(session, entry.nickname, entry.score, entry.updated_at)

    logger.debug(
        "Merged gossip: %d row(s) written from %d batch entries", written, len(entries)
    )
    return written


def merge_incoming(
    engine: Engine,
    payload: Any,
    local_player: Player | None,
    *,
    events: StoreEvents | None = None,
) -> int:
    """Merge one payload into the local leaderboard in its own session."""
    with get_session(engine) as session:
        me = None
        if local_player is not None and local_player.id is not None:
            me = session.get(Player, local_player.id)
        written = merge_into_session(session, payload, me or local_player)
    if written:
        notify(events, [TOPIC_LEADERBOARD])
    return written


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------
def _top_query(limit: int):
    return (
        select(LeaderboardEntry)
        .order_by(LeaderboardEntry.score.desc(), LeaderboardEntry.nickname)
        .limit(limit)
    )


def top_entries(engine: Engine, limit: int = GOSSIP_LIMIT) -> list[LeaderboardEntry]:
    """Leaderboard rows ordered by score (desc), truncated to *limit*."""
    with get_session(engine) as session:
        return list(session.scalars(_top_query(limit)).all())


def gossip_from_session(session: Session, limit: int = GOSSIP_LIMIT) -> list[dict]:
    """The outgoing gossip batch, as wire dicts.

    Gossip is best effort: if the table cannot be read the payload simply
    goes out without it.
    """
    try:
        rows = session.scalars(_top_query(limit)).all()
    except SQLAlchemyError:
        logger.exception("Could not read leaderboard for gossip")
        return []
    return [
        {
            "nickname": row.nickname,
            "score": row.score,
            "updated_at": as_utc(row.updated_at).isoformat(),
        }
        for row in rows
    ]


def gossip_batch(engine: Engine, limit: int = GOSSIP_LIMIT) -> list[dict]:
    with get_session(engine) as session:
        return gossip_from_session(session, limit)
