"""
challengers.services.player_service — Local Player & Inventory
==============================================================

The device holds exactly one player row ("me").  These helpers create
and read it, manage the inventory the exchange protocol consumes, and run
the monthly score reset.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select

from challengers.constants import as_utc, utcnow
from challengers.database.engine import get_session
from challengers.database.models import (
    Challenge,
    ChallengeItem,
    Player,
    SentChallenge,
)
from challengers.services.events import (
    TOPIC_INVENTORY,
    TOPIC_LEADERBOARD,
    TOPIC_PLAYER,
    StoreEvents,
    notify,
)
from challengers.services.leaderboard_service import upsert_entry

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Player
# ---------------------------------------------------------------------------
def get_local_player(engine: Engine) -> Player | None:
    """Return the local player, or None before onboarding."""
    with get_session(engine) as session:
        return session.scalar(select(Player).order_by(Player.id).limit(1))


def get_or_create_player(
    engine: Engine,
    nickname: str,
    *,
    events: StoreEvents | None = None,
) -> Player:
    """Fetch the local player, creating it with *nickname* on first run."""
    with get_session(engine) as session:
        player = session.scalar(select(Player).order_by(Player.id).limit(1))
        created = player is None
        if created:
            player = Player(
                nickname=nickname,
                coins=0,
                score=0,
                lifetime_score=0,
                streak=0,
                shop_items=[],
                badges=[],
                created_at=utcnow(),
            )
            session.add(player)
            session.flush()
            upsert_entry(session, nickname, 0)
    if created:
        logger.info("Created local player %r", nickname)
        notify(events, [TOPIC_PLAYER, TOPIC_LEADERBOARD])
    return player


def get_player(engine: Engine, player_id: int) -> Player | None:
    with get_session(engine) as session:
        return session.get(Player, player_id)


def apply_monthly_reset(
    engine: Engine,
    player_id: int,
    *,
    now: datetime | None = None,
    events: StoreEvents | None = None,
) -> bool:
    """Zero the competitive score once per calendar month.

    ``lifetime_score`` is untouched.  The player's own leaderboard row is
    refreshed so the lower score starts travelling through gossip.

    Returns True if a reset happened.
    """
    now = now or utcnow()
    with get_session(engine) as session:
        player = session.get(Player, player_id)
        if player is None:
            return False
        last = player.last_monthly_reset
        if last is not None:
            last = as_utc(last)
            if (last.year, last.month) == (now.year, now.month):
                return False
        player.score = 0
        player.last_monthly_reset = now
        upsert_entry(session, player.nickname, 0, now)
    logger.info("Monthly reset applied for player %d", player_id)
    notify(events, [TOPIC_PLAYER, TOPIC_LEADERBOARD])
    return True


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------
def add_inventory_item(
    engine: Engine,
    owner_id: int,
    *,
    title: str,
    description: str = "",
    points: int = 0,
    cost: int = 0,
    reward: int = 0,
    icon: str = "",
    events: StoreEvents | None = None,
) -> ChallengeItem:
    """Put a challenge item in *owner_id*'s inventory."""
    with get_session(engine) as session:
        item = ChallengeItem(
            owner_id=owner_id,
            title=title,
            description=description,
            points=points,
            cost=cost,
            reward=reward,
            icon=icon,
        )
        session.add(item)
        session.flush()
    notify(events, [TOPIC_INVENTORY])
    return item


def list_inventory(engine: Engine, owner_id: int) -> list[ChallengeItem]:
    with get_session(engine) as session:
        return list(
            session.scalars(
                select(ChallengeItem)
                .where(ChallengeItem.owner_id == owner_id)
                .order_by(ChallengeItem.id)
            ).all()
        )


def remove_inventory_item(
    engine: Engine,
    item_id: int,
    *,
    events: StoreEvents | None = None,
) -> bool:
    """Manually discard an item.  Returns False if it was already gone."""
    with get_session(engine) as session:
        item = session.get(ChallengeItem, item_id)
        if item is None:
            return False
        session.delete(item)
    notify(events, [TOPIC_INVENTORY])
    return True


# ---------------------------------------------------------------------------
# Challenge listings
# ---------------------------------------------------------------------------
def list_active_challenges(engine: Engine, receiver_id: int) -> list[Challenge]:
    """Accepted challenges not yet completed."""
    with get_session(engine) as session:
        return list(
            session.scalars(
                select(Challenge)
                .where(
                    Challenge.receiver_id == receiver_id,
                    Challenge.completed_at.is_(None),
                )
                .order_by(Challenge.id)
            ).all()
        )


def list_challenge_history(engine: Engine, receiver_id: int) -> list[Challenge]:
    """Completed challenges, most recent first."""
    with get_session(engine) as session:
        return list(
            session.scalars(
                select(Challenge)
                .where(
                    Challenge.receiver_id == receiver_id,
                    Challenge.completed_at.is_not(None),
                )
                .order_by(Challenge.completed_at.desc())
            ).all()
        )


def list_sent_challenges(engine: Engine, sender_id: int) -> list[SentChallenge]:
    with get_session(engine) as session:
        return list(
            session.scalars(
                select(SentChallenge)
                .where(SentChallenge.sender_id == sender_id)
                .order_by(SentChallenge.created_at.desc(), SentChallenge.id.desc())
            ).all()
        )
