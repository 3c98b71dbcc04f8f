"""
challengers.services.profile_card_service — Shareable Profile Cards
===================================================================

A profile card is a read-only snapshot (nickname, level, score, a few
badges) sent as ``?profile_card=v2.<base64url>``.  Opening one never
touches the store.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from challengers.config import ChallengersConfig, default_config
from challengers.constants import CODEC_VERSION, PARAM_PROFILE_CARD, level_for_score, utcnow
from challengers.database.models import Player
from challengers.engine.codec import build_share_link, decode, encode, extract_link
from challengers.engine.payloads import ProfileBadge, ProfileCard

logger = logging.getLogger(__name__)


def _as_badge(badge: Any) -> ProfileBadge | None:
    if isinstance(badge, ProfileBadge):
        return badge
    if isinstance(badge, dict):
        badge_id, icon, name = badge.get("id"), badge.get("icon"), badge.get("name")
        if all(isinstance(v, str) for v in (badge_id, icon, name)):
            return ProfileBadge(badge_id, icon, name)
    return None


def build_profile_card(
    player: Player,
    *,
    level: int | None = None,
    title: str = "",
    badges: Iterable[Any] | None = None,
    theme: str | None = None,
    config: ChallengersConfig | None = None,
) -> ProfileCard:
    """Snapshot *player* for sharing.

    *badges* defaults to the player's own badge list; at most
    ``profile_badge_limit`` are included.  *level* defaults to the level
    derived from lifetime score.
    """
    config = config or default_config()
    source = player.badges if badges is None else badges
    parsed = [b for b in (_as_badge(raw) for raw in source or ()) if b is not None]
    nickname = player.nickname or ""

    return ProfileCard(
        nickname=nickname,
        avatar_char=(nickname or "P")[0].upper(),
        level=level if level is not None else level_for_score(player.lifetime_score or 0),
        title=title,
        score=player.score or 0,
        badges=tuple(parsed[: config.profile_badge_limit]),
        theme=theme,
        created_at=utcnow(),
    )


def generate_profile_card_link(
    card: ProfileCard, *, config: ChallengersConfig | None = None
) -> str:
    config = config or default_config()
    return build_share_link(config.link_base, PARAM_PROFILE_CARD, encode(card.to_compact()))


def is_profile_card_link(raw_url: str | None) -> bool:
    token = extract_link(raw_url)
    return token is not None and token.param == PARAM_PROFILE_CARD


def extract_profile_card(raw_url: str | None) -> ProfileCard | None:
    """Decode the card carried by *raw_url*, or None.

    Only the versioned envelope is accepted; profile cards never shipped
    in the legacy encoding.
    """
    token = extract_link(raw_url)
    if token is None or token.param != PARAM_PROFILE_CARD:
        return None
    if not token.value.startswith(f"{CODEC_VERSION}."):
        logger.warning("Profile card link without %s envelope", CODEC_VERSION)
        return None
    return ProfileCard.from_compact(decode(token.value))
