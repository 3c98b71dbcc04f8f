"""
challengers.config — YAML Configuration Loader
==============================================

Reads ``config.yaml`` for device-level settings: where share links point
and the gameplay tuning that both peers are expected to agree on.  The
database location is **not** here; it comes from ``DATABASE_URL`` (see
:mod:`challengers.database.engine`).

Usage::

    from challengers.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.link_base)         # "https://head.theo-challengers.pages.dev"
    print(cfg.gossip_limit)      # 10
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from challengers.constants import (
    DEFAULT_LINK_BASE,
    GOSSIP_LIMIT,
    PROFILE_BADGE_LIMIT,
    STREAK_MULTIPLIER,
    STREAK_THRESHOLD,
)


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ChallengersConfig:
    """Immutable configuration loaded from ``config.yaml``.

    Every field has a default so a device with no config file still works
    (see :func:`default_config`).
    """

    # Links
    link_base: str = DEFAULT_LINK_BASE

    # Gossip
    gossip_limit: int = GOSSIP_LIMIT  # Top-N entries piggybacked on each payload

    # Rewards
    streak_threshold: int = STREAK_THRESHOLD
    streak_multiplier: int = STREAK_MULTIPLIER

    # Profile card
    profile_badge_limit: int = PROFILE_BADGE_LIMIT


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def default_config() -> ChallengersConfig:
    """Configuration used when no file is provided."""
    return ChallengersConfig()


def load_config(path: str | Path = "config.yaml") -> ChallengersConfig:
    """Read *path* and return a :class:`ChallengersConfig` instance.

    Keys absent from the file keep their defaults.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    link_base = (raw.get("link_base") or "").strip() or DEFAULT_LINK_BASE

    return ChallengersConfig(
        link_base=link_base,
        gossip_limit=int(raw.get("gossip_limit", GOSSIP_LIMIT)),
        streak_threshold=int(raw.get("streak_threshold", STREAK_THRESHOLD)),
        streak_multiplier=int(raw.get("streak_multiplier", STREAK_MULTIPLIER)),
        profile_badge_limit=int(raw.get("profile_badge_limit", PROFILE_BADGE_LIMIT)),
    )
