"""
challengers.engine.expiry — Optional Challenge Expiry
=====================================================

Senders can pay coins to put a deadline on a challenge.  The deadline is
metadata for display only: the exchange protocol never rejects a leg
because a challenge has expired.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from challengers.constants import as_utc, utcnow

__all__ = [
    "EXPIRY_OPTIONS",
    "ExpiryOption",
    "compute_expires_at",
    "is_expired",
    "resolve_expiry_option",
]


@dataclass(frozen=True, slots=True)
class ExpiryOption:
    key: str
    hours: int | None
    cost: int


# Shorter deadlines cost more.
EXPIRY_OPTIONS: tuple[ExpiryOption, ...] = (
    ExpiryOption("none", None, 0),
    ExpiryOption("72h", 72, 1),
    ExpiryOption("24h", 24, 2),
    ExpiryOption("6h", 6, 4),
    ExpiryOption("1h", 1, 6),
)


def resolve_expiry_option(key: str | None) -> ExpiryOption:
    """Look up *key*; unknown keys fall back to ``none``."""
    for option in EXPIRY_OPTIONS:
        if option.key == key:
            return option
    return EXPIRY_OPTIONS[0]


def compute_expires_at(hours: int | None, now: datetime | None = None) -> datetime | None:
    if not hours:
        return None
    return (now or utcnow()) + timedelta(hours=hours)


def is_expired(expires_at: datetime | str | None, now: datetime | None = None) -> bool:
    if not expires_at:
        return False
    if isinstance(expires_at, str):
        expires_at = datetime.fromisoformat(expires_at)
    return as_utc(expires_at) <= (now or utcnow())
