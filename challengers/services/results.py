"""
challengers.services.results — Protocol Result Object
=====================================================

Expected failures (bad code, not found, already claimed, ...) come back
as ``ProtocolResult(success=False, error=<key>)``.  Only storage failures
raise.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class ProtocolResult:
    """Outcome of one protocol step."""

    success: bool
    error: str | None = None

    # Links / QR produced for the next leg
    link: str | None = None
    qr_data: str | None = None

    # Challenge context
    uuid: str | None = None
    challenge_title: str | None = None
    request: Any = None          # ChallengeRequest awaiting the user's accept
    profile_card: Any = None     # ProfileCard decoded from a profile link

    # Completion rewards
    multiplier: int | None = None
    is_streak_bonus: bool | None = None
    points_earned: int | None = None
    approver_name: str | None = None

    @classmethod
    def ok(cls, **fields: Any) -> ProtocolResult:
        return cls(success=True, **fields)

    @classmethod
    def fail(cls, error: str) -> ProtocolResult:
        return cls(success=False, error=error)
