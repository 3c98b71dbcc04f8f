"""
challengers.engine.reward — Completion Reward Calculation
=========================================================

Pure calculation, no DB I/O.  Both completion paths (the finalize link and
the proximity approval QR) call :func:`calculate_completion` and then apply
the result with :func:`apply_completion`, so the two can never drift apart.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from challengers.constants import STREAK_MULTIPLIER, STREAK_THRESHOLD

if TYPE_CHECKING:
    from challengers.database.models import Player

__all__ = ["CompletionReward", "apply_completion", "calculate_completion"]


@dataclass(frozen=True, slots=True)
class CompletionReward:
    """What a player earns for completing one challenge."""

    multiplier: int
    is_streak_bonus: bool
    points_earned: int
    coins_earned: int
    new_streak: int


def calculate_completion(
    *,
    streak: int,
    points: int,
    reward: int,
    streak_threshold: int = STREAK_THRESHOLD,
    streak_multiplier: int = STREAK_MULTIPLIER,
) -> CompletionReward:
    """Compute the reward for completing a challenge.

    A streak of ``streak_threshold`` or more *before* this completion
    multiplies the points; coins are never multiplied.
    """
    current = streak or 0
    is_streak_bonus = current >= streak_threshold
    multiplier = streak_multiplier if is_streak_bonus else 1
    return CompletionReward(
        multiplier=multiplier,
        is_streak_bonus=is_streak_bonus,
        points_earned=(points or 0) * multiplier,
        coins_earned=reward or 0,
        new_streak=current + 1,
    )


def apply_completion(player: Player, result: CompletionReward) -> None:
    """Add *result* to *player* in place (caller commits)."""
    player.score = (player.score or 0) + result.points_earned
    player.lifetime_score = (player.lifetime_score or 0) + result.points_earned
    player.coins = (player.coins or 0) + result.coins_earned
    player.streak = result.new_streak
