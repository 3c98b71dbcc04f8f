"""
challengers.constants — Shared Constants & Helpers
==================================================

Single source of truth for wire identifiers (query parameters, payload
type tags, prefixes), user-facing error keys, and gameplay tuning defaults.
Import from here instead of repeating string literals in services.
"""

from __future__ import annotations

from datetime import UTC, datetime

# ---------------------------------------------------------------------------
# Query-string parameters recognized at the application boundary
# ---------------------------------------------------------------------------
PARAM_CHALLENGE = "challenge"
PARAM_VERIFY_CLAIM = "verify_claim"
PARAM_FINALIZE = "finalize"
PARAM_PROFILE_CARD = "profile_card"
PARAM_APPROVE = "approve"

# Order matters: the first parameter present on a URL wins.
LINK_PARAMS: tuple[str, ...] = (
    PARAM_CHALLENGE,
    PARAM_VERIFY_CLAIM,
    PARAM_FINALIZE,
    PARAM_PROFILE_CARD,
    PARAM_APPROVE,
)

# ---------------------------------------------------------------------------
# Payload type tags
# ---------------------------------------------------------------------------
TYPE_CHALLENGE_REQUEST = "theo-challenge-req-v1"
TYPE_CLAIM = "theo-claim-v1"
TYPE_AUTH = "theo-auth-v1"

PARAM_FOR_TYPE: dict[str, str] = {
    TYPE_CHALLENGE_REQUEST: PARAM_CHALLENGE,
    TYPE_CLAIM: PARAM_VERIFY_CLAIM,
    TYPE_AUTH: PARAM_FINALIZE,
}

# Compact envelope version ("v2.<base64url>") and proximity QR prefix
CODEC_VERSION = "v2"
APPROVAL_PREFIX = "TA:"

# Fallback when no link base is configured (deep link into the app)
DEFAULT_LINK_BASE = "theochallengers://challenge"

# ---------------------------------------------------------------------------
# Error keys — surfaced to the UI for translation
# ---------------------------------------------------------------------------
ERR_INVALID_CODE = "invalid_code"
ERR_MISSING_DETAILS = "missing_details"
ERR_ACCEPT_OWN = "accept_own"
ERR_ALREADY_ACCEPTED = "already_accepted"
ERR_ALREADY_CLAIMED = "already_claimed"
ERR_ALREADY_ACHIEVEMENT = "already_achievement"
ERR_CHALLENGE_NOT_FOUND = "challenge_not_found"

# ---------------------------------------------------------------------------
# Gameplay tuning defaults (overridable from config.yaml)
# ---------------------------------------------------------------------------
GOSSIP_LIMIT = 10
STREAK_THRESHOLD = 3
STREAK_MULTIPLIER = 2
PROFILE_BADGE_LIMIT = 6

# Largest integer a peer build can put on the wire exactly (2**53 - 1).
# Scores and points beyond it are rejected before they reach the store.
MAX_WIRE_INT = 9_007_199_254_740_991


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------
def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes.

    SQLite hands back naive values even for ``DateTime(timezone=True)``
    columns, and aware/naive values cannot be compared.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def level_for_score(lifetime_score: int) -> int:
    """Player level derived from lifetime score (10 points per level)."""
    return max(1, lifetime_score // 10 + 1)
