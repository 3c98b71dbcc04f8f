"""
challengers.services.proximity_service — In-Person Approval (single QR)
=======================================================================

When sender and receiver stand side by side, the claim round trip is
skipped:

  1. The sender taps "Approve" on a pending SentChallenge.  It flips to
     ``accepted`` and a ``TA:`` QR (plus an ``?approve=`` link) is shown.
  2. The receiver scans it.  Their Challenge with that uuid is completed
     and rewarded exactly like a finalize link.

The receiver cannot self-verify: the reward needs the sender's QR, and
the lookup is scoped to the scanning player so someone else's code
cannot complete a challenge on this account.  QR payloads stay small, so
no gossip rides along.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from challengers.config import ChallengersConfig, default_config
from challengers.constants import (
    APPROVAL_PREFIX,
    ERR_ALREADY_ACHIEVEMENT,
    ERR_ALREADY_CLAIMED,
    ERR_CHALLENGE_NOT_FOUND,
    ERR_INVALID_CODE,
    ERR_MISSING_DETAILS,
    PARAM_APPROVE,
)
from challengers.database.engine import get_session
from challengers.database.models import Player, SentChallenge, SentChallengeStatus
from challengers.engine.codec import (
    build_share_link,
    decode_approval,
    encode_approval,
    extract_link,
)
from challengers.engine.payloads import ApprovalPayload, PayloadError, parse_approval
from challengers.services.challenge_service import complete_challenge, find_received_challenge
from challengers.services.events import (
    TOPIC_CHALLENGE,
    TOPIC_LEADERBOARD,
    TOPIC_PLAYER,
    TOPIC_SENT_CHALLENGE,
    StoreEvents,
    notify,
)
from challengers.services.results import ProtocolResult

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------
def is_proximity_qr(data: str | None) -> bool:
    return isinstance(data, str) and data.strip().startswith(APPROVAL_PREFIX)


def is_approval_link(raw_url: str | None) -> bool:
    token = extract_link(raw_url)
    return token is not None and token.param == PARAM_APPROVE


def _approval_data(raw: str | None) -> str | None:
    """Normalize a scanned QR, approval link or bare code to a ``TA:`` string."""
    if not raw or not isinstance(raw, str):
        return None
    raw = raw.strip()
    if raw.startswith(APPROVAL_PREFIX):
        return raw
    token = extract_link(raw)
    if token is not None:
        if token.param != PARAM_APPROVE:
            return None
        return APPROVAL_PREFIX + token.value
    return APPROVAL_PREFIX + raw


# ---------------------------------------------------------------------------
# Sender side
# ---------------------------------------------------------------------------
def _render(
    sent: SentChallenge, approver: str, config: ChallengersConfig
) -> ProtocolResult:
    payload = ApprovalPayload(uuid=sent.uuid, approver=approver, points=sent.points)
    qr_data = encode_approval(payload.to_wire())
    link = build_share_link(config.link_base, PARAM_APPROVE, qr_data[len(APPROVAL_PREFIX):])
    return ProtocolResult.ok(
        qr_data=qr_data, link=link, uuid=sent.uuid, challenge_title=sent.title
    )


def generate_approval(
    engine: Engine,
    player: Player,
    sent_challenge_id: int,
    *,
    config: ChallengersConfig | None = None,
    events: StoreEvents | None = None,
) -> ProtocolResult:
    """Approve a pending SentChallenge in person and render its QR."""
    config = config or default_config()
    with get_session(engine) as session:
        sent = session.get(SentChallenge, sent_challenge_id)
        if sent is None or not sent.uuid or player is None:
            return ProtocolResult.fail(ERR_MISSING_DETAILS)
        if sent.sender_id != player.id:
            logger.warning(
                "Player %s tried to approve challenge %s sent by player %d",
                player.id, sent.uuid, sent.sender_id,
            )
            return ProtocolResult.fail(ERR_CHALLENGE_NOT_FOUND)
        if sent.status != SentChallengeStatus.PENDING:
            return ProtocolResult.fail(ERR_ALREADY_CLAIMED)

        sent.status = SentChallengeStatus.ACCEPTED
        result = _render(sent, player.nickname, config)

    logger.info("Challenge %s approved in person by %r", result.uuid, player.nickname)
    notify(events, [TOPIC_SENT_CHALLENGE])
    return result


def regenerate_approval(
    player: Player,
    sent_challenge: SentChallenge,
    *,
    config: ChallengersConfig | None = None,
) -> ProtocolResult:
    """Re-render the QR for an already approved challenge (no state change).

    Used when the sender closed the QR before the receiver scanned it.
    """
    if sent_challenge is None or not sent_challenge.uuid or player is None:
        return ProtocolResult.fail(ERR_MISSING_DETAILS)
    if sent_challenge.sender_id != player.id:
        return ProtocolResult.fail(ERR_CHALLENGE_NOT_FOUND)
    return _render(sent_challenge, player.nickname, config or default_config())


# ---------------------------------------------------------------------------
# Receiver side
# ---------------------------------------------------------------------------
def process_approval(
    engine: Engine,
    player: Player,
    raw: str,
    *,
    config: ChallengersConfig | None = None,
    events: StoreEvents | None = None,
) -> ProtocolResult:
    """Complete the scanning player's challenge named by an approval QR."""
    config = config or default_config()
    try:
        approval = parse_approval(decode_approval(_approval_data(raw)))
    except PayloadError as exc:
        logger.warning("Rejected approval QR: %s", exc)
        return ProtocolResult.fail(ERR_INVALID_CODE)

    with get_session(engine) as session:
        me = session.get(Player, player.id) if player is not None and player.id else None
        if me is None:
            return ProtocolResult.fail(ERR_MISSING_DETAILS)

        challenge = find_received_challenge(session, me.id, approval.uuid)
        if challenge is None:
            logger.warning(
                "Approval %s does not match any challenge of player %d",
                approval.uuid, me.id,
            )
            return ProtocolResult.fail(ERR_CHALLENGE_NOT_FOUND)
        if challenge.completed_at is not None:
            return ProtocolResult.fail(ERR_ALREADY_ACHIEVEMENT)

        reward = complete_challenge(session, me, challenge, config)
        title = challenge.title

    notify(events, [TOPIC_CHALLENGE, TOPIC_PLAYER, TOPIC_LEADERBOARD])
    return ProtocolResult.ok(
        uuid=approval.uuid,
        challenge_title=title,
        multiplier=reward.multiplier,
        is_streak_bonus=reward.is_streak_bonus,
        points_earned=reward.points_earned,
        approver_name=approval.approver,
    )
