"""
challengers.services.challenge_service — Challenge Exchange Protocol
====================================================================

Three links, two devices, no server::

    sender                                   receiver
    ──────                                   ────────
    commit share  ── ?challenge= ──────────▶ accept       (Challenge: active)
    (SentChallenge: pending)
    verify claim  ◀─ ?verify_claim= ──────── claim
    (SentChallenge: accepted)
                  ── ?finalize= ───────────▶ finalize     (Challenge: completed,
                                                           rewards applied)

Every leg carries the sender's leaderboard top-N, merged on arrival (see
:mod:`challengers.services.leaderboard_service`).

All functions here are synchronous and open their own session; async
callers go through :func:`~challengers.database.engine.run_db`.  Expected
failures return ``ProtocolResult.fail(<error key>)``; storage errors raise.
"""

from __future__ import annotations

import logging
import uuid as uuid_lib
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from challengers.config import ChallengersConfig, default_config
from challengers.constants import (
    ERR_ACCEPT_OWN,
    ERR_ALREADY_ACCEPTED,
    ERR_ALREADY_ACHIEVEMENT,
    ERR_ALREADY_CLAIMED,
    ERR_CHALLENGE_NOT_FOUND,
    ERR_INVALID_CODE,
    ERR_MISSING_DETAILS,
    PARAM_CHALLENGE,
    PARAM_FINALIZE,
    PARAM_VERIFY_CLAIM,
    utcnow,
)
from challengers.database.engine import get_session, run_db
from challengers.database.models import (
    Challenge,
    ChallengeItem,
    Player,
    SentChallenge,
    SentChallengeStatus,
)
from challengers.engine.codec import build_share_link, decode, encode_legacy, extract_code
from challengers.engine.expiry import compute_expires_at, resolve_expiry_option
from challengers.engine.payloads import (
    AuthPayload,
    ChallengeRequest,
    ClaimPayload,
    ItemInfo,
    PayloadError,
    parse_payload,
)
from challengers.engine.reward import CompletionReward, apply_completion, calculate_completion
from challengers.services.events import (
    TOPIC_CHALLENGE,
    TOPIC_INVENTORY,
    TOPIC_LEADERBOARD,
    TOPIC_PLAYER,
    TOPIC_SENT_CHALLENGE,
    StoreEvents,
    notify,
)
from challengers.services.leaderboard_service import (
    gossip_from_session,
    merge_into_session,
    upsert_entry,
)
from challengers.services.results import ProtocolResult

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _coerce_payload(
    data: Any, param: str, expected: type
) -> ChallengeRequest | ClaimPayload | AuthPayload | None:
    """Turn a link, bare code, decoded dict or typed payload into *expected*."""
    if isinstance(data, expected):
        return data
    if isinstance(data, str):
        data = decode(extract_code(data, param))
    try:
        return parse_payload(data, expected)
    except PayloadError as exc:
        logger.warning("Rejected %s payload: %s", expected.__name__, exc)
        return None


def _reload_player(session: Session, player: Player) -> Player | None:
    if player is None or player.id is None:
        return None
    return session.get(Player, player.id)


def find_received_challenge(
    session: Session, receiver_id: int, challenge_uuid: str
) -> Challenge | None:
    """The receiver-side row for *challenge_uuid*, scoped to *receiver_id*."""
    return session.scalar(
        select(Challenge).where(
            Challenge.uuid == challenge_uuid,
            Challenge.receiver_id == receiver_id,
        )
    )


def complete_challenge(
    session: Session,
    me: Player,
    challenge: Challenge,
    config: ChallengersConfig,
) -> CompletionReward:
    """Mark *challenge* completed and pay *me*.  Caller checked the guards."""
    reward = calculate_completion(
        streak=me.streak,
        points=challenge.points,
        reward=challenge.reward,
        streak_threshold=config.streak_threshold,
        streak_multiplier=config.streak_multiplier,
    )
    challenge.completed_at = utcnow()
    apply_completion(me, reward)
    # Keep "my" leaderboard row in step with the new score.
    upsert_entry(session, me.nickname, me.score)
    logger.info(
        "Challenge %s completed by %r: +%d points (x%d), +%d coins, streak %d",
        challenge.uuid,
        me.nickname,
        reward.points_earned,
        reward.multiplier,
        reward.coins_earned,
        reward.new_streak,
    )
    return reward


# ---------------------------------------------------------------------------
# Sender: draft → commit (→ rollback)
# ---------------------------------------------------------------------------
@dataclass
class ChallengeDraft:
    """A challenge request built but not yet committed to the store."""

    uuid: str
    payload: dict = field(default_factory=dict)
    link: str | None = None


def draft_challenge(
    engine: Engine,
    player: Player,
    item: ChallengeItem,
    message: str,
    *,
    config: ChallengersConfig | None = None,
) -> ChallengeDraft | None:
    """Build the ``theo-challenge-req-v1`` payload for *item*.

    Nothing is written; the uuid is fresh on every call.
    """
    if player is None or player.id is None or item is None or item.id is None:
        return None
    config = config or default_config()

    with get_session(engine) as session:
        gossip = gossip_from_session(session, config.gossip_limit)

    request = ChallengeRequest(
        id=str(uuid_lib.uuid4()),
        from_=player.nickname,
        from_score=player.score or 0,
        item=ItemInfo(title=item.title, points=item.points, description=item.description),
        message=message or "",
        gossip=gossip,
    )
    return ChallengeDraft(uuid=request.id, payload=request.to_wire())


def challenge_link(draft: ChallengeDraft, config: ChallengersConfig) -> str:
    return build_share_link(config.link_base, PARAM_CHALLENGE, encode_legacy(draft.payload))


def create_challenge_link(
    engine: Engine,
    player: Player,
    item: ChallengeItem,
    message: str,
    *,
    config: ChallengersConfig | None = None,
) -> ChallengeDraft | None:
    """Draft a challenge and render its share link (no store mutation)."""
    config = config or default_config()
    draft = draft_challenge(engine, player, item, message, config=config)
    if draft is None:
        return None
    draft.link = challenge_link(draft, config)
    return draft


def commit_challenge_link(
    engine: Engine,
    player: Player,
    item: ChallengeItem,
    message: str,
    challenge_uuid: str,
    *,
    expiry_key: str | None = None,
    events: StoreEvents | None = None,
) -> bool:
    """Record the pending SentChallenge and consume the inventory item.

    Both writes share one session.  Re-committing the same uuid does not
    create a second record.
    """
    if player is None or player.id is None or item is None or item.id is None:
        return False
    if not challenge_uuid:
        return False

    expiry = resolve_expiry_option(expiry_key)
    now = utcnow()

    with get_session(engine) as session:
        existing = session.scalar(
            select(SentChallenge).where(SentChallenge.uuid == challenge_uuid)
        )
        if existing is None:
            session.add(SentChallenge(
                uuid=challenge_uuid,
                sender_id=player.id,
                title=item.title,
                description=item.description,
                points=item.points,
                message=message or "",
                created_at=now,
                expires_at=compute_expires_at(expiry.hours, now),
                expiry_cost=expiry.cost or None,
                status=SentChallengeStatus.PENDING,
            ))

        stored_item = session.get(ChallengeItem, item.id)
        if stored_item is not None:
            session.delete(stored_item)

    logger.info("Committed challenge %s (item %d) as pending", challenge_uuid, item.id)
    notify(events, [TOPIC_SENT_CHALLENGE, TOPIC_INVENTORY])
    return True


def rollback_challenge_link(
    engine: Engine,
    item: ChallengeItem,
    challenge_uuid: str | None,
    *,
    events: StoreEvents | None = None,
) -> None:
    """Undo :func:`commit_challenge_link`: drop the record, restore the item."""
    with get_session(engine) as session:
        if challenge_uuid:
            sent = session.scalar(
                select(SentChallenge).where(SentChallenge.uuid == challenge_uuid)
            )
            if sent is not None:
                session.delete(sent)

        if item is not None and item.id is not None:
            if session.get(ChallengeItem, item.id) is None:
                session.add(ChallengeItem(
                    id=item.id,
                    owner_id=item.owner_id,
                    title=item.title,
                    description=item.description,
                    points=item.points,
                    cost=item.cost,
                    reward=item.reward,
                    icon=item.icon,
                ))

    logger.warning("Rolled back challenge %s; inventory item restored", challenge_uuid)
    notify(events, [TOPIC_SENT_CHALLENGE, TOPIC_INVENTORY])


async def share_challenge(
    engine: Engine,
    player: Player,
    item: ChallengeItem,
    message: str,
    *,
    expiry_key: str | None = None,
    config: ChallengersConfig | None = None,
    events: StoreEvents | None = None,
) -> ProtocolResult:
    """Commit a challenge and produce its share link.

    If building the link fails after the commit, the commit is compensated
    (record deleted, item restored) before the error propagates.
    """
    config = config or default_config()
    draft = await run_db(draft_challenge, engine, player, item, message, config=config)
    if draft is None:
        return ProtocolResult.fail(ERR_MISSING_DETAILS)

    committed = await run_db(
        commit_challenge_link,
        engine, player, item, message, draft.uuid,
        expiry_key=expiry_key, events=events,
    )
    if not committed:
        return ProtocolResult.fail(ERR_MISSING_DETAILS)

    try:
        link = challenge_link(draft, config)
    except Exception:
        logger.exception("Link generation failed for challenge %s", draft.uuid)
        await run_db(rollback_challenge_link, engine, item, draft.uuid, events=events)
        raise

    return ProtocolResult.ok(link=link, uuid=draft.uuid, challenge_title=item.title)


# ---------------------------------------------------------------------------
# Sender: claim → accepted, emit finalize link
# ---------------------------------------------------------------------------
def verify_claim_code(
    engine: Engine,
    player: Player,
    code_or_url: Any,
    *,
    config: ChallengersConfig | None = None,
    events: StoreEvents | None = None,
) -> ProtocolResult:
    """Handle a ``theo-claim-v1`` payload from the receiver.

    Only a ``pending`` SentChallenge can be claimed; a replayed claim fails
    with ``already_claimed``.  On success the result carries the
    ``?finalize=`` link for the receiver.
    """
    config = config or default_config()
    claim = _coerce_payload(code_or_url, PARAM_VERIFY_CLAIM, ClaimPayload)
    if claim is None:
        return ProtocolResult.fail(ERR_INVALID_CODE)

    topics = {TOPIC_LEADERBOARD}
    with get_session(engine) as session:
        me = _reload_player(session, player)
        if me is None:
            return ProtocolResult.fail(ERR_MISSING_DETAILS)

        merge_into_session(session, claim, me)

        sent = session.scalar(
            select(SentChallenge).where(
                SentChallenge.uuid == claim.cid,
                SentChallenge.sender_id == me.id,
            )
        )
        if sent is None:
            result = ProtocolResult.fail(ERR_CHALLENGE_NOT_FOUND)
        elif sent.status != SentChallengeStatus.PENDING:
            logger.warning(
                "Claim for %s by %r rejected: status is %s",
                claim.cid, claim.claimer, sent.status,
            )
            result = ProtocolResult.fail(ERR_ALREADY_CLAIMED)
        else:
            sent.status = SentChallengeStatus.ACCEPTED
            sent.claimed_by = claim.claimer
            topics.add(TOPIC_SENT_CHALLENGE)

            auth = AuthPayload(
                cid=claim.cid,
                valid=True,
                sender_score=me.score or 0,
                item=ItemInfo(
                    title=sent.title,
                    points=sent.points,
                    description=sent.description,
                ),
                message=sent.message,
                from_=me.nickname,
                gossip=gossip_from_session(session, config.gossip_limit),
            )
            link = build_share_link(config.link_base, PARAM_FINALIZE, encode_legacy(auth.to_wire()))
            logger.info("Challenge %s claimed by %r", claim.cid, claim.claimer)
            result = ProtocolResult.ok(link=link, uuid=claim.cid, challenge_title=sent.title)

    notify(events, topics)
    return result


# ---------------------------------------------------------------------------
# Receiver: request → active
# ---------------------------------------------------------------------------
def _check_request(session: Session, me: Player, request: ChallengeRequest) -> str | None:
    """Return the error key that blocks accepting *request*, if any."""
    if request.from_ == me.nickname:
        return ERR_ACCEPT_OWN
    # Any local row with this uuid counts, whichever player accepted it.
    existing = session.scalar(
        select(Challenge.id).where(Challenge.uuid == request.id).limit(1)
    )
    if existing is not None:
        return ERR_ALREADY_ACCEPTED
    return None


def process_incoming_challenge(
    engine: Engine,
    player: Player,
    data: Any,
    *,
    events: StoreEvents | None = None,
) -> ProtocolResult:
    """Validate an incoming challenge request before the user accepts it.

    Rejects self-challenges and requests already accepted on this device,
    then merges the piggybacked gossip.  The result carries the parsed
    request for the accept prompt.
    """
    request = _coerce_payload(data, PARAM_CHALLENGE, ChallengeRequest)
    if request is None:
        return ProtocolResult.fail(ERR_INVALID_CODE)

    with get_session(engine) as session:
        me = _reload_player(session, player)
        if me is None:
            return ProtocolResult.fail(ERR_MISSING_DETAILS)

        error = _check_request(session, me, request)
        if error is not None:
            logger.warning("Challenge %s from %r rejected: %s", request.id, request.from_, error)
            return ProtocolResult.fail(error)

        merge_into_session(session, request, me)

    notify(events, [TOPIC_LEADERBOARD])
    return ProtocolResult.ok(
        request=request, uuid=request.id, challenge_title=request.item.title
    )


def accept_challenge(
    engine: Engine,
    player: Player,
    data: Any,
    *,
    events: StoreEvents | None = None,
) -> ProtocolResult:
    """Create the active Challenge for an incoming request.

    Guards are re-checked here, so accepting the same uuid twice creates
    exactly one row.  ``reward`` mirrors ``points``.
    """
    request = _coerce_payload(data, PARAM_CHALLENGE, ChallengeRequest)
    if request is None:
        return ProtocolResult.fail(ERR_INVALID_CODE)

    with get_session(engine) as session:
        me = _reload_player(session, player)
        if me is None:
            return ProtocolResult.fail(ERR_MISSING_DETAILS)

        error = _check_request(session, me, request)
        if error is not None:
            logger.warning("Accept of %s rejected: %s", request.id, error)
            return ProtocolResult.fail(error)

        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(Challenge(
                    uuid=request.id,
                    receiver_id=me.id,
                    title=request.item.title,
                    description=request.item.description,
                    points=request.item.points,
                    reward=request.item.points,
                    from_player=request.from_,
                    message=request.message,
                    created_at=utcnow(),
                ))
                session.flush()
        except IntegrityError:
            # A concurrent accept won the (receiver_id, uuid) unique index.
            return ProtocolResult.fail(ERR_ALREADY_ACCEPTED)

    logger.info("Accepted challenge %s from %r", request.id, request.from_)
    notify(events, [TOPIC_CHALLENGE])
    return ProtocolResult.ok(uuid=request.id, challenge_title=request.item.title)


def generate_verification_link(
    engine: Engine,
    player: Player,
    challenge: Challenge,
    *,
    config: ChallengersConfig | None = None,
) -> str:
    """Build the ``?verify_claim=`` link the receiver sends back."""
    config = config or default_config()
    with get_session(engine) as session:
        me = _reload_player(session, player) or player
        claim = ClaimPayload(
            cid=challenge.uuid,
            claimer=me.nickname,
            claimer_score=me.score or 0,
            gossip=gossip_from_session(session, config.gossip_limit),
        )
    return build_share_link(config.link_base, PARAM_VERIFY_CLAIM, encode_legacy(claim.to_wire()))


# ---------------------------------------------------------------------------
# Receiver: finalize → completed
# ---------------------------------------------------------------------------
def finalize_challenge_claim(
    engine: Engine,
    player: Player,
    code_or_url: Any,
    *,
    config: ChallengersConfig | None = None,
    events: StoreEvents | None = None,
) -> ProtocolResult:
    """Apply a ``theo-auth-v1`` payload: complete the challenge, pay out.

    Fails with ``challenge_not_found`` if this device never accepted the
    uuid and ``already_achievement`` if it was completed before.
    """
    config = config or default_config()
    auth = _coerce_payload(code_or_url, PARAM_FINALIZE, AuthPayload)
    if auth is None or not auth.valid:
        return ProtocolResult.fail(ERR_INVALID_CODE)

    with get_session(engine) as session:
        me = _reload_player(session, player)
        if me is None:
            return ProtocolResult.fail(ERR_MISSING_DETAILS)

        challenge = find_received_challenge(session, me.id, auth.cid)
        if challenge is None:
            logger.warning("Finalize for unknown challenge %s", auth.cid)
            return ProtocolResult.fail(ERR_CHALLENGE_NOT_FOUND)
        if challenge.completed_at is not None:
            logger.warning("Finalize replayed for completed challenge %s", auth.cid)
            return ProtocolResult.fail(ERR_ALREADY_ACHIEVEMENT)

        merge_into_session(session, auth, me)
        reward = complete_challenge(session, me, challenge, config)
        title = challenge.title

    notify(events, [TOPIC_CHALLENGE, TOPIC_PLAYER, TOPIC_LEADERBOARD])
    return ProtocolResult.ok(
        uuid=auth.cid,
        challenge_title=title,
        multiplier=reward.multiplier,
        is_streak_bonus=reward.is_streak_bonus,
        points_earned=reward.points_earned,
    )
