"""
challengers.services.link_router — Incoming Link / QR Dispatch
==============================================================

The application boundary.  Whatever the user opened or scanned (a share
link, a deep link, a ``TA:`` QR) comes in here as a string and is routed
by its query parameter:

    ?challenge=     → process_incoming_challenge  (prompt, then accept)
    ?verify_claim=  → verify_claim_code           (returns ?finalize= link)
    ?finalize=      → finalize_challenge_claim
    ?profile_card=  → extract_profile_card        (read-only)
    ?approve= / TA: → process_approval

Each service call runs on a worker thread via
:func:`~challengers.database.engine.run_db`.  Storage errors are logged
here and re-raised for the UI to report.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from challengers.config import ChallengersConfig, default_config
from challengers.constants import (
    ERR_INVALID_CODE,
    PARAM_APPROVE,
    PARAM_CHALLENGE,
    PARAM_FINALIZE,
    PARAM_PROFILE_CARD,
    PARAM_VERIFY_CLAIM,
)
from challengers.database.engine import run_db
from challengers.engine.codec import extract_link
from challengers.services.challenge_service import (
    accept_challenge,
    finalize_challenge_claim,
    process_incoming_challenge,
    verify_claim_code,
)
from challengers.services.profile_card_service import extract_profile_card
from challengers.services.proximity_service import is_proximity_qr, process_approval
from challengers.services.results import ProtocolResult

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from challengers.database.models import Player
    from challengers.services.events import StoreEvents

logger = logging.getLogger(__name__)


def classify(raw: str | None) -> str | None:
    """Which parameter *raw* would be routed by, or None if unrecognized."""
    if is_proximity_qr(raw):
        return PARAM_APPROVE
    token = extract_link(raw)
    return token.param if token is not None else None


async def handle_link(
    engine: Engine,
    player: Player,
    raw: str,
    *,
    config: ChallengersConfig | None = None,
    events: StoreEvents | None = None,
) -> ProtocolResult:
    """Route *raw* to the matching protocol step and return its result."""
    config = config or default_config()
    kind = classify(raw)
    if kind is None:
        logger.warning("Unrecognized link or code")
        return ProtocolResult.fail(ERR_INVALID_CODE)

    logger.debug("Routing incoming %s link", kind)
    try:
        if kind == PARAM_CHALLENGE:
            return await run_db(process_incoming_challenge, engine, player, raw, events=events)
        if kind == PARAM_VERIFY_CLAIM:
            return await run_db(
                verify_claim_code, engine, player, raw, config=config, events=events
            )
        if kind == PARAM_FINALIZE:
            return await run_db(
                finalize_challenge_claim, engine, player, raw, config=config, events=events
            )
        if kind == PARAM_APPROVE:
            return await run_db(
                process_approval, engine, player, raw, config=config, events=events
            )
        if kind == PARAM_PROFILE_CARD:
            card = extract_profile_card(raw)
            if card is None:
                return ProtocolResult.fail(ERR_INVALID_CODE)
            return ProtocolResult.ok(profile_card=card)
    except SQLAlchemyError:
        logger.exception("Storage failure while handling %s link", kind)
        raise

    return ProtocolResult.fail(ERR_INVALID_CODE)


async def accept_incoming(
    engine: Engine,
    player: Player,
    result: ProtocolResult,
    *,
    events: StoreEvents | None = None,
) -> ProtocolResult:
    """Accept the request carried by a successful ``?challenge=`` result."""
    if not result.success or result.request is None:
        return ProtocolResult.fail(ERR_INVALID_CODE)
    try:
        return await run_db(accept_challenge, engine, player, result.request, events=events)
    except SQLAlchemyError:
        logger.exception("Storage failure while accepting challenge %s", result.uuid)
        raise
