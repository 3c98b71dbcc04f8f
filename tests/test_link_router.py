"""
tests/test_link_router.py — Incoming Link Dispatch Tests
========================================================

Drives the whole exchange through :func:`handle_link`, the way the UI
does when a link is opened or a QR is scanned.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from challengers.constants import ERR_INVALID_CODE
from challengers.services import challenge_service, player_service, proximity_service
from challengers.services.link_router import accept_incoming, classify, handle_link
from challengers.services.profile_card_service import (
    build_profile_card,
    generate_profile_card_link,
)
from challengers.services.results import ProtocolResult
from conftest import LINK_BASE, run_async


def _handle(engine, player, raw, config):
    return run_async(handle_link(engine, player, raw, config=config))


class TestClassify:
    @pytest.mark.parametrize(
        "raw,kind",
        [
            (f"{LINK_BASE}?challenge=abc", "challenge"),
            (f"{LINK_BASE}?verify_claim=abc", "verify_claim"),
            (f"{LINK_BASE}?finalize=abc", "finalize"),
            (f"{LINK_BASE}?profile_card=v2.abc", "profile_card"),
            (f"{LINK_BASE}?approve=abc", "approve"),
            ("TA:abc", "approve"),
            ("theochallengers://challenge?challenge=abc", "challenge"),
        ],
    )
    def test_known(self, raw, kind):
        assert classify(raw) == kind

    @pytest.mark.parametrize("raw", [None, "", "hello", f"{LINK_BASE}?other=1"])
    def test_unknown(self, raw):
        assert classify(raw) is None


class TestHandleLink:
    def test_full_exchange(self, sender_engine, receiver_engine, sender, receiver, item, config):
        shared = run_async(
            challenge_service.share_challenge(sender_engine, sender, item, "hi", config=config)
        )

        incoming = _handle(receiver_engine, receiver, shared.link, config)
        assert incoming.success
        assert incoming.request.item.title == "Encourage a friend"
        accepted = run_async(accept_incoming(receiver_engine, receiver, incoming))
        assert accepted.success

        challenge = player_service.list_active_challenges(receiver_engine, receiver.id)[0]
        claim = challenge_service.generate_verification_link(
            receiver_engine, receiver, challenge, config=config
        )
        verified = _handle(sender_engine, sender, claim, config)
        assert verified.success

        done = _handle(receiver_engine, receiver, verified.link, config)
        assert done.success
        assert done.points_earned == 10

    def test_approval_qr(self, sender_engine, receiver_engine, sender, receiver, item, config):
        shared = run_async(
            challenge_service.share_challenge(sender_engine, sender, item, "", config=config)
        )
        incoming = _handle(receiver_engine, receiver, shared.link, config)
        run_async(accept_incoming(receiver_engine, receiver, incoming))

        sent = player_service.list_sent_challenges(sender_engine, sender.id)[0]
        qr = proximity_service.generate_approval(
            sender_engine, sender, sent.id, config=config
        ).qr_data

        result = _handle(receiver_engine, receiver, qr, config)
        assert result.success
        assert result.approver_name == "Alice"

    def test_profile_card_is_read_only(self, receiver_engine, receiver, sender, config):
        link = generate_profile_card_link(build_profile_card(sender), config=config)
        result = _handle(receiver_engine, receiver, link, config)
        assert result.success
        assert result.profile_card.nickname == "Alice"
        assert player_service.list_active_challenges(receiver_engine, receiver.id) == []

    @pytest.mark.parametrize(
        "raw",
        ["", "hello", f"{LINK_BASE}?profile_card=v2.%%%", f"{LINK_BASE}?finalize=%%%"],
    )
    def test_invalid(self, receiver_engine, receiver, raw, config):
        assert _handle(receiver_engine, receiver, raw, config).error == ERR_INVALID_CODE

    def test_storage_failure_propagates(self, receiver_engine, receiver, config):
        with patch(
            "challengers.services.link_router.process_incoming_challenge",
            side_effect=OperationalError("SELECT", {}, Exception("disk I/O error")),
        ):
            with pytest.raises(OperationalError):
                _handle(receiver_engine, receiver, f"{LINK_BASE}?challenge=abc", config)


class TestAcceptIncoming:
    def test_failed_result_not_accepted(self, receiver_engine, receiver):
        result = run_async(
            accept_incoming(receiver_engine, receiver, ProtocolResult.fail(ERR_INVALID_CODE))
        )
        assert result.error == ERR_INVALID_CODE
