"""
tests/test_leaderboard_service.py — Gossip Merge Tests
======================================================

Covers the conflict rule (score differs OR strictly newer timestamp),
the three merge passes, and top-N retrieval.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from challengers.database.engine import get_session
from challengers.database.models import LeaderboardEntry
from challengers.engine.payloads import parse_payload
from challengers.services import leaderboard_service
from challengers.services.events import TOPIC_LEADERBOARD, StoreEvents

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


def _row(engine, nickname) -> LeaderboardEntry | None:
    with get_session(engine) as session:
        return session.scalar(
            select(LeaderboardEntry).where(LeaderboardEntry.nickname == nickname)
        )


def _upsert(engine, nickname, score, updated_at=None) -> bool:
    with get_session(engine) as session:
        return leaderboard_service.upsert_entry(session, nickname, score, updated_at)


def _claim(**fields) -> dict:
    data = {"type": "theo-claim-v1", "cid": "c-1", "claimer": "Bob", "claimerScore": 4}
    data.update(fields)
    return data


class TestUpsertEntry:
    def test_insert(self, db_engine):
        assert _upsert(db_engine, "Carol", 7, T0)
        row = _row(db_engine, "Carol")
        assert row.score == 7

    def test_newer_lower_score_wins(self, db_engine):
        _upsert(db_engine, "Carol", 50, T0)
        assert _upsert(db_engine, "Carol", 0, T0 + timedelta(days=31))
        assert _row(db_engine, "Carol").score == 0

    def test_newer_higher_score_wins(self, db_engine):
        _upsert(db_engine, "Carol", 5, T0)
        assert _upsert(db_engine, "Carol", 9, T0 + timedelta(minutes=1))
        assert _row(db_engine, "Carol").score == 9

    def test_same_timestamp_different_score_second_write_wins(self, db_engine):
        _upsert(db_engine, "Carol", 5, T0)
        assert _upsert(db_engine, "Carol", 3, T0)
        assert _row(db_engine, "Carol").score == 3

    def test_differing_score_overwrites_even_when_older(self, db_engine):
        _upsert(db_engine, "Carol", 5, T0)
        assert _upsert(db_engine, "Carol", 8, T0 - timedelta(days=1))
        assert _row(db_engine, "Carol").score == 8

    def test_identical_entry_is_noop(self, db_engine):
        _upsert(db_engine, "Carol", 5, T0)
        assert _upsert(db_engine, "Carol", 5, T0) is False
        assert _upsert(db_engine, "Carol", 5, T0 - timedelta(hours=1)) is False

    def test_same_score_newer_timestamp_refreshes(self, db_engine):
        _upsert(db_engine, "Carol", 5, T0)
        assert _upsert(db_engine, "Carol", 5, T0 + timedelta(hours=1))
        updated = _row(db_engine, "Carol").updated_at.replace(tzinfo=UTC)
        assert updated == T0 + timedelta(hours=1)

    def test_none_score_rejected(self, db_engine):
        assert _upsert(db_engine, "Carol", None) is False
        assert _row(db_engine, "Carol") is None

    def test_zero_score_accepted(self, db_engine):
        assert _upsert(db_engine, "Carol", 0)
        assert _row(db_engine, "Carol").score == 0

    def test_missing_nickname_rejected(self, db_engine):
        assert _upsert(db_engine, "", 3) is False

    def test_missing_timestamp_means_now(self, db_engine):
        before = datetime.now(UTC)
        _upsert(db_engine, "Carol", 1)
        assert _row(db_engine, "Carol").updated_at.replace(tzinfo=UTC) >= before - timedelta(seconds=1)


class TestMergeIncoming:
    def test_three_passes(self, db_engine):
        payload = parse_payload(_claim(gossip=[
            {"nickname": "Carol", "score": 7, "updated_at": T0.isoformat()},
            {"nickname": "Dave", "score": 2},
        ]))
        written = leaderboard_service.merge_incoming(db_engine, payload, None)
        assert written == 3
        rows = {r.nickname: r.score for r in leaderboard_service.top_entries(db_engine)}
        assert rows == {"Bob": 4, "Carol": 7, "Dave": 2}

    def test_self_entry_in_gossip_skipped(self, receiver_engine, receiver):
        payload = parse_payload(_claim(
            claimer="Alice",
            gossip=[{"nickname": "Bob", "score": 999}],
        ))
        leaderboard_service.merge_incoming(receiver_engine, payload, receiver)
        assert _row(receiver_engine, "Bob").score == 0
        assert _row(receiver_engine, "Alice").score == 4

    def test_peer_naming_me_skipped(self, receiver_engine, receiver):
        payload = parse_payload(_claim(claimer="Bob", claimerScore=500))
        leaderboard_service.merge_incoming(receiver_engine, payload, receiver)
        assert _row(receiver_engine, "Bob").score == 0

    def test_monthly_reset_propagates(self, receiver_engine, receiver):
        _upsert(receiver_engine, "Carol", 80, T0)
        payload = parse_payload(_claim(gossip=[
            {"nickname": "Carol", "score": 0, "updated_at": (T0 + timedelta(days=31)).isoformat()},
        ]))
        leaderboard_service.merge_incoming(receiver_engine, payload, receiver)
        assert _row(receiver_engine, "Carol").score == 0

    def test_notifies_when_rows_written(self, receiver_engine, receiver):
        events = StoreEvents()
        seen: list[str] = []
        events.subscribe(TOPIC_LEADERBOARD, seen.append)
        leaderboard_service.merge_incoming(
            receiver_engine, parse_payload(_claim()), receiver, events=events
        )
        assert seen == [TOPIC_LEADERBOARD]

    def test_failing_row_skipped(self):
        session = MagicMock()
        session.begin_nested.side_effect = OperationalError("SAVEPOINT", {}, Exception("locked"))
        payload = parse_payload(_claim(gossip=[{"nickname": "Carol", "score": 1}]))
        assert leaderboard_service.merge_into_session(session, payload, None) == 0


class TestRetrieval:
    def test_top_entries_ordering_and_limit(self, db_engine):
        for nickname, score in [("Dave", 5), ("Carol", 9), ("Erin", 5), ("Frank", 1)]:
            _upsert(db_engine, nickname, score)
        rows = leaderboard_service.top_entries(db_engine, limit=3)
        assert [(r.nickname, r.score) for r in rows] == [("Carol", 9), ("Dave", 5), ("Erin", 5)]

    def test_gossip_batch_wire_shape(self, db_engine):
        _upsert(db_engine, "Carol", 9, T0)
        batch = leaderboard_service.gossip_batch(db_engine, limit=10)
        assert batch == [{"nickname": "Carol", "score": 9, "updated_at": T0.isoformat()}]

    def test_gossip_batch_respects_limit(self, db_engine):
        for n in range(15):
            _upsert(db_engine, f"p{n:02d}", n)
        batch = leaderboard_service.gossip_batch(db_engine, limit=10)
        assert len(batch) == 10
        assert batch[0]["nickname"] == "p14"

    def test_gossip_unreadable_table_is_empty(self):
        session = MagicMock()
        session.scalars.side_effect = OperationalError("SELECT", {}, Exception("no such table"))
        assert leaderboard_service.gossip_from_session(session) == []
