"""
tests/test_expiry.py — Challenge Expiry Helpers
===============================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from challengers.engine.expiry import (
    EXPIRY_OPTIONS,
    compute_expires_at,
    is_expired,
    resolve_expiry_option,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class TestResolveExpiryOption:
    @pytest.mark.parametrize(
        "key,hours,cost",
        [("none", None, 0), ("72h", 72, 1), ("24h", 24, 2), ("6h", 6, 4), ("1h", 1, 6)],
    )
    def test_known_keys(self, key, hours, cost):
        option = resolve_expiry_option(key)
        assert (option.hours, option.cost) == (hours, cost)

    @pytest.mark.parametrize("key", [None, "", "48h"])
    def test_unknown_falls_back_to_none(self, key):
        assert resolve_expiry_option(key) is EXPIRY_OPTIONS[0]


class TestExpiresAt:
    def test_no_hours_means_no_deadline(self):
        assert compute_expires_at(None, NOW) is None
        assert compute_expires_at(0, NOW) is None

    def test_adds_hours(self):
        assert compute_expires_at(6, NOW) == NOW + timedelta(hours=6)

    def test_is_expired(self):
        assert is_expired(None, NOW) is False
        assert is_expired(NOW - timedelta(seconds=1), NOW) is True
        assert is_expired(NOW + timedelta(hours=1), NOW) is False

    def test_naive_and_iso_values(self):
        naive_past = (NOW - timedelta(hours=1)).replace(tzinfo=None)
        assert is_expired(naive_past, NOW) is True
        assert is_expired((NOW + timedelta(hours=1)).isoformat(), NOW) is False
