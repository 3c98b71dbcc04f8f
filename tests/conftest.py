"""
tests/conftest.py — Shared Test Fixtures
========================================
"""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.pool import StaticPool

from challengers.config import ChallengersConfig
from challengers.database.models import Base
from challengers.services import player_service

LINK_BASE = "https://example.test/app"


def make_engine() -> Engine:
    """An in-memory SQLite engine with all tables.

    Uses StaticPool so worker threads (``run_db``) share the same
    in-memory database.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.new_event_loop().run_until_complete(coro)


@pytest.fixture
def db_engine() -> Engine:
    return make_engine()


@pytest.fixture
def config() -> ChallengersConfig:
    return ChallengersConfig(link_base=LINK_BASE)


# ---------------------------------------------------------------------------
# Two devices: each has its own store and its own local player
# ---------------------------------------------------------------------------
@pytest.fixture
def sender_engine() -> Engine:
    return make_engine()


@pytest.fixture
def receiver_engine() -> Engine:
    return make_engine()


@pytest.fixture
def sender(sender_engine):
    return player_service.get_or_create_player(sender_engine, "Alice")


@pytest.fixture
def receiver(receiver_engine):
    return player_service.get_or_create_player(receiver_engine, "Bob")


@pytest.fixture
def item(sender_engine, sender):
    return player_service.add_inventory_item(
        sender_engine,
        sender.id,
        title="Encourage a friend",
        description="Send a kind message",
        points=10,
        cost=3,
        reward=4,
        icon="*",
    )
