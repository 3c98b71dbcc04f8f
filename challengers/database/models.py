"""
challengers.database.models — SQLAlchemy 2.0 Data Models
=========================================================

Local replica schema.  Every device owns an independent copy of these
tables; replicas are reconciled only through exchanged payloads.

Tables:
- players            — The local player ("me"); exactly one row in practice
- inventory          — Challenge items owned by a player, consumed on send
- sent_challenges    — Sender-side record of a shared challenge (keyed by uuid)
- challenges         — Receiver-side accepted copy (active until completed_at)
- leaderboard        — Best-known score per nickname, populated by gossip
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all challengers ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class SentChallengeStatus(enum.StrEnum):
    """Sender-side lifecycle of a shared challenge."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


# ---------------------------------------------------------------------------
# Players — the local profile
# ---------------------------------------------------------------------------
class Player(Base):
    __tablename__ = "players"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nickname: Mapped[str] = mapped_column(String(64), nullable=False)
    coins: Mapped[int] = mapped_column(Integer, default=0)
    score: Mapped[int] = mapped_column(Integer, default=0)
    lifetime_score: Mapped[int] = mapped_column(Integer, default=0)
    streak: Mapped[int] = mapped_column(Integer, default=0)
    last_weekly_bonus: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    last_daily_bonus: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    last_shop_update: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    last_monthly_reset: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    shop_items: Mapped[list] = mapped_column(JSON, default=list)
    badges: Mapped[list] = mapped_column(JSON, default=list)
    tutorial_seen: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    inventory: Mapped[list[ChallengeItem]] = relationship(
        back_populates="owner", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_players_nickname", "nickname"),
    )

    def __repr__(self) -> str:
        return f"<Player id={self.id} nickname={self.nickname!r} score={self.score}>"


# ---------------------------------------------------------------------------
# Inventory — challenge items waiting to be sent
# ---------------------------------------------------------------------------
class ChallengeItem(Base):
    """A challenge the player owns but has not sent yet.

    Created by the shop (outside this package) and destroyed when it is
    converted into a :class:`SentChallenge`.
    """
    __tablename__ = "inventory"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    points: Mapped[int] = mapped_column(Integer, default=0)
    cost: Mapped[int] = mapped_column(Integer, default=0)
    reward: Mapped[int] = mapped_column(Integer, default=0)
    icon: Mapped[str] = mapped_column(String(16), default="")

    owner: Mapped[Player] = relationship(back_populates="inventory")

    __table_args__ = (
        Index("ix_inventory_owner", "owner_id"),
    )

    def __repr__(self) -> str:
        return f"<ChallengeItem id={self.id} owner={self.owner_id} title={self.title!r}>"


# ---------------------------------------------------------------------------
# SentChallenge — sender-side record
# ---------------------------------------------------------------------------
class SentChallenge(Base):
    __tablename__ = "sent_challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    sender_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    points: Mapped[int] = mapped_column(Integer, default=0)
    message: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    expiry_cost: Mapped[int | None] = mapped_column(Integer, default=None)
    claimed_by: Mapped[str | None] = mapped_column(String(64), default=None)
    status: Mapped[SentChallengeStatus] = mapped_column(
        Enum(
            SentChallengeStatus,
            name="sent_challenge_status",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        default=SentChallengeStatus.PENDING,
    )

    __table_args__ = (
        Index("ix_sent_challenges_sender", "sender_id"),
    )

    def __repr__(self) -> str:
        return f"<SentChallenge uuid={self.uuid} status={self.status}>"


# ---------------------------------------------------------------------------
# Challenge — receiver-side accepted copy
# ---------------------------------------------------------------------------
class Challenge(Base):
    """Accepted challenge on the receiver's device.

    ``completed_at`` is the only discriminator between active (NULL) and
    history (set).
    """
    __tablename__ = "challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), nullable=False)
    receiver_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    points: Mapped[int] = mapped_column(Integer, default=0)
    reward: Mapped[int] = mapped_column(Integer, default=0)
    from_player: Mapped[str] = mapped_column(String(64), default="")
    message: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    __table_args__ = (
        UniqueConstraint("receiver_id", "uuid", name="uq_challenges_receiver_uuid"),
        Index("ix_challenges_uuid", "uuid"),
        Index("ix_challenges_receiver_completed", "receiver_id", "completed_at"),
    )

    @property
    def is_active(self) -> bool:
        return self.completed_at is None

    def __repr__(self) -> str:
        return f"<Challenge uuid={self.uuid} active={self.is_active}>"


# ---------------------------------------------------------------------------
# Leaderboard — gossip-populated rankings
# ---------------------------------------------------------------------------
class LeaderboardEntry(Base):
    __tablename__ = "leaderboard"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nickname: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    score: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (
        Index("ix_leaderboard_score_desc", "score"),
    )

    def __repr__(self) -> str:
        return f"<LeaderboardEntry nickname={self.nickname!r} score={self.score}>"
