"""
challengers.engine.payloads — Typed Wire Payloads
=================================================

Every decoded payload is validated into one of a closed set of models
before any service touches it.  The three protocol legs are a tagged
union discriminated on ``type``; the profile card and proximity approval
have their own fixed shapes and are recognized by how they arrived
(``v2.`` envelope / ``TA:`` prefix).

Wire keys keep the names older app builds emit (``from``, ``fromScore``,
``claimerScore``, ``senderScore``), so links in the wild stay valid.

Gossip entries are validated one at a time: a malformed entry is dropped,
never allowed to sink the whole payload.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from challengers.constants import MAX_WIRE_INT, utcnow

logger = logging.getLogger(__name__)

__all__ = [
    "ApprovalPayload",
    "AuthPayload",
    "ChallengeRequest",
    "ClaimPayload",
    "GossipEntry",
    "ItemInfo",
    "Payload",
    "PayloadError",
    "ProfileBadge",
    "ProfileCard",
    "parse_approval",
    "parse_payload",
]


class PayloadError(ValueError):
    """Raised when a decoded value is not a valid payload of the expected kind."""


# Score / points on the wire; out-of-range values fail validation.
WireInt = Annotated[int, Field(ge=-MAX_WIRE_INT, le=MAX_WIRE_INT)]


# ---------------------------------------------------------------------------
# Shared pieces
# ---------------------------------------------------------------------------
class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict using wire key names, ``None`` fields omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GossipEntry(_Wire):
    """One ``(nickname, score, updated_at?)`` tuple of a gossip batch."""

    nickname: str = Field(min_length=1)
    score: WireInt
    updated_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("updated_at", "updatedAt"),
        serialization_alias="updated_at",
    )


def _lenient_gossip(value: Any) -> list[GossipEntry]:
    if not isinstance(value, list):
        return []
    entries: list[GossipEntry] = []
    for raw in value:
        if isinstance(raw, GossipEntry):
            entries.append(raw)
            continue
        try:
            entries.append(GossipEntry.model_validate(raw))
        except ValidationError:
            logger.debug("Dropped malformed gossip entry: %r", raw)
    return entries


class ItemInfo(_Wire):
    """Challenge details carried from sender to receiver."""

    title: str
    points: WireInt = 0
    description: str = ""


class _ProtocolPayload(_Wire):
    gossip: list[GossipEntry] = Field(default_factory=list)

    @field_validator("gossip", mode="before")
    @classmethod
    def _drop_malformed_gossip(cls, value: Any) -> list[GossipEntry]:
        return _lenient_gossip(value)

    def peer(self) -> tuple[str, int] | None:
        """The singular ``(nickname, score)`` this payload reports, if any."""
        return None


# ---------------------------------------------------------------------------
# Protocol legs
# ---------------------------------------------------------------------------
class ChallengeRequest(_ProtocolPayload):
    """Leg 1, sender → receiver (``?challenge=``)."""

    type: Literal["theo-challenge-req-v1"] = "theo-challenge-req-v1"
    id: str = Field(min_length=1)
    from_: str = Field(alias="from", min_length=1)
    from_score: WireInt | None = Field(default=None, alias="fromScore")
    item: ItemInfo
    message: str = ""

    def peer(self) -> tuple[str, int] | None:
        if self.from_score is None:
            return None
        return self.from_, self.from_score


class ClaimPayload(_ProtocolPayload):
    """Leg 2, receiver → sender (``?verify_claim=``)."""

    type: Literal["theo-claim-v1"] = "theo-claim-v1"
    cid: str = Field(min_length=1)
    claimer: str = Field(min_length=1)
    claimer_score: WireInt | None = Field(default=None, alias="claimerScore")

    def peer(self) -> tuple[str, int] | None:
        if self.claimer_score is None:
            return None
        return self.claimer, self.claimer_score


class AuthPayload(_ProtocolPayload):
    """Leg 3, sender → receiver (``?finalize=``); grants the reward."""

    type: Literal["theo-auth-v1"] = "theo-auth-v1"
    cid: str = Field(min_length=1)
    valid: bool = False
    sender_score: WireInt | None = Field(default=None, alias="senderScore")
    item: ItemInfo | None = None
    message: str = ""
    from_: str | None = Field(default=None, alias="from")

    def peer(self) -> tuple[str, int] | None:
        if not self.from_ or self.sender_score is None:
            return None
        return self.from_, self.sender_score


Payload = Annotated[
    Union[ChallengeRequest, ClaimPayload, AuthPayload],
    Field(discriminator="type"),
]

_payload_adapter: TypeAdapter[Payload] = TypeAdapter(Payload)


def parse_payload(data: Any, expected: type[_ProtocolPayload] | None = None) -> Payload:
    """Validate a decoded JSON value into a protocol payload.

    Parameters
    ----------
    data:
        Output of :func:`challengers.engine.codec.decode`.
    expected:
        When given, any other payload kind is rejected.

    Raises
    ------
    PayloadError
        If *data* is not an object, has an unknown ``type``, fails
        validation, or is not of the *expected* kind.
    """
    if not isinstance(data, dict):
        raise PayloadError("payload is not an object")
    try:
        payload = _payload_adapter.validate_python(data)
    except ValidationError as exc:
        raise PayloadError(f"invalid payload: {exc.error_count()} error(s)") from exc
    if expected is not None and not isinstance(payload, expected):
        raise PayloadError(f"expected {expected.__name__}, got {payload.type}")
    return payload


# ---------------------------------------------------------------------------
# Proximity approval  ({i, n, p})
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ApprovalPayload:
    """Single-QR approval shown by the sender for in-person verification."""

    uuid: str
    approver: str
    points: int

    def to_wire(self) -> dict[str, Any]:
        return {"i": self.uuid, "n": self.approver, "p": self.points}


def parse_approval(data: Any) -> ApprovalPayload:
    """Validate a decoded approval QR (object or 3-slot array).

    Raises
    ------
    PayloadError
        If the uuid or approver slots are missing or of the wrong type.
    """
    if isinstance(data, list) and len(data) >= 3:
        uuid, approver, points = data[0], data[1], data[2]
    elif isinstance(data, dict):
        uuid, approver, points = data.get("i"), data.get("n"), data.get("p")
    else:
        raise PayloadError("approval payload has the wrong shape")

    if not isinstance(uuid, str) or not uuid:
        raise PayloadError("approval payload is missing the challenge id")
    if not isinstance(approver, str):
        raise PayloadError("approval payload is missing the approver")
    if isinstance(points, bool) or not isinstance(points, int | float):
        points = 0
    elif not -MAX_WIRE_INT <= points <= MAX_WIRE_INT:
        points = 0
    return ApprovalPayload(uuid=uuid, approver=approver, points=int(points))


# ---------------------------------------------------------------------------
# Profile card  (v2 positional array)
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ProfileBadge:
    id: str
    icon: str
    name: str


@dataclass(frozen=True, slots=True)
class ProfileCard:
    """Read-only snapshot of a player, shared via ``?profile_card=``.

    On the wire it is a 9-slot array, in this order::

        [nickname, avatar_char, avatar_image, level, title, score,
         [[badge_id, icon, name], ...], theme, created_at_epoch_ms]

    Optional strings travel as ``""``.
    """

    nickname: str
    avatar_char: str
    level: int
    title: str
    score: int
    created_at: datetime
    avatar_image: str | None = None
    badges: tuple[ProfileBadge, ...] = ()
    theme: str | None = None

    def to_compact(self) -> list[Any]:
        return [
            self.nickname,
            self.avatar_char,
            self.avatar_image or "",
            self.level,
            self.title,
            self.score,
            [[b.id, b.icon, b.name] for b in self.badges],
            self.theme or "",
            int(self.created_at.timestamp() * 1000),
        ]

    @classmethod
    def from_compact(cls, compact: Any) -> ProfileCard | None:
        """Rebuild a card from its positional array.

        Returns ``None`` when the array is too short or a required string
        slot has the wrong type.  Optional slots fall back to defaults and
        malformed badges are dropped.
        """
        if not isinstance(compact, list) or len(compact) < 9:
            return None
        (nickname, avatar_char, avatar_image, level, title, score,
         badges, theme, created_ms) = compact[:9]
        if not all(isinstance(v, str) for v in (nickname, avatar_char, title)):
            return None

        parsed_badges: list[ProfileBadge] = []
        if isinstance(badges, list):
            for badge in badges:
                if (
                    isinstance(badge, list)
                    and len(badge) >= 3
                    and all(isinstance(part, str) for part in badge[:3])
                ):
                    parsed_badges.append(ProfileBadge(*badge[:3]))

        if isinstance(created_ms, int | float) and not isinstance(created_ms, bool):
            try:
                created_at = datetime.fromtimestamp(created_ms / 1000, tz=UTC)
            except (OverflowError, OSError, ValueError):
                created_at = utcnow()
        else:
            created_at = utcnow()

        return cls(
            nickname=nickname,
            avatar_char=avatar_char,
            avatar_image=avatar_image if isinstance(avatar_image, str) and avatar_image else None,
            level=level if _is_number(level) else 1,
            title=title,
            score=score if _is_number(score) else 0,
            badges=tuple(parsed_badges),
            theme=theme if isinstance(theme, str) and theme else None,
            created_at=created_at,
        )


def _is_number(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
