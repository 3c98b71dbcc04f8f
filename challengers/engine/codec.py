"""
challengers.engine.codec — Share-Link & QR Payload Codec
========================================================

Pure text transforms between JSON payloads and the strings embedded in
share links and QR codes.  No DB I/O.

Three encodings exist on the wire:

* **legacy**  — ``base64(json)`` with the standard alphabet.  Challenge,
  claim and finalize links are still produced this way, and every decoder
  must keep accepting it.
* **v2**      — ``"v2." + base64url(json)`` with ``+/`` swapped for ``-_``
  and padding stripped.  Callers project records into positional arrays
  first to keep links short (see :mod:`challengers.engine.payloads`).
* **TA:**     — proximity approval QR, ``"TA:" + base64(json)``.  No version
  envelope: both phones run the same app build when standing side by side.

Decoders never raise.  Anything malformed comes back as ``None`` so the
caller can show an "invalid code" message.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

from challengers.constants import APPROVAL_PREFIX, CODEC_VERSION, LINK_PARAMS

logger = logging.getLogger(__name__)

__all__ = [
    "LinkToken",
    "build_share_link",
    "decode",
    "decode_approval",
    "encode",
    "encode_approval",
    "encode_legacy",
    "extract_code",
    "extract_link",
]

_VERSION_RE = re.compile(r"^(v\d+)\.(.*)$", re.DOTALL)
# Deeply nested JSON exhausts the parser stack.
_DECODE_ERRORS = (binascii.Error, UnicodeDecodeError, ValueError, RecursionError)


# ---------------------------------------------------------------------------
# Base64 helpers
# ---------------------------------------------------------------------------
def _dumps(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def _to_base64url(text: str) -> str:
    raw = base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii")
    return raw.rstrip("=")


def _from_base64url(value: str) -> str:
    normalized = value.replace("-", "+").replace("_", "/")
    padded = normalized + "=" * (-len(normalized) % 4)
    return base64.b64decode(padded, validate=True).decode("utf-8")


def _from_base64_legacy(value: str) -> str:
    # Query-string parsers turn an unescaped '+' into a space.
    normalized = value.strip().replace(" ", "+")
    padded = normalized + "=" * (-len(normalized) % 4)
    raw = base64.b64decode(padded, validate=True)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        # Older builds encoded a latin-1 "binary string".
        return raw.decode("latin-1")


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------
def encode(payload: Any) -> str:
    """Encode *payload* with the current versioned, URL-safe envelope."""
    return f"{CODEC_VERSION}.{_to_base64url(_dumps(payload))}"


def encode_legacy(payload: Any) -> str:
    """Encode *payload* as plain standard-alphabet base64 JSON."""
    return base64.b64encode(_dumps(payload).encode("utf-8")).decode("ascii")


def encode_approval(payload: Any) -> str:
    """Encode a proximity approval payload as a ``TA:`` QR string."""
    return APPROVAL_PREFIX + encode_legacy(payload)


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------
def decode(token: str | None) -> Any | None:
    """Decode a legacy or versioned token back into a JSON value.

    Returns ``None`` for empty input, unknown versions, or any token that
    fails base64 / UTF-8 / JSON decoding.
    """
    if not token or not isinstance(token, str):
        return None
    token = token.strip()

    match = _VERSION_RE.match(token)
    try:
        if match is not None:
            version, body = match.groups()
            if version != CODEC_VERSION:
                logger.warning("Rejected payload with unknown version %r", version)
                return None
            if not body:
                return None
            return json.loads(_from_base64url(body))
        return json.loads(_from_base64_legacy(token))
    except _DECODE_ERRORS:
        logger.debug("Undecodable payload token (%d chars)", len(token))
        return None


def decode_approval(data: str | None) -> Any | None:
    """Decode a ``TA:`` QR string.  The prefix is optional."""
    if not data or not isinstance(data, str):
        return None
    data = data.strip()
    if data.startswith(APPROVAL_PREFIX):
        data = data[len(APPROVAL_PREFIX):]
    if not data:
        return None
    try:
        return json.loads(_from_base64_legacy(data))
    except _DECODE_ERRORS:
        logger.debug("Undecodable approval QR (%d chars)", len(data))
        return None


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class LinkToken:
    """A recognized query parameter and its raw (still encoded) value."""

    param: str
    value: str


def extract_link(raw_url: str | None) -> LinkToken | None:
    """Find the first recognized payload parameter on *raw_url*.

    Returns ``None`` when the string is not a URL, cannot be parsed, or
    carries none of the known parameters.
    """
    if not raw_url or not isinstance(raw_url, str):
        return None
    try:
        parts = urlsplit(raw_url.strip())
    except ValueError:
        return None
    if not parts.scheme or not parts.query:
        return None

    params = parse_qs(parts.query)
    for name in LINK_PARAMS:
        values = params.get(name)
        if values and values[0]:
            return LinkToken(param=name, value=values[0])
    return None


def extract_code(code_or_url: str | None, param: str) -> str | None:
    """Return the encoded value for *param* from a link, or the bare code.

    Pasted codes are accepted as-is; links must carry *param*.
    """
    if not code_or_url or not isinstance(code_or_url, str):
        return None
    candidate = code_or_url.strip()
    if f"{param}=" not in candidate:
        return candidate or None
    token = extract_link(candidate)
    if token is not None and token.param == param:
        return token.value
    # Fragment-only or scheme-less input, e.g. "?verify_claim=..."
    tail = candidate.split(f"{param}=", 1)[1].split("&", 1)[0]
    return parse_qs(f"x={tail}").get("x", [None])[0]


def build_share_link(base: str, param: str, encoded_payload: str) -> str:
    """Set ``param=encoded_payload`` on the query string of *base*."""
    parts = urlsplit(base)
    query = {k: v[0] for k, v in parse_qs(parts.query).items()}
    query[param] = encoded_payload
    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment)
    )
