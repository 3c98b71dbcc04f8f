"""
tests/test_codec.py — Share-Link Codec Unit Tests
=================================================

Pure text transforms, no database.
"""

from __future__ import annotations

import base64
import json

import pytest

from challengers.engine.codec import (
    LinkToken,
    build_share_link,
    decode,
    decode_approval,
    encode,
    encode_approval,
    encode_legacy,
    extract_code,
    extract_link,
)


class TestVersionedEncoding:
    @pytest.mark.parametrize(
        "payload",
        [
            ["Ana", "A", "", 3, "Rookie", 42, [["early", "r", "Early"]], "", 1700000000000],
            {"type": "theo-claim-v1", "cid": "abc", "gossip": []},
            ["ñandú 🦤", 0, None, True],
            [],
        ],
    )
    def test_round_trip(self, payload):
        assert decode(encode(payload)) == payload

    def test_prefix_and_url_safe_alphabet(self):
        token = encode([">>>???", "~~~"])
        assert token.startswith("v2.")
        body = token[3:]
        assert "+" not in body
        assert "/" not in body
        assert "=" not in body

    def test_unknown_version_rejected(self):
        token = encode([1, 2, 3])
        assert decode("v3." + token[3:]) is None

    def test_empty_body_rejected(self):
        assert decode("v2.") is None

    def test_garbage_body_returns_none(self):
        assert decode("v2.%%%not-base64%%%") is None

    def test_valid_base64_but_not_json(self):
        body = base64.urlsafe_b64encode(b"not json").decode().rstrip("=")
        assert decode(f"v2.{body}") is None


class TestLegacyEncoding:
    def test_round_trip(self):
        payload = {"type": "theo-challenge-req-v1", "id": "u-1", "from": "Ana"}
        assert decode(encode_legacy(payload)) == payload

    def test_decodes_plain_btoa_output(self):
        raw = base64.b64encode(json.dumps({"a": 1}).encode()).decode()
        assert decode(raw) == {"a": 1}

    def test_spaces_from_query_parsing_restored(self):
        token = encode_legacy({"text": ">>>???>>>"})
        assert "+" in token
        assert decode(token.replace("+", " ")) == {"text": ">>>???>>>"}

    def test_latin1_binary_string(self):
        raw = base64.b64encode('{"n":"café"}'.encode("latin-1")).decode()
        assert decode(raw) == {"n": "café"}

    @pytest.mark.parametrize("token", [None, "", "   ", "!!!!", "YWJj"])
    def test_malformed_returns_none(self, token):
        assert decode(token) is None

    def test_deeply_nested_returns_none(self):
        raw = base64.b64encode(b"[" * 200_000).decode()
        assert decode(raw) is None
        body = base64.urlsafe_b64encode(b"[" * 200_000).decode().rstrip("=")
        assert decode(f"v2.{body}") is None


class TestApprovalEncoding:
    def test_prefixed_round_trip(self):
        qr = encode_approval({"i": "u-1", "n": "Ana", "p": 5})
        assert qr.startswith("TA:")
        assert decode_approval(qr) == {"i": "u-1", "n": "Ana", "p": 5}

    def test_prefix_optional(self):
        qr = encode_approval([1, 2, 3])
        assert decode_approval(qr[3:]) == [1, 2, 3]

    @pytest.mark.parametrize("data", [None, "", "TA:", "TA:???"])
    def test_malformed_returns_none(self, data):
        assert decode_approval(data) is None

    def test_deeply_nested_returns_none(self):
        qr = "TA:" + base64.b64encode(b"[" * 200_000).decode()
        assert decode_approval(qr) is None


class TestLinks:
    def test_build_then_extract(self):
        token = encode_legacy({"x": ">>>???"})
        link = build_share_link("https://example.test/app", "challenge", token)
        assert link.startswith("https://example.test/app?challenge=")
        assert extract_link(link) == LinkToken("challenge", token)

    def test_build_keeps_existing_query(self):
        link = build_share_link("https://example.test/?lang=es", "finalize", "abc")
        token = extract_link(link)
        assert token == LinkToken("finalize", "abc")
        assert "lang=es" in link

    def test_custom_scheme_base(self):
        link = build_share_link("theochallengers://challenge", "approve", "abc")
        assert link == "theochallengers://challenge?approve=abc"
        assert extract_link(link) == LinkToken("approve", "abc")

    @pytest.mark.parametrize(
        "param", ["challenge", "verify_claim", "finalize", "profile_card", "approve"]
    )
    def test_each_param_recognized(self, param):
        assert extract_link(f"https://x.test/?{param}=v2.abc").param == param

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            "",
            "not a url",
            "https://x.test/",
            "https://x.test/?other=1",
            "https://x.test/?challenge=",
            "http://[::1",
        ],
    )
    def test_unrecognized_or_malformed(self, raw):
        assert extract_link(raw) is None


class TestExtractCode:
    def test_bare_code_passthrough(self):
        assert extract_code("  abc123  ", "verify_claim") == "abc123"

    def test_from_full_link(self):
        link = build_share_link("https://x.test/", "verify_claim", "a+b/c==")
        assert extract_code(link, "verify_claim") == "a+b/c=="

    def test_from_query_fragment(self):
        assert extract_code("?verify_claim=abc&x=1", "verify_claim") == "abc"

    def test_empty(self):
        assert extract_code("", "finalize") is None
        assert extract_code(None, "finalize") is None
