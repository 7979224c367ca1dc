"""Tests for the request signing protocol.

Tests cover:
1. Keypair generation and claw id derivation
2. Canonical sign message construction
3. Sign / verify round trip, tampering and malformed input
4. Header generation shared by every client
"""

from __future__ import annotations

import itertools

import pytest

from clawbuds.core.exceptions import SigningError
from clawbuds.crypto.signing import (
    HEADER_CLAW_ID,
    HEADER_SIGNATURE,
    HEADER_TIMESTAMP,
    build_sign_message,
    generate_claw_id,
    generate_keypair,
    generate_nonce,
    generate_x25519_keypair,
    key_fingerprint,
    sha256hex,
    sign,
    sign_request,
    verify,
)

EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


class TestKeyGeneration:
    """Test keypair generation."""

    def test_keys_are_32_byte_hex(self):
        kp = generate_keypair()
        assert len(kp.public_key) == 64
        assert len(kp.private_key) == 64
        bytes.fromhex(kp.public_key)
        bytes.fromhex(kp.private_key)

    def test_every_call_is_fresh(self):
        public_keys = {generate_keypair().public_key for _ in range(20)}
        assert len(public_keys) == 20

    def test_x25519_keypair(self):
        kp = generate_x25519_keypair()
        assert len(kp.public_key) == 64
        assert kp.public_key != generate_x25519_keypair().public_key


class TestIdentity:
    """Test claw id and fingerprint derivation."""

    def test_claw_id_format(self):
        kp = generate_keypair()
        claw_id = generate_claw_id(kp.public_key)
        assert claw_id == "claw_" + sha256hex(kp.public_key)[:16]
        assert len(claw_id) == 21

    def test_claw_id_is_deterministic(self):
        kp = generate_keypair()
        assert generate_claw_id(kp.public_key) == generate_claw_id(kp.public_key)

    def test_fingerprint(self):
        kp = generate_x25519_keypair()
        assert key_fingerprint(kp.public_key) == sha256hex(kp.public_key)[:16]

    def test_nonce_is_16_bytes_hex(self):
        nonce = generate_nonce()
        assert len(nonce) == 32
        assert nonce != generate_nonce()


class TestSha256Hex:
    """Test hashing helper."""

    def test_empty_string(self):
        assert sha256hex("") == EMPTY_SHA256

    def test_str_and_bytes_agree(self):
        assert sha256hex("héllo") == sha256hex("héllo".encode())


class TestBuildSignMessage:
    """Test the canonical sign message."""

    def test_format(self):
        msg = build_sign_message("get", "/api/v1/me", 1234567890, "")
        assert msg == f"GET|/api/v1/me|1234567890|{EMPTY_SHA256}"

    def test_none_body_hashes_as_empty(self):
        assert build_sign_message("GET", "/x", 1, None) == build_sign_message("GET", "/x", 1, "")

    def test_query_string_is_stripped(self):
        assert build_sign_message("GET", "/api/v1/inbox?limit=5", 1, "") == build_sign_message(
            "GET", "/api/v1/inbox", 1, ""
        )

    def test_timestamp_int_and_str_agree(self):
        assert build_sign_message("POST", "/x", 42, "{}") == build_sign_message("POST", "/x", "42", "{}")

    def test_each_argument_changes_output(self):
        base = ("POST", "/api/v1/messages", 1700000000000, '{"a":1}')
        variants = [
            ("PUT", *base[1:]),
            (base[0], "/api/v1/inbox", *base[2:]),
            (*base[:2], 1700000000001, base[3]),
            (*base[:3], '{"a":2}'),
        ]
        messages = [build_sign_message(*base)] + [build_sign_message(*v) for v in variants]
        for a, b in itertools.combinations(messages, 2):
            assert a != b


class TestSignVerify:
    """Test sign and verify."""

    def test_round_trip(self):
        kp = generate_keypair()
        msg = build_sign_message("GET", "/api/v1/me", 1, "")
        assert verify(sign(msg, kp.private_key), msg, kp.public_key) is True

    def test_signing_is_deterministic(self):
        kp = generate_keypair()
        assert sign("hello", kp.private_key) == sign("hello", kp.private_key)

    def test_tampered_message_rejected(self):
        kp = generate_keypair()
        signature = sign("GET|/a|1|x", kp.private_key)
        assert verify(signature, "GET|/a|2|x", kp.public_key) is False

    def test_wrong_key_rejected(self):
        signature = sign("hello", generate_keypair().private_key)
        assert verify(signature, "hello", generate_keypair().public_key) is False

    @pytest.mark.parametrize(
        "signature,public_key",
        [
            ("", None),
            ("zz", None),
            ("00" * 64, "not-hex"),
            ("00" * 10, None),
            ("00" * 64, "00" * 5),
        ],
    )
    def test_malformed_inputs_return_false(self, signature, public_key):
        kp = generate_keypair()
        assert verify(signature, "hello", public_key or kp.public_key) is False

    @pytest.mark.parametrize("private_key", ["", "xyz", "00" * 10, "00" * 33])
    def test_malformed_private_key_fails_closed(self, private_key):
        with pytest.raises(SigningError):
            sign("hello", private_key)


class TestSignRequest:
    """Test authentication header generation."""

    def test_headers(self):
        kp = generate_keypair()
        claw_id = generate_claw_id(kp.public_key)
        headers = sign_request("GET", "/api/v1/me", "", claw_id, kp.private_key, timestamp=1234567890)

        assert headers[HEADER_CLAW_ID] == claw_id
        assert headers[HEADER_TIMESTAMP] == "1234567890"
        msg = build_sign_message("GET", "/api/v1/me", "1234567890", "")
        assert verify(headers[HEADER_SIGNATURE], msg, kp.public_key)

    def test_clients_produce_identical_canonical_strings(self):
        """The CLI and the API client sign GET /api/v1/me identically."""
        from clawbuds.client import ClawClient

        kp = generate_keypair()
        claw_id = generate_claw_id(kp.public_key)
        client = ClawClient("https://example.test", claw_id, kp.private_key)

        cli_headers = sign_request("GET", "/api/v1/me", "", claw_id, kp.private_key, timestamp=1234567890)
        expected = f"GET|/api/v1/me|1234567890|{EMPTY_SHA256}"
        assert build_sign_message("GET", "/api/v1/me", 1234567890, "") == expected
        assert verify(cli_headers[HEADER_SIGNATURE], expected, kp.public_key)

        _, client_headers, body = client.prepare("GET", "/api/v1/me")
        assert body == ""
        message = build_sign_message("GET", "/api/v1/me", client_headers[HEADER_TIMESTAMP], body)
        assert verify(client_headers[HEADER_SIGNATURE], message, kp.public_key)
