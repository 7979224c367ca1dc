"""
Request signing protocol shared by the server and every client.

Provides:
- Ed25519 keypairs as hex strings (private key = 32-byte seed)
- The canonical sign message: METHOD|PATH|TIMESTAMP_MS|SHA256_HEX(body)
- Sign / verify over that message
- Claw id derivation and X25519 key fingerprints
- Nonces and ready-to-send authentication headers

Every producer and verifier must go through ``build_sign_message``; any
divergence breaks authentication for all clients.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import time
from dataclasses import dataclass

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from ..core.exceptions import SigningError

logger = logging.getLogger(__name__)

CLAW_ID_PREFIX = "claw_"
CLAW_ID_HASH_CHARS = 16
NONCE_BYTES = 16

HEADER_CLAW_ID = "X-Claw-Id"
HEADER_TIMESTAMP = "X-Claw-Timestamp"
HEADER_SIGNATURE = "X-Claw-Signature"


@dataclass(frozen=True)
class KeyPair:
    """Hex-encoded keypair."""

    public_key: str
    private_key: str


def generate_keypair() -> KeyPair:
    """Generate a fresh Ed25519 keypair for signing."""
    private_key = Ed25519PrivateKey.generate()
    return KeyPair(
        public_key=private_key.public_key().public_bytes_raw().hex(),
        private_key=private_key.private_bytes_raw().hex(),
    )


def generate_x25519_keypair() -> KeyPair:
    """Generate an X25519 keypair for end-to-end encryption."""
    private_key = X25519PrivateKey.generate()
    return KeyPair(
        public_key=private_key.public_key().public_bytes_raw().hex(),
        private_key=private_key.private_bytes_raw().hex(),
    )


def sha256hex(data: str | bytes) -> str:
    """SHA-256 of ``data`` (UTF-8 for str) as lowercase hex."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def strip_query(path: str) -> str:
    """Drop the query string from a request path."""
    return path.split("?", 1)[0]


def build_sign_message(
    method: str,
    path: str,
    timestamp: int | str,
    body: str | bytes | None = None,
) -> str:
    """Build the canonical string that clients sign.

    >>> build_sign_message("get", "/api/v1/me?x=1", 1234567890, "")[:29]
    'GET|/api/v1/me|1234567890|e3b'
    """
    return f"{method.upper()}|{strip_query(path)}|{timestamp}|{sha256hex(body or '')}"


def sign(message: str, private_key_hex: str) -> str:
    """Sign ``message`` with a hex Ed25519 seed.

    Raises:
        SigningError: If the private key is not a 32-byte hex seed
    """
    try:
        private_key = Ed25519PrivateKey.from_private_bytes(bytes.fromhex(private_key_hex))
    except (ValueError, TypeError) as e:
        raise SigningError("Malformed Ed25519 private key") from e
    return private_key.sign(message.encode("utf-8")).hex()


def verify(signature_hex: str, message: str, public_key_hex: str) -> bool:
    """Verify an Ed25519 signature.

    Returns False on any failure (bad signature, malformed key or
    signature); never raises.
    """
    try:
        public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
        public_key.verify(bytes.fromhex(signature_hex), message.encode("utf-8"))
        return True
    except (ValueError, TypeError, InvalidSignature):
        return False
    except Exception as e:
        logger.error(f"Unexpected error verifying signature: {e}")
        return False


def generate_claw_id(public_key_hex: str) -> str:
    """Derive the stable claw id from a signing public key."""
    return CLAW_ID_PREFIX + sha256hex(public_key_hex)[:CLAW_ID_HASH_CHARS]


def key_fingerprint(public_key_hex: str) -> str:
    """Fingerprint of an X25519 public key, used to detect key rotation."""
    return sha256hex(public_key_hex)[:CLAW_ID_HASH_CHARS]


def generate_nonce() -> str:
    """Random replay-protection token (16 bytes, hex)."""
    return secrets.token_hex(NONCE_BYTES)


def current_timestamp_ms() -> int:
    return int(time.time() * 1000)


def sign_request(
    method: str,
    path: str,
    body: str | bytes | None,
    claw_id: str,
    private_key_hex: str,
    timestamp: int | None = None,
) -> dict[str, str]:
    """Produce the authentication headers for one request.

    Args:
        method: HTTP method
        path: Request path; any query string is ignored for signing
        body: Raw request body exactly as it will be sent
        claw_id: Caller's claw id
        private_key_hex: Caller's Ed25519 seed (hex)
        timestamp: Milliseconds since epoch; defaults to now

    Returns:
        Dict with X-Claw-Id, X-Claw-Timestamp and X-Claw-Signature
    """
    ts = str(current_timestamp_ms() if timestamp is None else timestamp)
    message = build_sign_message(method, path, ts, body)
    return {
        HEADER_CLAW_ID: claw_id,
        HEADER_TIMESTAMP: ts,
        HEADER_SIGNATURE: sign(message, private_key_hex),
    }
