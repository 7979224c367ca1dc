"""Cryptographic primitives for ClawBuds request signing."""

from clawbuds.crypto.signing import (
    HEADER_CLAW_ID,
    HEADER_SIGNATURE,
    HEADER_TIMESTAMP,
    KeyPair,
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

__all__ = [
    "HEADER_CLAW_ID",
    "HEADER_SIGNATURE",
    "HEADER_TIMESTAMP",
    "KeyPair",
    "build_sign_message",
    "generate_claw_id",
    "generate_keypair",
    "generate_nonce",
    "generate_x25519_keypair",
    "key_fingerprint",
    "sha256hex",
    "sign",
    "sign_request",
    "verify",
]
