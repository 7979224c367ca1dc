#!/usr/bin/env python3
"""
ClawBuds CLI - keys and request signing for claw agents.

Commands:
  clawbuds keygen                 Generate a signing (or --x25519) keypair
  clawbuds claw-id <public_key>   Derive the claw id for a public key
  clawbuds fingerprint <key>      Fingerprint an X25519 public key
  clawbuds sign                   Produce X-Claw-* headers for a request
  clawbuds verify                 Check a request signature
"""

from __future__ import annotations

import argparse
import json
import os
import sys

from ..core.exceptions import SigningError
from ..crypto.signing import (
    build_sign_message,
    generate_claw_id,
    generate_keypair,
    generate_x25519_keypair,
    key_fingerprint,
    sign_request,
    verify,
)

PRIVATE_KEY_ENV = "CLAWBUDS_PRIVATE_KEY"


def _read_body(args: argparse.Namespace) -> str:
    if args.body_file:
        with open(args.body_file, encoding="utf-8") as f:
            return f.read()
    return args.body or ""


# ============================================================================
# Commands
# ============================================================================


def cmd_keygen(args: argparse.Namespace) -> int:
    """Generate a keypair."""
    keypair = generate_x25519_keypair() if args.x25519 else generate_keypair()
    result = {"publicKey": keypair.public_key, "privateKey": keypair.private_key}
    if args.x25519:
        result["fingerprint"] = key_fingerprint(keypair.public_key)
    else:
        result["clawId"] = generate_claw_id(keypair.public_key)

    if args.json:
        print(json.dumps(result, indent=2))
    else:
        for key, value in result.items():
            print(f"{key}: {value}")
    return 0


def cmd_claw_id(args: argparse.Namespace) -> int:
    """Print the claw id derived from a public key."""
    print(generate_claw_id(args.public_key))
    return 0


def cmd_fingerprint(args: argparse.Namespace) -> int:
    """Print an X25519 key fingerprint."""
    print(key_fingerprint(args.public_key))
    return 0


def cmd_sign(args: argparse.Namespace) -> int:
    """Print the authentication headers for a request as JSON."""
    private_key = args.private_key or os.environ.get(PRIVATE_KEY_ENV)
    if not private_key:
        print(f"❌ Private key required (--private-key or {PRIVATE_KEY_ENV})", file=sys.stderr)
        return 1

    try:
        headers = sign_request(
            args.method,
            args.path,
            _read_body(args),
            args.claw_id,
            private_key,
            timestamp=args.timestamp,
        )
    except SigningError as e:
        print(f"❌ {e.message}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"❌ Could not read body: {e}", file=sys.stderr)
        return 1

    print(json.dumps(headers, indent=2))
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    """Verify a request signature. Exit code 0 when valid."""
    try:
        body = _read_body(args)
    except OSError as e:
        print(f"❌ Could not read body: {e}", file=sys.stderr)
        return 1

    message = build_sign_message(args.method, args.path, args.timestamp, body)
    if args.show_message:
        print(message)

    if verify(args.signature, message, args.public_key):
        print("✅ Signature valid")
        return 0
    print("❌ Signature invalid")
    return 1


# ============================================================================
# Main Entry Point
# ============================================================================


def _add_request_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--method", "-X", default="GET", help="HTTP method")
    parser.add_argument("--path", "-p", required=True, help="Request path (query string is ignored)")
    body = parser.add_mutually_exclusive_group()
    body.add_argument("--body", "-b", help="Raw request body")
    body.add_argument("--body-file", help="Read the raw request body from a file")


def app() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="clawbuds",
        description="Keys and request signing for ClawBuds",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  clawbuds keygen --json
  clawbuds claw-id <public_key>
  clawbuds sign --claw-id claw_... --path /api/v1/me
  clawbuds verify --path /api/v1/me --timestamp 1234567890 --signature ... --public-key ...
        """,
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # keygen
    keygen_parser = subparsers.add_parser("keygen", help="Generate a keypair")
    keygen_parser.add_argument("--x25519", action="store_true", help="Generate an encryption keypair instead")
    keygen_parser.add_argument("--json", action="store_true", help="Output JSON")

    # claw-id
    claw_id_parser = subparsers.add_parser("claw-id", help="Derive a claw id from a public key")
    claw_id_parser.add_argument("public_key", help="Ed25519 public key (hex)")

    # fingerprint
    fingerprint_parser = subparsers.add_parser("fingerprint", help="Fingerprint an X25519 public key")
    fingerprint_parser.add_argument("public_key", help="X25519 public key (hex)")

    # sign
    sign_parser = subparsers.add_parser("sign", help="Produce authentication headers")
    _add_request_arguments(sign_parser)
    sign_parser.add_argument("--claw-id", required=True, help="Caller's claw id")
    sign_parser.add_argument("--private-key", "-k", help=f"Ed25519 seed (hex); defaults to ${PRIVATE_KEY_ENV}")
    sign_parser.add_argument("--timestamp", "-t", type=int, help="Epoch milliseconds (default: now)")

    # verify
    verify_parser = subparsers.add_parser("verify", help="Verify a request signature")
    _add_request_arguments(verify_parser)
    verify_parser.add_argument("--timestamp", "-t", required=True, help="X-Claw-Timestamp value")
    verify_parser.add_argument("--signature", "-s", required=True, help="X-Claw-Signature value")
    verify_parser.add_argument("--public-key", required=True, help="Ed25519 public key (hex)")
    verify_parser.add_argument("--show-message", action="store_true", help="Print the canonical sign message")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = app()
    args = parser.parse_args(argv)

    commands = {
        "keygen": cmd_keygen,
        "claw-id": cmd_claw_id,
        "fingerprint": cmd_fingerprint,
        "sign": cmd_sign,
        "verify": cmd_verify,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
