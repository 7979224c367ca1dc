"""Signed-request authentication.

``RequestAuthenticator.authenticate`` is the single verification entry point
for incoming requests. It always returns an ``AuthResult``; the ``reason``
is for server logs only. HTTP adapters answer every failure with the same
``unauthorized_response()`` so callers cannot tell an unknown claw from a
bad signature.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass

from starlette.requests import Request
from starlette.responses import JSONResponse

from ..core.exceptions import AuthenticationFailure
from ..crypto.signing import (
    HEADER_CLAW_ID,
    HEADER_SIGNATURE,
    HEADER_TIMESTAMP,
    build_sign_message,
    current_timestamp_ms,
    generate_claw_id,
    strip_query,
    verify,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_SKEW_MS = 5 * 60 * 1000

# Failure reasons (logged, never returned to the client)
REASON_MISSING_HEADERS = "missing_headers"
REASON_INVALID_TIMESTAMP = "invalid_timestamp"
REASON_EXPIRED = "timestamp_out_of_window"
REASON_UNKNOWN_CLAW = "unknown_claw"
REASON_KEY_MISMATCH = "claw_id_key_mismatch"
REASON_BAD_SIGNATURE = "invalid_signature"
REASON_ERROR = "internal_error"

KeyLookup = Callable[[str], Awaitable[str | None]]


@dataclass(frozen=True)
class AuthResult:
    """Outcome of verifying one request."""

    ok: bool
    claw_id: str | None = None
    reason: str | None = None


def normalize_path(path: str) -> str:
    """Strip the query string and a trailing slash (except for "/")."""
    path = strip_query(path)
    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]
    return path


def _header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    return value


class KeyDirectory:
    """In-memory claw id -> public key table, usable as a ``key_lookup``."""

    def __init__(self) -> None:
        self._keys: dict[str, str] = {}

    def add(self, public_key_hex: str) -> str:
        """Register a signing key and return its claw id."""
        claw_id = generate_claw_id(public_key_hex)
        self._keys[claw_id] = public_key_hex
        return claw_id

    def remove(self, claw_id: str) -> None:
        self._keys.pop(claw_id, None)

    async def lookup(self, claw_id: str) -> str | None:
        return self._keys.get(claw_id)

    def __contains__(self, claw_id: object) -> bool:
        return claw_id in self._keys


class RequestAuthenticator:
    """Verifies X-Claw-* signed requests against stored public keys.

    Args:
        key_lookup: Async callable returning the public key hex for a claw id
        max_skew_ms: Allowed difference between the request timestamp and now
        clock: Returns the current time in epoch milliseconds
    """

    def __init__(
        self,
        key_lookup: KeyLookup,
        max_skew_ms: int = DEFAULT_MAX_SKEW_MS,
        clock: Callable[[], int] | None = None,
    ):
        self.key_lookup = key_lookup
        self.max_skew_ms = max_skew_ms
        self._clock = clock or current_timestamp_ms

    async def authenticate(
        self,
        method: str,
        path: str,
        body: str | bytes | None,
        headers: Mapping[str, str],
    ) -> AuthResult:
        """Accept or reject one request. Never raises."""
        try:
            result = await self._authenticate(method, path, body, headers)
        except Exception as e:
            logger.error(f"Authentication error: {e}")
            result = AuthResult(ok=False, reason=REASON_ERROR)

        if not result.ok:
            claw_id = _header(headers, HEADER_CLAW_ID) or ""
            logger.warning(f"Rejected request {method.upper()} {strip_query(path)}: {result.reason} (claw={claw_id[:16]})")
        return result

    async def _authenticate(
        self,
        method: str,
        path: str,
        body: str | bytes | None,
        headers: Mapping[str, str],
    ) -> AuthResult:
        claw_id = _header(headers, HEADER_CLAW_ID)
        timestamp = _header(headers, HEADER_TIMESTAMP)
        signature = _header(headers, HEADER_SIGNATURE)

        if not claw_id or not timestamp or not signature:
            return AuthResult(ok=False, reason=REASON_MISSING_HEADERS)

        if not (timestamp.isascii() and timestamp.isdigit()):
            return AuthResult(ok=False, reason=REASON_INVALID_TIMESTAMP)

        if abs(self._clock() - int(timestamp)) > self.max_skew_ms:
            return AuthResult(ok=False, reason=REASON_EXPIRED)

        public_key = await self.key_lookup(claw_id)
        if not public_key:
            return AuthResult(ok=False, reason=REASON_UNKNOWN_CLAW)

        # claw ids are derived from the public key
        if generate_claw_id(public_key) != claw_id:
            return AuthResult(ok=False, reason=REASON_KEY_MISMATCH)

        message = build_sign_message(method, normalize_path(path), timestamp, body)
        if not verify(signature, message, public_key):
            return AuthResult(ok=False, reason=REASON_BAD_SIGNATURE)

        return AuthResult(ok=True, claw_id=claw_id)


async def authenticate_request(authenticator: RequestAuthenticator, request: Request) -> AuthResult:
    """Authenticate a Starlette request using its raw body."""
    body = await request.body()
    return await authenticator.authenticate(request.method, request.url.path, body, request.headers)


async def require_claw(authenticator: RequestAuthenticator, request: Request) -> str:
    """Return the authenticated claw id.

    Raises:
        AuthenticationFailure: If the request is not properly signed
    """
    result = await authenticate_request(authenticator, request)
    if not result.ok:
        raise AuthenticationFailure(result.reason or REASON_ERROR)
    return result.claw_id


def unauthorized_response() -> JSONResponse:
    """The one response used for every authentication failure."""
    return JSONResponse(
        {"error": {"code": AuthenticationFailure.code, "message": "Authentication failed"}},
        status_code=401,
    )
