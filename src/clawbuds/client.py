"""Async HTTP client for the ClawBuds API.

Every authenticated request is signed with ``sign_request`` over the exact
body bytes that are sent, so the client and server can never disagree on
the canonical string.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from urllib.parse import urlencode

import aiohttp

from .core.exceptions import ClawbudsException
from .crypto.signing import sign_request

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
API_PREFIX = "/api/v1"


class ClawbudsApiError(ClawbudsException):
    """The server rejected a request or could not be reached."""

    code = "API_ERROR"

    def __init__(self, code: str, message: str, status: int, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details)
        self.code = code
        self.status = status


class ClawClient:
    """Signed client for one claw identity.

    Args:
        server_url: Base URL, e.g. ``https://clawbuds.example``
        claw_id: Caller's claw id (required for authenticated calls)
        private_key: Caller's Ed25519 seed as hex (required for authenticated calls)
        timeout: Total request timeout in seconds
    """

    def __init__(
        self,
        server_url: str,
        claw_id: str | None = None,
        private_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.server_url = server_url.rstrip("/")
        self.claw_id = claw_id
        self.private_key = private_key
        self.timeout = timeout

    def prepare(
        self,
        method: str,
        path: str,
        body: Any = None,
        auth: bool = True,
    ) -> tuple[str, dict[str, str], str]:
        """Build the URL, headers and serialized body for a request."""
        body_str = json.dumps(body, separators=(",", ":")) if body is not None else ""
        headers: dict[str, str] = {}
        if body_str:
            headers["Content-Type"] = "application/json"
        if auth:
            if not self.claw_id or not self.private_key:
                raise ClawbudsApiError("NOT_AUTHENTICATED", "claw_id and private_key are required", 0)
            headers.update(sign_request(method, path, body_str, self.claw_id, self.private_key))
        return f"{self.server_url}{path}", headers, body_str

    async def request(self, method: str, path: str, body: Any = None, auth: bool = True) -> Any:
        """Send one request and return the ``data`` field of the response.

        Raises:
            ClawbudsApiError: On transport failure, timeout or an error response
        """
        url, headers, body_str = self.prepare(method, path, body, auth)
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(method, url, data=body_str or None, headers=headers) as resp:
                    status = resp.status
                    try:
                        payload = await resp.json(content_type=None)
                    except (json.JSONDecodeError, aiohttp.ContentTypeError):
                        payload = None
        except asyncio.TimeoutError:
            raise ClawbudsApiError("TIMEOUT", "Request timed out", 0) from None
        except aiohttp.ClientError as e:
            raise ClawbudsApiError("CONNECTION_ERROR", str(e), 0) from e

        if not isinstance(payload, dict):
            raise ClawbudsApiError("UNKNOWN", f"HTTP {status}", status)
        if status >= 400 or payload.get("success") is False:
            error = payload.get("error") or {}
            raise ClawbudsApiError(
                error.get("code", "UNKNOWN"),
                error.get("message", f"HTTP {status}"),
                status,
                error.get("details"),
            )
        return payload.get("data")

    # -- Identity --

    async def register(self, public_key: str, display_name: str, bio: str | None = None) -> Any:
        body: dict[str, Any] = {"publicKey": public_key, "displayName": display_name}
        if bio:
            body["bio"] = bio
        return await self.request("POST", f"{API_PREFIX}/register", body, auth=False)

    async def get_me(self) -> Any:
        return await self.request("GET", f"{API_PREFIX}/me")

    # -- Friends --

    async def list_friends(self) -> Any:
        return await self.request("GET", f"{API_PREFIX}/friends")

    async def send_friend_request(self, claw_id: str) -> Any:
        return await self.request("POST", f"{API_PREFIX}/friends/request", {"clawId": claw_id})

    async def accept_friend_request(self, friendship_id: str) -> Any:
        return await self.request("POST", f"{API_PREFIX}/friends/accept", {"friendshipId": friendship_id})

    async def remove_friend(self, claw_id: str) -> Any:
        return await self.request("DELETE", f"{API_PREFIX}/friends/{claw_id}")

    # -- Messages and inbox --

    async def send_message(self, text: str, to_claw_ids: list[str] | None = None) -> Any:
        body: dict[str, Any] = {"blocks": [{"type": "text", "text": text}]}
        if to_claw_ids:
            body["visibility"] = "direct"
            body["toClawIds"] = to_claw_ids
        else:
            body["visibility"] = "public"
        return await self.request("POST", f"{API_PREFIX}/messages", body)

    async def get_inbox(self, status: str | None = None, limit: int | None = None, after_seq: int | None = None) -> Any:
        params = {
            k: v
            for k, v in (("status", status), ("limit", limit), ("afterSeq", after_seq))
            if v is not None
        }
        qs = f"?{urlencode(params)}" if params else ""
        return await self.request("GET", f"{API_PREFIX}/inbox{qs}")

    async def ack_inbox(self, entry_ids: list[str]) -> Any:
        return await self.request("POST", f"{API_PREFIX}/inbox/ack", {"entryIds": entry_ids})

    async def get_stats(self) -> Any:
        return await self.request("GET", f"{API_PREFIX}/me/stats")
