"""Tests for the async API client."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from clawbuds.client import ClawbudsApiError, ClawClient
from clawbuds.crypto.signing import (
    HEADER_CLAW_ID,
    HEADER_SIGNATURE,
    HEADER_TIMESTAMP,
    build_sign_message,
    generate_claw_id,
    verify,
)


@pytest.fixture
def client(keypair):
    return ClawClient("https://clawbuds.example/", generate_claw_id(keypair.public_key), keypair.private_key)


def mock_session(status=200, payload=None, error=None):
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=payload)

    request_ctx = MagicMock()
    request_ctx.__aenter__ = AsyncMock(return_value=response)
    request_ctx.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.request = MagicMock(side_effect=error) if error else MagicMock(return_value=request_ctx)

    session_ctx = MagicMock()
    session_ctx.__aenter__ = AsyncMock(return_value=session)
    session_ctx.__aexit__ = AsyncMock(return_value=False)
    return session_ctx, session


class TestPrepare:
    """Test request preparation."""

    def test_signs_exact_body(self, client, keypair):
        url, headers, body = client.prepare("POST", "/api/v1/inbox/ack", {"entryIds": ["e1"]})

        assert url == "https://clawbuds.example/api/v1/inbox/ack"
        assert body == '{"entryIds":["e1"]}'
        assert headers["Content-Type"] == "application/json"
        message = build_sign_message("POST", "/api/v1/inbox/ack", headers[HEADER_TIMESTAMP], body)
        assert verify(headers[HEADER_SIGNATURE], message, keypair.public_key)

    def test_unauthenticated_request(self):
        _, headers, body = ClawClient("https://x").prepare("POST", "/api/v1/register", {"a": 1}, auth=False)
        assert HEADER_CLAW_ID not in headers
        assert body == '{"a":1}'

    def test_missing_identity(self):
        with pytest.raises(ClawbudsApiError) as exc_info:
            ClawClient("https://x").prepare("GET", "/api/v1/me")
        assert exc_info.value.code == "NOT_AUTHENTICATED"


class TestRequest:
    """Test response handling."""

    @pytest.mark.asyncio
    async def test_returns_data(self, client):
        session_ctx, session = mock_session(payload={"success": True, "data": {"clawId": "claw_x"}})
        with patch("clawbuds.client.aiohttp.ClientSession", return_value=session_ctx):
            assert await client.get_me() == {"clawId": "claw_x"}

        method, url = session.request.call_args.args
        assert (method, url) == ("GET", "https://clawbuds.example/api/v1/me")

    @pytest.mark.asyncio
    async def test_error_response(self, client):
        payload = {"success": False, "error": {"code": "NOT_FOUND", "message": "No such claw"}}
        session_ctx, _ = mock_session(status=404, payload=payload)
        with patch("clawbuds.client.aiohttp.ClientSession", return_value=session_ctx):
            with pytest.raises(ClawbudsApiError) as exc_info:
                await client.remove_friend("claw_y")

        assert exc_info.value.code == "NOT_FOUND"
        assert exc_info.value.status == 404

    @pytest.mark.asyncio
    async def test_non_json_response(self, client):
        session_ctx, _ = mock_session(status=502, payload=None)
        with patch("clawbuds.client.aiohttp.ClientSession", return_value=session_ctx):
            with pytest.raises(ClawbudsApiError) as exc_info:
                await client.get_me()
        assert exc_info.value.message == "HTTP 502"

    @pytest.mark.asyncio
    async def test_connection_error(self, client):
        session_ctx, _ = mock_session(error=aiohttp.ClientConnectionError("refused"))
        with patch("clawbuds.client.aiohttp.ClientSession", return_value=session_ctx):
            with pytest.raises(ClawbudsApiError) as exc_info:
                await client.get_me()
        assert exc_info.value.code == "CONNECTION_ERROR"

    @pytest.mark.asyncio
    async def test_inbox_query_string_is_signed_without_query(self, client, keypair):
        session_ctx, session = mock_session(payload={"success": True, "data": []})
        with patch("clawbuds.client.aiohttp.ClientSession", return_value=session_ctx):
            await client.get_inbox(status="all", limit=10, after_seq=3)

        _, url = session.request.call_args.args
        headers = session.request.call_args.kwargs["headers"]
        assert url.endswith("/api/v1/inbox?status=all&limit=10&afterSeq=3")
        message = build_sign_message("GET", "/api/v1/inbox", headers[HEADER_TIMESTAMP], "")
        assert verify(headers[HEADER_SIGNATURE], message, keypair.public_key)

    @pytest.mark.asyncio
    async def test_send_direct_message_body(self, client):
        session_ctx, session = mock_session(payload={"success": True, "data": {"id": "m1"}})
        with patch("clawbuds.client.aiohttp.ClientSession", return_value=session_ctx):
            await client.send_message("hi", ["claw_b"])

        body = json.loads(session.request.call_args.kwargs["data"])
        assert body == {"blocks": [{"type": "text", "text": "hi"}], "visibility": "direct", "toClawIds": ["claw_b"]}
