# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for adlens.llm_client: Gemini transport over httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from adlens.errors import ResponseParseError, TransportError
from adlens.llm_client import GeminiClient, extract_reply_text


def _envelope(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}


def _client(handler, **kw) -> GeminiClient:
    return GeminiClient("sk-test", transport=httpx.MockTransport(handler), **kw)


class TestExtractReplyText:
    def test_happy_path(self):
        assert extract_reply_text(_envelope('{"isAd": false}')) == '{"isAd": false}'

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"candidates": []},
            {"candidates": [{"content": {"parts": []}}]},
            {"candidates": [{"finishReason": "SAFETY"}]},
            {"candidates": [{"content": {"parts": [{"text": "  "}]}}]},
            ["not", "a", "dict"],
        ],
    )
    def test_malformed(self, payload):
        with pytest.raises(ResponseParseError):
            extract_reply_text(payload)


class TestGeminiClient:
    async def test_request_shape(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_envelope("ok"))

        async with _client(handler, model="gemini-test", api_base="https://api.example/v1beta/") as client:
            assert await client.generate("hello") == "ok"

        assert seen["url"].path == "/v1beta/models/gemini-test:generateContent"
        assert seen["url"].params["key"] == "sk-test"
        assert seen["body"]["contents"] == [{"role": "user", "parts": [{"text": "hello"}]}]
        assert seen["body"]["generationConfig"]["responseMimeType"] == "application/json"

    async def test_non_2xx_is_transport_error(self):
        def handler(request):
            return httpx.Response(429, json={"error": {"message": "quota"}})

        async with _client(handler) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.generate("x")
        assert exc_info.value.status_code == 429

    async def test_network_error_hides_key(self):
        def handler(request):
            raise httpx.ConnectError(f"cannot reach {request.url}")

        async with _client(handler) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.generate("x")
        assert "sk-test" not in str(exc_info.value)
        assert "ConnectError" in str(exc_info.value)

    async def test_non_json_envelope(self):
        def handler(request):
            return httpx.Response(200, text="<html>gateway</html>")

        async with _client(handler) as client:
            with pytest.raises(ResponseParseError):
                await client.generate("x")

    async def test_envelope_without_text(self):
        def handler(request):
            return httpx.Response(200, json={"candidates": []})

        async with _client(handler) as client:
            with pytest.raises(ResponseParseError):
                await client.generate("x")

    def test_endpoint(self):
        client = GeminiClient("k", model="m1", api_base="https://h/v1/")
        assert client.endpoint == "https://h/v1/models/m1:generateContent"
