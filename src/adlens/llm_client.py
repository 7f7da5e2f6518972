# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Gemini generateContent transport over httpx.

Treats the endpoint as a black box: one prompt in, one text reply out.
Every failure surfaces as TransportError (network, non-2xx) or
ResponseParseError (envelope without text); callers decide how to degrade.
"""

from __future__ import annotations

import logging

import httpx

from .config import DEFAULT_API_BASE, DEFAULT_MODEL
from .errors import ResponseParseError, TransportError

logger = logging.getLogger(__name__)

_ERROR_BODY_LOG_LEN = 300


def extract_reply_text(payload: object) -> str:
    """Pull ``candidates[0].content.parts[0].text`` out of a reply envelope."""
    try:
        text = payload["candidates"][0]["content"]["parts"][0]["text"]  # type: ignore[index]
    except (KeyError, IndexError, TypeError) as e:
        raise ResponseParseError("Reply envelope has no candidate text") from e
    if not isinstance(text, str) or not text.strip():
        raise ResponseParseError("Reply candidate text is empty")
    return text


class GeminiClient:
    """Async client for a single model. Use as an async context manager."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_MODEL,
        api_base: str = DEFAULT_API_BASE,
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self.model = model
        self.api_base = api_base.rstrip("/")
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s),
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    @property
    def endpoint(self) -> str:
        return f"{self.api_base}/models/{self.model}:generateContent"

    async def generate(self, prompt: str) -> str:
        """Send *prompt*, return the model's reply text."""
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }
        try:
            resp = await self._client.post(self.endpoint, params={"key": self._api_key}, json=payload)
        except httpx.HTTPError as e:
            # str(e) may embed the request URL; log the type only
            raise TransportError(f"Request to {self.model} failed: {type(e).__name__}") from e

        if not resp.is_success:
            logger.warning(
                "API request failed: status=%d body=%.*s",
                resp.status_code,
                _ERROR_BODY_LOG_LEN,
                resp.text,
            )
            raise TransportError(f"API returned HTTP {resp.status_code}", status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as e:
            raise ResponseParseError("Reply envelope is not JSON") from e
        return extract_reply_text(data)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GeminiClient:
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()
