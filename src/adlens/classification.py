# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Classification pipeline: AI selector discovery + per-candidate confirmation.

Discovery (AI-assisted strategies only): one request over the reduced
document, reply ``{"selectors": [...]}``. Any transport or parse failure
means "no selectors".

Confirmation (always): one request per candidate, all dispatched
concurrently. Each request is its own bulkhead: a failure resolves that
slot to the negative safe default and never reaches the fan-in. Results
are stored by index, so arrival order does not matter.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Protocol

from . import Candidate, ClassificationResult
from .errors import AdLensError, ResponseParseError
from .prompts import confirmation_prompt, discovery_prompt

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[A-Za-z]*")
_CONFIRMATION_KEYS = frozenset({"isAd", "description"})


class TextGenerator(Protocol):
    """Anything that turns a prompt into reply text (GeminiClient, test fakes)."""

    async def generate(self, prompt: str) -> str: ...


def strip_fences(text: str) -> str:
    """Remove Markdown code fences the model sometimes wraps JSON in."""
    return _FENCE_RE.sub("", text).strip()


def _load_object(text: str) -> dict:
    cleaned = strip_fences(text)
    try:
        data = json.loads(cleaned)
    except (json.JSONDecodeError, TypeError) as e:
        raise ResponseParseError(f"Reply is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ResponseParseError(f"Reply is a JSON {type(data).__name__}, expected an object")
    return data


def parse_classification(text: str) -> ClassificationResult:
    """Strict parser for ``{"isAd": bool, "description": str}``.

    Exactly those two keys; isAd must be a real boolean; an ad must come
    with a description. A negative verdict never carries a description.
    """
    data = _load_object(text)
    keys = set(data)
    if keys != _CONFIRMATION_KEYS:
        raise ResponseParseError(f"Unexpected keys {sorted(keys)}")
    is_ad = data["isAd"]
    description = data["description"]
    if not isinstance(is_ad, bool):
        raise ResponseParseError("isAd is not a boolean")
    if not isinstance(description, str):
        raise ResponseParseError("description is not a string")
    description = description.strip()
    if not is_ad:
        return ClassificationResult.negative()
    if not description:
        raise ResponseParseError("Ad verdict without description")
    return ClassificationResult(is_ad=True, description=description)


def parse_selector_list(text: str) -> list[str]:
    """Parser for ``{"selectors": [str, ...]}``; non-strings dropped, order kept."""
    data = _load_object(text)
    raw = data.get("selectors")
    if not isinstance(raw, list):
        raise ResponseParseError("Reply has no 'selectors' list")
    seen: set[str] = set()
    selectors: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            continue
        item = item.strip()
        if item and item not in seen:
            seen.add(item)
            selectors.append(item)
    return selectors


class ClassificationPipeline:
    """Runs the two AI stages against one TextGenerator."""

    def __init__(self, client: TextGenerator, *, max_concurrency: int = 0) -> None:
        self.client = client
        self._semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency > 0 else None

    async def discover(self, document: str, *, keeps_text: bool = False) -> list[str]:
        """Discovery stage. Degrades to [] on transport or parse failure."""
        if not document.strip():
            return []
        try:
            text = await self.client.generate(discovery_prompt(document, keeps_text=keeps_text))
            selectors = parse_selector_list(text)
        except AdLensError as e:
            logger.warning("Discovery stage degraded to zero selectors: %s", e)
            return []
        logger.info("Discovery stage returned %d selectors", len(selectors))
        return selectors

    async def _classify_one(self, index: int, candidate: Candidate) -> ClassificationResult:
        try:
            if self._semaphore is None:
                text = await self.client.generate(confirmation_prompt(candidate.markup))
            else:
                async with self._semaphore:
                    text = await self.client.generate(confirmation_prompt(candidate.markup))
            return parse_classification(text)
        except AdLensError as e:
            logger.warning("Candidate %d (%s) classification failed: %s", index, candidate.selector, e)
        except Exception:
            logger.warning("Candidate %d (%s) classification crashed", index, candidate.selector, exc_info=True)
        return ClassificationResult.negative()

    async def confirm(self, candidates: list[Candidate]) -> list[ClassificationResult]:
        """Confirmation stage: fan out one request per candidate, wait for all."""
        if not candidates:
            return []
        results = await asyncio.gather(*(self._classify_one(i, cand) for i, cand in enumerate(candidates)))
        positives = sum(1 for r in results if r.is_ad)
        logger.info("Confirmation stage: %d/%d candidates are ads", positives, len(candidates))
        return list(results)
