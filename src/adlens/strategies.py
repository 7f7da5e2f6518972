# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Discovery strategies: how candidates are first produced.

All three share ``discover(page, pipeline) -> candidates`` so the rest of
the scan does not change when the deployment switches strategy:

- heuristic:  local detectors run by the page agent
- skeleton:   AI picks selectors from a structure-only document
- whole_page: AI picks selectors from the document with shortened text

Strategies are mutually exclusive; their candidate sets are never merged.
"""

from __future__ import annotations

import logging
from typing import Protocol

from . import Candidate
from .classification import ClassificationPipeline
from .config import STRATEGY_HEURISTIC, STRATEGY_SKELETON, STRATEGY_WHOLE_PAGE
from .errors import ConfigurationError
from .messages import (
    CandidatesReply,
    DiscoverSkeleton,
    FetchCandidates,
    FetchHeuristicCandidates,
    PageChannel,
    SkeletonReply,
)

logger = logging.getLogger(__name__)


class DiscoveryStrategy(Protocol):
    name: str
    uses_ai: bool

    async def discover(self, page: PageChannel, pipeline: ClassificationPipeline) -> list[Candidate]: ...


def _candidates(reply: object) -> list[Candidate]:
    if not isinstance(reply, CandidatesReply):
        raise TypeError(f"Expected CandidatesReply, got {type(reply).__name__}")
    return reply.candidates


class HeuristicStrategy:
    name = STRATEGY_HEURISTIC
    uses_ai = False

    async def discover(self, page: PageChannel, pipeline: ClassificationPipeline) -> list[Candidate]:
        return _candidates(await page.request(FetchHeuristicCandidates()))


class SkeletonStrategy:
    """AI-assisted discovery over the reduced document."""

    name = STRATEGY_SKELETON
    uses_ai = True
    keep_text = False

    async def discover(self, page: PageChannel, pipeline: ClassificationPipeline) -> list[Candidate]:
        reply = await page.request(DiscoverSkeleton(keep_text=self.keep_text))
        if not isinstance(reply, SkeletonReply):
            raise TypeError(f"Expected SkeletonReply, got {type(reply).__name__}")
        selectors = await pipeline.discover(reply.markup, keeps_text=self.keep_text)
        if not selectors:
            return []
        return _candidates(await page.request(FetchCandidates(selectors=tuple(selectors))))


class WholePageStrategy(SkeletonStrategy):
    """Single AI pass over the text-bearing page."""

    name = STRATEGY_WHOLE_PAGE
    keep_text = True


_STRATEGIES: dict[str, type] = {
    STRATEGY_HEURISTIC: HeuristicStrategy,
    STRATEGY_SKELETON: SkeletonStrategy,
    STRATEGY_WHOLE_PAGE: WholePageStrategy,
}


def get_strategy(name: str) -> DiscoveryStrategy:
    try:
        return _STRATEGIES[name]()
    except KeyError:
        raise ConfigurationError(f"Unknown discovery strategy {name!r}") from None
