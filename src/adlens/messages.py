# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Orchestrator <-> page-agent messages.

A closed set of request kinds, each with its own typed payload. The page
agent dispatches them with an exhaustive ``match``; adding a request kind
without handling it fails type checking (assert_never) instead of being a
silent no-op.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from . import Candidate, ConfirmedAd

# ── Requests ─────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class DiscoverSkeleton:
    """Ask for the reduced document (text stripped unless keep_text)."""

    keep_text: bool = False


@dataclass(frozen=True, slots=True)
class FetchCandidates:
    """Re-resolve selectors in the live page and return their markup."""

    selectors: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class FetchHeuristicCandidates:
    """Run the local heuristic scan."""


@dataclass(frozen=True, slots=True)
class RenderAds:
    """Replace all overlays with one per confirmed ad."""

    ads: tuple[ConfirmedAd, ...] = ()


@dataclass(frozen=True, slots=True)
class ClearOverlays:
    """Remove every overlay. Fire-and-forget."""


PageRequest = DiscoverSkeleton | FetchCandidates | FetchHeuristicCandidates | RenderAds | ClearOverlays

# ── Replies ──────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class SkeletonReply:
    markup: str


@dataclass(frozen=True, slots=True)
class CandidatesReply:
    candidates: list[Candidate] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class RenderReply:
    rendered_count: int


PageReply = SkeletonReply | CandidatesReply | RenderReply | None


class PageChannel(Protocol):
    """Transport-agnostic handle on the page-side component."""

    async def request(self, message: PageRequest) -> PageReply: ...
