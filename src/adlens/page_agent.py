# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Page-side component: answers orchestrator requests against one page.

DOM reads go through a fresh snapshot per request; overlay writes go
through the OverlayManager. Requests are dispatched with an exhaustive
match over the closed message union.
"""

from __future__ import annotations

import logging
from typing import assert_never

from playwright.async_api import Page

from .config import ScanConfig
from .messages import (
    CandidatesReply,
    ClearOverlays,
    DiscoverSkeleton,
    FetchCandidates,
    FetchHeuristicCandidates,
    PageReply,
    PageRequest,
    RenderAds,
    RenderReply,
    SkeletonReply,
)
from .overlay import DISMISS_BINDING, OverlayManager
from .scanner import CandidateScanner, build_skeleton
from .snapshot import capture_snapshot

logger = logging.getLogger(__name__)


class PageAgent:
    """Handles page requests for a single Playwright page."""

    def __init__(
        self,
        page: Page,
        config: ScanConfig | None = None,
        *,
        scanner: CandidateScanner | None = None,
        overlays: OverlayManager | None = None,
    ) -> None:
        self.page = page
        self.config = config or ScanConfig()
        self.scanner = scanner or CandidateScanner(
            min_size_px=self.config.min_size_px,
            max_markup_chars=self.config.max_markup_chars,
        )
        self.overlays = overlays or OverlayManager(page)
        self._binding_exposed = False

    async def _on_dismiss(self, source, overlay_id) -> None:
        self.overlays.mark_dismissed(str(overlay_id))

    async def ensure_injected(self) -> None:
        """Install the page runtime if absent. Safe to call before every scan."""
        if not self._binding_exposed:
            # bindings survive navigation; the runtime object does not
            await self.page.expose_binding(DISMISS_BINDING, self._on_dismiss)
            self._binding_exposed = True
        if await self.overlays.install():
            logger.debug("Page runtime installed")

    async def is_injected(self) -> bool:
        return await self.overlays.is_installed()

    async def request(self, message: PageRequest) -> PageReply:
        match message:
            case DiscoverSkeleton(keep_text=keep_text):
                snapshot = await capture_snapshot(self.page)
                markup = build_skeleton(snapshot, keep_text=keep_text, max_chars=self.config.max_document_chars)
                logger.debug("Skeleton built: %d chars (keep_text=%s)", len(markup), keep_text)
                return SkeletonReply(markup=markup)
            case FetchCandidates(selectors=selectors):
                snapshot = await capture_snapshot(self.page, selectors)
                return CandidatesReply(candidates=self.scanner.fetch(snapshot, selectors))
            case FetchHeuristicCandidates():
                snapshot = await capture_snapshot(self.page)
                return CandidatesReply(candidates=self.scanner.scan(snapshot))
            case RenderAds(ads=ads):
                return RenderReply(rendered_count=await self.overlays.render(ads))
            case ClearOverlays():
                await self.overlays.clear()
                return None
            case _:
                assert_never(message)
