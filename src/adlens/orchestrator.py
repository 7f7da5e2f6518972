# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Scan Orchestrator: one user-triggered scan, end to end.

    target -> inject -> clear -> credential -> discover -> confirm -> render

Expected failures degrade inside the stage that hit them (a candidate
becomes a non-ad, a selector is skipped). Everything that still escapes is
caught exactly once, in ``scan``, and reported as an error result.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import Protocol

import structlog
from playwright.async_api import Error as PlaywrightError

from . import ScanResult, confirmed_ads
from .browser_session import BrowserSession
from .classification import ClassificationPipeline, TextGenerator
from .config import ScanConfig
from .credentials import CredentialStore
from .errors import AdLensError, MissingCredentialError, ReceiverMissingError
from .llm_client import GeminiClient
from .messages import ClearOverlays, PageChannel, RenderAds, RenderReply
from .pipeline_timer import PipelineTimer
from .strategies import DiscoveryStrategy, get_strategy

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, ScanConfig], TextGenerator]


class InjectablePage(PageChannel, Protocol):
    async def ensure_injected(self) -> None: ...


def gemini_client_factory(api_key: str, config: ScanConfig) -> GeminiClient:
    return GeminiClient(
        api_key,
        model=config.model,
        api_base=config.api_base,
        timeout_s=config.request_timeout_s,
    )


class ScanOrchestrator:
    """Drives scans against one page agent."""

    def __init__(
        self,
        agent: InjectablePage,
        *,
        credentials: CredentialStore | None = None,
        config: ScanConfig | None = None,
        session: BrowserSession | None = None,
        client_factory: ClientFactory = gemini_client_factory,
        strategy: DiscoveryStrategy | None = None,
        on_open_configuration: Callable[[], None] | None = None,
    ) -> None:
        self.agent = agent
        self.credentials = credentials or CredentialStore()
        self.config = config or ScanConfig()
        self.session = session
        self.client_factory = client_factory
        self.strategy = strategy or get_strategy(self.config.strategy)
        self.on_open_configuration = on_open_configuration
        if session is not None:
            session.on_navigation_committed(self.on_navigation_committed)

    async def scan(self, target: str | None = None) -> ScanResult:
        """Run one scan on *target* (a URL) or, if None, on the current page."""
        scan_id = uuid.uuid4().hex[:12]
        structlog.contextvars.bind_contextvars(scan_id=scan_id, strategy=self.strategy.name)
        timer = PipelineTimer()
        try:
            result = await self._run(target, timer)
        except MissingCredentialError as e:
            logger.warning("Scan aborted: %s", e)
            if self.on_open_configuration is not None:
                self.on_open_configuration()
            result = ScanResult.error(str(e), open_configuration=True)
        except Exception as e:
            report = timer.failure_report()
            logger.error(
                "Scan failed at stage=%s: %s (hint: %s)",
                report["failed_at"],
                e,
                report["hint"],
                exc_info=not isinstance(e, AdLensError),
            )
            result = ScanResult.error(str(e) or type(e).__name__)
        finally:
            timer.finalize()
            logger.info("Scan timings (ms): %s total=%.1f", timer.elapsed_per_stage(), timer.total_ms)
            structlog.contextvars.unbind_contextvars("scan_id", "strategy")
        logger.info("Scan finished: %s", result.status_text())
        return result

    async def _run(self, target: str | None, timer: PipelineTimer) -> ScanResult:
        if target:
            timer.stage("navigation")
            if self.session is None:
                raise AdLensError("No browser session to navigate with")
            await self.session.navigate(target)

        timer.stage("inject")
        await self.agent.ensure_injected()

        timer.stage("clear")
        await self.agent.request(ClearOverlays())

        timer.stage("credentials")
        api_key = self.credentials.get()
        if not api_key:
            raise MissingCredentialError()

        client = self.client_factory(api_key, self.config)
        try:
            pipeline = ClassificationPipeline(client, max_concurrency=self.config.max_concurrency)

            timer.stage("discovery")
            candidates = await self.strategy.discover(self.agent, pipeline)
            if not candidates:
                logger.info("No candidates found")
                return ScanResult.success(0)

            timer.stage("confirmation")
            results = await pipeline.confirm(candidates)
            ads = confirmed_ads(candidates, results)
            if not ads:
                logger.info("No candidate confirmed as an ad (%d checked)", len(candidates))
                return ScanResult.success(0)
        finally:
            aclose = getattr(client, "aclose", None)
            if aclose is not None:
                await aclose()

        timer.stage("render")
        reply = await self.agent.request(RenderAds(ads=tuple(ads)))
        if not isinstance(reply, RenderReply):
            raise AdLensError(f"Unexpected render reply: {type(reply).__name__}")
        return ScanResult.success(reply.rendered_count, ads=tuple(ads))

    async def on_navigation_committed(self, url: str) -> None:
        """Clear overlays when the main frame commits a new document."""
        logger.debug("Clearing overlays after navigation to %s", url)
        try:
            await self.agent.request(ClearOverlays())
        except ReceiverMissingError:
            logger.debug("Navigation clear skipped: page runtime not present")
        except PlaywrightError as e:
            # the old document may be torn down mid-evaluate
            logger.debug("Navigation clear raced with document teardown: %s", e)
