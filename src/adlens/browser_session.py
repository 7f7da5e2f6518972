# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Playwright browser session for AdLens.

Owns one Chromium, one context and the page scans run against. Navigation
waits for the load event, gives the network a bounded chance to go idle,
then waits for late-filling ad slots to stop mutating the DOM.

Document commits of the main frame are reported to listeners over CDP
(``Page.frameNavigated``). Same-document changes such as fragment jumps
and ``pushState`` arrive as ``Page.navigatedWithinDocument`` and are not
reported: the document, and any overlays in it, survive them.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass

from playwright.async_api import (
    Browser,
    BrowserContext,
    CDPSession,
    Dialog,
    Page,
    Playwright,
    Route,
    async_playwright,
)

from .errors import BrowserError

logger = logging.getLogger(__name__)

# Dangerous URL schemes blocked at context level. about:blank stays allowed.
BLOCKED_URL_SCHEMES = (
    "chrome://",
    "devtools://",
    "chrome-extension://",
    "view-source://",
)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)

# receives the URL of the newly committed main-frame document
NavigationListener = Callable[[str], Awaitable[None]]


@dataclass
class BrowserConfig:
    """Browser launch and navigation settings."""

    headless: bool = True
    locale: str = "en-US"
    viewport_width: int = 1280
    viewport_height: int = 800
    user_agent: str = DEFAULT_USER_AGENT
    timeout_ms: int = 30000
    idle_budget_ms: int = 6000  # ad pages often never reach networkidle
    slot_quiet_ms: int = 300
    slot_max_ms: int = 4000


@dataclass(frozen=True, slots=True)
class NavigationResult:
    """Where a navigation ended up and how long the page took to calm down."""

    url: str
    network_idle: bool
    slots: dict | None  # {waited_ms, mutations, iframes, reason}, None if unmeasured
    http_status: int | None = None


_DEAD_BROWSER_MARKERS = (
    "target closed",
    "target page",
    "browser has been closed",
    "connection closed",
    "browser disconnected",
)


def _browser_is_dead(exc: BaseException) -> bool:
    msg = str(exc).lower()
    return any(marker in msg for marker in _DEAD_BROWSER_MARKERS)


# ── Chromium install ─────────────────────────────────────────────

_install_attempted = False
_INSTALL_TIMEOUT_S = 300


async def _auto_install_chromium() -> bool:
    """``playwright install chromium``, tried at most once per process."""
    global _install_attempted  # noqa: PLW0603
    if _install_attempted:
        return False
    _install_attempted = True

    logger.info("Chromium missing; installing it with playwright")
    cmd = (sys.executable, "-m", "playwright", "install", "chromium")
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd, stdout=asyncio.subprocess.DEVNULL, stderr=asyncio.subprocess.PIPE
        )
        _, stderr = await asyncio.wait_for(proc.communicate(), timeout=_INSTALL_TIMEOUT_S)
    except (OSError, TimeoutError):
        logger.warning("Chromium install did not complete", exc_info=True)
        return False
    if proc.returncode != 0:
        logger.warning("Chromium install exited %d: %s", proc.returncode, stderr.decode(errors="replace")[:500])
        return False
    return True


def chromium_launch_args(config: BrowserConfig) -> list[str]:
    """Chromium flags. Extensions and ad-related features stay at defaults."""
    return [
        "--disable-blink-features=AutomationControlled",
        f"--lang={config.locale}",
        "--disable-dev-shm-usage",
        "--disable-sync",
        "--no-first-run",
        "--deny-permission-prompts",
        "--disable-breakpad",
        "--noerrdialogs",
        "--disable-prompt-on-repost",
    ]


class BrowserSession:
    """Owns one browser, one context and the page scans run against."""

    def __init__(self, config: BrowserConfig | None = None):
        self.config = config or BrowserConfig()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._cdp: CDPSession | None = None
        self._navigation_listeners: list[NavigationListener] = []
        self._listener_tasks: set[asyncio.Task] = set()

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser session not started. Use async with or call start().")
        return self._page

    @property
    def context(self) -> BrowserContext:
        if self._context is None:
            raise RuntimeError("Browser session not started.")
        return self._context

    async def _launch(self) -> Browser:
        args = chromium_launch_args(self.config)
        chromium = self._playwright.chromium
        try:
            return await chromium.launch(headless=self.config.headless, args=args)
        except Exception as exc:
            if "executable doesn't exist" not in str(exc).lower():
                raise BrowserError(f"Chromium launch failed: {exc}") from exc
            if not await _auto_install_chromium():
                raise BrowserError("Chromium is not installed. Please run: playwright install chromium") from exc
        return await chromium.launch(headless=self.config.headless, args=args)

    async def start(self) -> None:
        """Launch Chromium, open the scan page and start watching navigations."""
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._launch()
            self._context = await self._browser.new_context(
                viewport={"width": self.config.viewport_width, "height": self.config.viewport_height},
                locale=self.config.locale,
                user_agent=self.config.user_agent,
                permissions=[],
                accept_downloads=False,
            )
            self._context.on("dialog", self._on_dialog)
            await self._context.route("**/*", self._block_schemes)
            self._page = await self._context.new_page()
            await self._watch_navigations()
        except BaseException:
            await self.stop()
            raise
        logger.info("Browser session started (headless=%s)", self.config.headless)

    async def _watch_navigations(self) -> None:
        self._cdp = await self._context.new_cdp_session(self._page)
        self._cdp.on("Page.frameNavigated", self._on_frame_navigated)
        await self._cdp.send("Page.enable")

    async def stop(self) -> None:
        """Close everything. Safe to call twice or on a crashed browser."""
        for task in list(self._listener_tasks):
            task.cancel()
        self._listener_tasks.clear()

        if self._cdp:
            with suppress(Exception):
                await self._cdp.detach()
            self._cdp = None
        for closable in (self._context, self._browser):
            if closable is not None:
                with suppress(Exception):
                    await closable.close()
        self._context = None
        self._browser = None
        self._page = None
        if self._playwright:
            with suppress(Exception):
                await self._playwright.stop()
            self._playwright = None
        logger.info("Browser session stopped")

    async def __aenter__(self) -> BrowserSession:
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.stop()

    # ── Events ────────────────────────────────────────────────────

    def on_navigation_committed(self, listener: NavigationListener) -> None:
        """Call *listener* whenever the main frame commits a new document."""
        self._navigation_listeners.append(listener)

    def _on_frame_navigated(self, params: dict) -> None:
        frame = params.get("frame") or {}
        if frame.get("parentId"):
            return
        url = frame.get("url", "")
        logger.debug("Main frame committed a new document: %s", url)
        for listener in self._navigation_listeners:
            task = asyncio.ensure_future(listener(url))
            self._listener_tasks.add(task)
            task.add_done_callback(self._listener_done)

    def _listener_done(self, task: asyncio.Task) -> None:
        self._listener_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Navigation listener failed: %s", exc, exc_info=exc)

    async def _block_schemes(self, route: Route) -> None:
        url = route.request.url
        if url.startswith(BLOCKED_URL_SCHEMES):
            logger.debug("Scheme blocked: %s", url)
            await route.abort("blockedbyclient")
            return
        await route.continue_()

    async def _on_dialog(self, dialog: Dialog) -> None:
        """Answer JS dialogs so a modal never stalls a scan.

        alert/beforeunload are accepted, confirm/prompt dismissed.
        """
        try:
            if dialog.type in ("alert", "beforeunload"):
                await dialog.accept()
            else:
                await dialog.dismiss()
            logger.info("JS dialog auto-handled: type=%s message=%.100s", dialog.type, dialog.message)
        except Exception:
            logger.warning("JS dialog handler failed, dismissing", exc_info=True)
            with suppress(Exception):
                await dialog.dismiss()

    # ── Navigation ────────────────────────────────────────────────

    async def navigate(self, url: str) -> NavigationResult:
        """Open *url* and wait until its ad slots have most likely filled."""
        try:
            response = await self.page.goto(url, wait_until="load", timeout=self.config.timeout_ms)
            idle = await self._network_idle_within_budget()
        except BrowserError:
            raise
        except Exception as e:
            raise BrowserError(f"Navigation to {url} failed: {e}") from e

        slots = await self.wait_for_ad_slots()
        result = NavigationResult(
            url=self.page.url,
            network_idle=idle,
            slots=slots,
            http_status=response.status if response else None,
        )
        logger.info("Navigated: url=%s status=%s network_idle=%s", result.url, result.http_status, idle)
        return result

    async def _network_idle_within_budget(self) -> bool:
        budget_s = self.config.idle_budget_ms / 1000
        try:
            await asyncio.wait_for(self.page.wait_for_load_state("networkidle"), timeout=budget_s)
        except TimeoutError:
            logger.info("Network still busy after %.1fs; not waiting longer", budget_s)
            return False
        except Exception as exc:
            if _browser_is_dead(exc):
                raise BrowserError(f"Browser died while loading: {exc}") from exc
            logger.debug("networkidle wait failed: %s", exc)
            return False
        return True

    async def load_html(self, html: str) -> None:
        """Replace the page content with *html* (offline scans and tests)."""
        await self.page.set_content(html, wait_until="domcontentloaded")

    async def wait_for_ad_slots(self) -> dict | None:
        """Wait until the DOM stops changing, capped at ``slot_max_ms``.

        Returns the page-side measurements, or None when the page could not
        be measured (crash, mid-navigation).
        """
        try:
            result = await self.page.evaluate(
                _SLOT_SETTLE_JS, [self.config.slot_quiet_ms, self.config.slot_max_ms]
            )
        except Exception:
            logger.debug("Ad slot settle failed, continuing", exc_info=True)
            return None
        logger.debug("Ad slots settled: %s", result)
        return result


# Resolves once no layout-relevant mutation happened for quietMs, or at maxMs.
_SLOT_SETTLE_JS = """([quietMs, maxMs]) => new Promise(resolve => {
  const t0 = performance.now();
  let changes = 0;
  let quiet = null;
  let cap = null;
  const done = (reason) => {
    observer.disconnect();
    clearTimeout(quiet);
    clearTimeout(cap);
    resolve({
      waited_ms: Math.round(performance.now() - t0),
      mutations: changes,
      iframes: document.getElementsByTagName('iframe').length,
      reason: reason,
    });
  };
  const observer = new MutationObserver((records) => {
    changes += records.length;
    clearTimeout(quiet);
    quiet = setTimeout(() => done('quiet'), quietMs);
  });
  observer.observe(document.documentElement, {
    childList: true,
    subtree: true,
    attributes: true,
    attributeFilter: ['style', 'class', 'src', 'width', 'height'],
  });
  quiet = setTimeout(() => done('quiet'), quietMs);
  cap = setTimeout(() => done('timeout'), maxMs);
})"""
