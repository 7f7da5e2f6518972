# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Overlay Manager: one dismissible widget per confirmed ad.

The manager is the only owner of the overlay collection. Widgets live in
the page under a small runtime object (``window.__adlens``) installed by
``install()``; every page-side call goes through that runtime so a page
that navigated away since the last install surfaces as
ReceiverMissingError instead of a JS TypeError.

Invariant: after render/clear complete, the number of ``.adlens-overlay``
nodes in the page equals the number of records in state RENDERED.
"""

from __future__ import annotations

import enum
import itertools
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from playwright.async_api import Page

from . import ConfirmedAd
from .errors import ReceiverMissingError
from .sanitizer import sanitize_text
from .scanner import OVERLAY_CLASS

logger = logging.getLogger(__name__)

OVERLAY_ID_ATTR = "data-adlens-overlay-id"
DISMISS_BINDING = "__adlensDismiss"
RUNTIME_VERSION = 1

# ── Page runtime (static, no interpolation) ──────────────────────────

_RUNTIME_JS = """([version, overlayClass, idAttr, binding]) => {
  if (window.__adlens && window.__adlens.version === version) return false;
  const widgets = () => document.querySelectorAll('.' + overlayClass);
  window.__adlens = {
    version: version,
    measure(selector) {
      let el;
      try { el = document.querySelector(selector); } catch (e) { return {status: 'invalid'}; }
      if (!el) return {status: 'missing'};
      const r = el.getBoundingClientRect();
      return {
        status: 'ok',
        rect: [r.left, r.top, r.width, r.height],
        scroll: [window.scrollX, window.scrollY],
      };
    },
    mount(spec) {
      const box = document.createElement('div');
      box.className = overlayClass;
      box.setAttribute(idAttr, spec.id);
      Object.assign(box.style, {
        position: 'absolute',
        left: spec.left + 'px',
        top: spec.top + 'px',
        width: spec.width + 'px',
        height: spec.height + 'px',
        zIndex: '2147483647',
        boxSizing: 'border-box',
        background: 'rgba(20, 20, 20, 0.92)',
        color: '#fff',
        border: '2px solid #f5a623',
        borderRadius: '4px',
        padding: '8px 28px 8px 8px',
        font: '13px/1.4 system-ui, sans-serif',
        overflow: 'auto',
      });
      const text = document.createElement('div');
      text.textContent = spec.description;
      const close = document.createElement('button');
      close.type = 'button';
      close.textContent = '\\u00d7';
      close.setAttribute('aria-label', 'Dismiss');
      Object.assign(close.style, {
        position: 'absolute', top: '2px', right: '4px',
        background: 'none', border: 'none', color: '#fff',
        font: 'bold 18px/1 system-ui, sans-serif', cursor: 'pointer',
      });
      close.addEventListener('click', (ev) => {
        ev.preventDefault();
        ev.stopPropagation();
        box.remove();
        if (typeof window[binding] === 'function') window[binding](spec.id);
      });
      box.appendChild(close);
      box.appendChild(text);
      (document.body || document.documentElement).appendChild(box);
      return true;
    },
    remove(id) {
      let n = 0;
      for (const el of widgets()) {
        if (el.getAttribute(idAttr) === id) { el.remove(); n++; }
      }
      return n;
    },
    clear() {
      let n = 0;
      for (const el of widgets()) { el.remove(); n++; }
      return n;
    },
    count() { return widgets().length; },
  };
  return true;
}"""

_CALL_JS = """([method, arg]) => {
  const rt = window.__adlens;
  if (!rt || typeof rt[method] !== 'function') return {missing: true};
  return {value: rt[method](arg)};
}"""

_RUNTIME_CHECK_JS = "(version) => !!(window.__adlens && window.__adlens.version === version)"


class OverlayState(enum.Enum):
    RENDERED = "rendered"
    DISMISSED = "dismissed"
    CLEARED = "cleared"


@dataclass(frozen=True, slots=True)
class OverlayPlacement:
    """Document-coordinate box of the widget (viewport rect + scroll)."""

    left: float
    top: float
    width: float
    height: float


@dataclass(slots=True)
class OverlayRecord:
    overlay_id: str
    selector: str
    description: str
    placement: OverlayPlacement
    state: OverlayState = OverlayState.RENDERED


def placement_from_rect(rect: Sequence[float], scroll: Sequence[float]) -> OverlayPlacement:
    """Convert a viewport-relative [x, y, w, h] rect to document coordinates."""
    x, y, w, h = (float(v) for v in rect[:4])
    sx, sy = (float(v) for v in scroll[:2])
    return OverlayPlacement(left=x + sx, top=y + sy, width=max(w, 0.0), height=max(h, 0.0))


class OverlayManager:
    """Render, dismiss and clear overlays on one page."""

    def __init__(self, page: Page) -> None:
        self._page = page
        self._records: dict[str, OverlayRecord] = {}
        self._ids = itertools.count(1)

    @property
    def records(self) -> tuple[OverlayRecord, ...]:
        return tuple(self._records.values())

    @property
    def live_count(self) -> int:
        return sum(1 for r in self._records.values() if r.state is OverlayState.RENDERED)

    async def install(self) -> bool:
        """Install the page runtime. Returns False when it was already present."""
        return bool(await self._page.evaluate(_RUNTIME_JS, [RUNTIME_VERSION, OVERLAY_CLASS, OVERLAY_ID_ATTR, DISMISS_BINDING]))

    async def is_installed(self) -> bool:
        try:
            return bool(await self._page.evaluate(_RUNTIME_CHECK_JS, RUNTIME_VERSION))
        except Exception:
            logger.debug("Runtime presence check failed", exc_info=True)
            return False

    async def _call(self, method: str, arg: object = None):
        reply = await self._page.evaluate(_CALL_JS, [method, arg])
        if not isinstance(reply, Mapping) or reply.get("missing"):
            raise ReceiverMissingError(f"Overlay runtime is not present in the page ({method})")
        return reply.get("value")

    def _drop_rendered(self, new_state: OverlayState) -> int:
        dropped = 0
        for record in self._records.values():
            if record.state is OverlayState.RENDERED:
                record.state = new_state
                dropped += 1
        self._records.clear()
        return dropped

    async def clear(self) -> int:
        """Remove every overlay in one sweep. Idempotent.

        Records are marked CLEARED even when the runtime is gone: a page
        without the runtime holds none of our widgets.
        """
        try:
            removed = await self._call("clear")
        finally:
            dropped = self._drop_rendered(OverlayState.CLEARED)
        logger.debug("Overlays cleared: page=%s records=%d", removed, dropped)
        return int(removed or 0)

    async def render(self, ads: Iterable[ConfirmedAd]) -> int:
        """Replace all overlays with one per resolvable ad; return how many rendered."""
        await self.clear()
        ads = list(ads)
        rendered = 0
        for ad in ads:
            measured = await self._call("measure", ad.selector)
            status = measured.get("status") if isinstance(measured, Mapping) else None
            if status != "ok":
                logger.info("Overlay skipped (%s): %s", status or "no reply", ad.selector)
                continue
            placement = placement_from_rect(measured["rect"], measured["scroll"])
            overlay_id = f"adlens-{next(self._ids)}"
            description = sanitize_text(ad.description)
            await self._call(
                "mount",
                {
                    "id": overlay_id,
                    "left": placement.left,
                    "top": placement.top,
                    "width": placement.width,
                    "height": placement.height,
                    "description": description,
                },
            )
            self._records[overlay_id] = OverlayRecord(
                overlay_id=overlay_id,
                selector=ad.selector,
                description=description,
                placement=placement,
            )
            rendered += 1
        logger.info("Rendered %d/%d overlays", rendered, len(ads))
        return rendered

    def mark_dismissed(self, overlay_id: str) -> bool:
        """Record a dismissal that already happened in the page."""
        record = self._records.pop(overlay_id, None)
        if record is None or record.state is not OverlayState.RENDERED:
            return False
        record.state = OverlayState.DISMISSED
        logger.debug("Overlay dismissed: %s (%s)", overlay_id, record.selector)
        return True

    async def dismiss(self, overlay_id: str) -> bool:
        """Dismiss one overlay from the host side. Irreversible."""
        if overlay_id not in self._records:
            return False
        await self._call("remove", overlay_id)
        return self.mark_dismissed(overlay_id)

    async def page_count(self) -> int:
        """Number of overlay widgets currently mounted in the page."""
        return int(await self._call("count") or 0)
