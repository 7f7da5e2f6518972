# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Point-in-time snapshot of the live DOM: lxml tree + per-element layout.

A single evaluate call stamps every element with a temporary index
attribute, records its box, computed style and canonical selector,
resolves any requested selectors, serializes the document and removes the
stamps again. The index survives in the lxml tree so layout can be looked
up per element; it is stripped from any markup leaving this module.

Selectors are taken from the live DOM, not from the lxml tree. libxml2
restructures some markup browsers keep intact (a <p> inside an <h2>), so a
path counted on the re-parse can point at a different live element.
"""

from __future__ import annotations

import copy
import logging
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

import lxml.html
from lxml import etree
from playwright.async_api import Page

from .errors import BrowserError
from .selector import generate_selector, resolve_selector

logger = logging.getLogger(__name__)

IX_ATTR = "data-adlens-ix"

_EMPTY_DOCUMENT = "<html><head></head><body></body></html>"

# ── Snapshot JS (static, no interpolation) ─────────────────────────

_SNAPSHOT_JS = """(queries) => {
  const ATTR = 'data-adlens-ix';
  const all = [document.documentElement, ...document.documentElement.querySelectorAll('*')];
  const idCounts = new Map();
  for (const el of all) {
    const id = el.getAttribute('id');
    if (id) idCounts.set(id, (idCounts.get(id) || 0) + 1);
  }
  const paths = new Map();
  const pathOf = (el) => {
    const tag = el.localName.toLowerCase();
    if (tag === 'body' || !el.parentElement) return tag === 'body' ? 'body' : CSS.escape(tag);
    let k = 1;
    for (let s = el.previousElementSibling; s; s = s.previousElementSibling) {
      if (s.localName === el.localName) k++;
    }
    return paths.get(el.parentElement) + ' > ' + CSS.escape(tag) + ':nth-of-type(' + k + ')';
  };
  const boxes = new Array(all.length);
  const selectors = new Array(all.length);
  for (let i = 0; i < all.length; i++) {
    const el = all[i];
    el.setAttribute(ATTR, String(i));
    const path = pathOf(el);
    paths.set(el, path);
    const id = el.getAttribute('id');
    selectors[i] = id && idCounts.get(id) === 1 ? '#' + CSS.escape(id) : path;
    let rec = null;
    try {
      const r = el.getBoundingClientRect();
      const cs = getComputedStyle(el);
      rec = [
        r.left, r.top, r.width, r.height,
        cs.display, cs.visibility, cs.position,
        cs.display !== 'none' && el.getClientRects().length > 0
      ];
    } catch (e) {}
    boxes[i] = rec;
  }
  const matches = {};
  for (const q of queries || []) {
    let hit = -1;
    try {
      const m = document.querySelector(q);
      if (m && m.hasAttribute(ATTR)) hit = Number(m.getAttribute(ATTR));
    } catch (e) {}
    matches[q] = hit;
  }
  const html = document.documentElement.outerHTML;
  for (const el of all) el.removeAttribute(ATTR);
  return {
    html: html,
    boxes: boxes,
    selectors: selectors,
    matches: matches,
    viewport: [window.innerWidth, window.innerHeight],
    scroll: [window.scrollX, window.scrollY],
  };
}"""


@dataclass(frozen=True, slots=True)
class ElementBox:
    """Viewport-relative box and the style bits the heuristics need."""

    x: float
    y: float
    width: float
    height: float
    display: str = "block"
    visibility: str = "visible"
    position: str = "static"
    rendered: bool = True

    @property
    def is_visible(self) -> bool:
        return self.rendered and self.display != "none" and self.visibility not in ("hidden", "collapse")

    @classmethod
    def from_record(cls, rec) -> ElementBox | None:
        if not rec or len(rec) < 8:
            return None
        try:
            return cls(
                x=float(rec[0]),
                y=float(rec[1]),
                width=float(rec[2]),
                height=float(rec[3]),
                display=str(rec[4]),
                visibility=str(rec[5]),
                position=str(rec[6]),
                rendered=bool(rec[7]),
            )
        except (TypeError, ValueError):
            return None


@dataclass
class PageSnapshot:
    """Parsed document plus layout keyed by snapshot index."""

    root: lxml.html.HtmlElement
    boxes: dict[int, ElementBox] = field(default_factory=dict)
    viewport_width: float = 1280.0
    viewport_height: float = 800.0
    # live-DOM canonical selector per index, and live querySelector hits
    selectors: dict[int, str] = field(default_factory=dict)
    matches: dict[str, int] = field(default_factory=dict)
    _by_index: dict[int, lxml.html.HtmlElement] | None = field(default=None, init=False, repr=False)

    @property
    def body(self) -> lxml.html.HtmlElement | None:
        return self.root.find(".//body") if self.root.tag != "body" else self.root

    def index_of(self, el: lxml.html.HtmlElement) -> int | None:
        raw = el.get(IX_ATTR)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            return None

    def box_for(self, el: lxml.html.HtmlElement) -> ElementBox | None:
        ix = self.index_of(el)
        return None if ix is None else self.boxes.get(ix)

    def element_at(self, ix: int) -> lxml.html.HtmlElement | None:
        if self._by_index is None:
            self._by_index = {}
            for el in _iter_elements(self.root):
                found = self.index_of(el)
                if found is not None:
                    self._by_index[found] = el
        return self._by_index.get(ix)

    def selector_for(self, el: lxml.html.HtmlElement, counts: Counter | None = None) -> str:
        """Canonical selector for *el*, as the live page resolves it.

        Offline snapshots carry no live selectors and fall back to one
        generated from the lxml tree.
        """
        ix = self.index_of(el)
        if ix is not None and ix in self.selectors:
            return self.selectors[ix]
        return generate_selector(el, counts=counts)

    def find(self, selector: str) -> lxml.html.HtmlElement | None:
        """First element *selector* matches, resolved in the live page when
        the snapshot was captured with that query, else against the tree."""
        if selector in self.matches:
            ix = self.matches[selector]
            return None if ix < 0 else self.element_at(ix)
        return resolve_selector(self.root, selector)

    def markup_of(self, el: lxml.html.HtmlElement, max_chars: int | None = None) -> str:
        """Serialize *el*'s subtree without snapshot bookkeeping attributes."""
        clone = copy.deepcopy(el)
        clone.tail = None
        strip_index_attrs(clone)
        markup = lxml.html.tostring(clone, encoding="unicode", with_tail=False)
        if max_chars is not None and len(markup) > max_chars:
            markup = markup[:max_chars]
        return markup

    @classmethod
    def from_markup(
        cls,
        html: str,
        boxes: Mapping[str, ElementBox] | None = None,
        *,
        default_box: ElementBox | None = None,
        viewport_width: float = 1280.0,
        viewport_height: float = 800.0,
    ) -> PageSnapshot:
        """Build a snapshot from static HTML (offline use and tests).

        *boxes* maps selectors to layout; every other element gets
        *default_box* (or no layout at all when it is None).
        """
        root = parse_document(html)
        layout: dict[int, ElementBox] = {}
        for i, el in enumerate(_iter_elements(root)):
            el.set(IX_ATTR, str(i))
            if default_box is not None:
                layout[i] = default_box
        for selector, box in (boxes or {}).items():
            el = resolve_selector(root, selector)
            if el is None:
                raise ValueError(f"layout selector matched nothing: {selector}")
            layout[int(el.get(IX_ATTR))] = box
        return cls(root=root, boxes=layout, viewport_width=viewport_width, viewport_height=viewport_height)


def _iter_elements(root: lxml.html.HtmlElement):
    for el in root.iter():
        if isinstance(el.tag, str):
            yield el


def strip_index_attrs(el: lxml.html.HtmlElement) -> None:
    for node in el.iter():
        if isinstance(node.tag, str) and IX_ATTR in node.attrib:
            del node.attrib[IX_ATTR]


def parse_document(html: str) -> lxml.html.HtmlElement:
    """Parse a full document, tolerating empty or broken input."""
    if not html or not html.strip():
        html = _EMPTY_DOCUMENT
    parser = lxml.html.HTMLParser(recover=True, encoding="utf-8")
    try:
        return lxml.html.document_fromstring(html.encode("utf-8"), parser=parser)
    except (etree.ParserError, ValueError):
        logger.warning("Document parse failed, using empty document")
        return lxml.html.document_fromstring(_EMPTY_DOCUMENT)


async def capture_snapshot(page: Page, queries: Iterable[str] = ()) -> PageSnapshot:
    """Capture the live page. Raises BrowserError if the page cannot be read.

    Each selector in *queries* is resolved with the page's own
    querySelector while the index stamps are in place.
    """
    try:
        raw = await page.evaluate(_SNAPSHOT_JS, list(queries))
    except Exception as e:
        raise BrowserError(f"DOM snapshot failed: {e}") from e
    if not isinstance(raw, dict):
        raise BrowserError("DOM snapshot returned no data")

    root = parse_document(raw.get("html", ""))
    boxes: dict[int, ElementBox] = {}
    for i, rec in enumerate(raw.get("boxes") or []):
        box = ElementBox.from_record(rec)
        if box is not None:
            boxes[i] = box
    selectors = {i: s for i, s in enumerate(raw.get("selectors") or []) if isinstance(s, str) and s}
    matches = {q: int(ix) for q, ix in (raw.get("matches") or {}).items() if isinstance(ix, (int, float))}

    viewport = raw.get("viewport") or [1280, 800]
    logger.debug("Snapshot captured: %d elements with layout, %d queries", len(boxes), len(matches))
    return PageSnapshot(
        root=root,
        boxes=boxes,
        viewport_width=float(viewport[0]),
        viewport_height=float(viewport[1]),
        selectors=selectors,
        matches=matches,
    )
