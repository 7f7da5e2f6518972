# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Candidate scanner: structural ad heuristics over a page snapshot.

Six independent detectors nominate elements:
  1. ad keywords in id/class (multilingual)
  2. ad-network attribute names
  3. iframes served from ad domains
  4. new-context links wrapping an image
  5. complementary/banner ARIA roles
  6. fixed/sticky elements pinned to a viewport edge

Nominations pass a size + visibility filter and are deduplicated by
selector. The module also builds the reduced "skeleton" document used by
AI-assisted discovery, and re-resolves AI-suggested selectors.
"""

from __future__ import annotations

import copy
import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

import lxml.html
from lxml import etree

from . import Candidate
from .selector import id_counts
from .snapshot import ElementBox, PageSnapshot, strip_index_attrs

logger = logging.getLogger(__name__)

OVERLAY_CLASS = "adlens-overlay"

_DEFAULT_MIN_SIZE_PX = 30.0
_DEFAULT_MAX_MARKUP_CHARS = 8000
_EDGE_TOLERANCE_PX = 2.0
_TEXT_KEEP_CHARS = 80

# ── Detector vocabularies ────────────────────────────────────────────

# Whole tokens after splitting id/class on separators.
AD_TOKENS: frozenset[str] = frozenset(
    {
        # en
        "ad",
        "ads",
        "adv",
        "advert",
        "adverts",
        "advertisement",
        "advertising",
        "adbox",
        "adslot",
        "adunit",
        "adcontainer",
        "adsense",
        "sponsor",
        "sponsored",
        "promo",
        "promoted",
        "promotion",
        "banner",
        "doubleclick",
        # de
        "werbung",
        "anzeige",
        # fr
        "publicite",
        "publicité",
        # es / pt
        "publicidad",
        "publicidade",
        "anuncio",
        "anuncios",
        "patrocinado",
        # it
        "pubblicita",
        "pubblicità",
        "sponsorizzato",
        # nl
        "reclame",
        "advertentie",
        # pl / cs
        "reklama",
        "reklamy",
        # ru
        "реклама",
        # ko / ja / zh
        "광고",
        "広告",
        "广告",
        "廣告",
    }
)

# Substrings distinctive enough to match inside compound names. The
# "ad-" and "ad_" entries must begin a word, so "load-unit" is not "ad-unit".
AD_SUBSTRINGS: tuple[str, ...] = (
    "advert",
    "sponsor",
    "google_ads",
    "googleads",
    "adsbygoogle",
    "doubleclick",
    "adsense",
    "ad-slot",
    "ad_slot",
    "ad-unit",
    "ad_unit",
    "ad-container",
    "ad_container",
    "ad-banner",
    "ad_banner",
    "gpt-ad",
    "werbung",
    "anzeige",
    "реклам",
    "광고",
    "広告",
    "广告",
)

_TOKEN_SPLIT_RE = re.compile(r"[\s\-_:./]+")
_AD_SUBSTRING_RE = re.compile(
    "|".join(("(?<![a-z0-9])" if sub.startswith(("ad-", "ad_")) else "") + re.escape(sub) for sub in AD_SUBSTRINGS)
)

AD_NETWORK_ATTRS: frozenset[str] = frozenset(
    {
        "data-ad",
        "data-ad-client",
        "data-ad-slot",
        "data-ad-format",
        "data-ad-unit",
        "data-ad-region",
        "data-adsbygoogle-status",
        "data-google-query-id",
        "data-google-av-cxn",
        "data-dfp",
        "data-gpt-slot",
        "data-criteo-id",
        "data-native-ad",
    }
)
AD_NETWORK_ATTR_PREFIXES: tuple[str, ...] = (
    "data-ad-",
    "data-taboola",
    "data-outbrain",
    "data-ob-",
    "data-mgid",
    "data-revcontent",
    "data-amazon-ad",
)

AD_IFRAME_DOMAINS: tuple[str, ...] = (
    "googlesyndication",
    "doubleclick",
    "googleadservices",
    "adservice.google",
    "amazon-adsystem",
    "adnxs",
    "taboola",
    "outbrain",
    "criteo",
    "pubmatic",
    "rubiconproject",
    "openx.net",
    "smartadserver",
    "adform",
    "media.net",
    "yieldmo",
    "teads",
)

AD_ROLES: frozenset[str] = frozenset({"complementary", "banner"})

_SAME_CONTEXT_TARGETS = frozenset({"", "_self", "_parent", "_top"})
_PINNED_POSITIONS = frozenset({"fixed", "sticky"})
_NEVER_CANDIDATE_TAGS = frozenset({"html", "head", "body", "script", "style", "noscript", "template", "meta", "link"})


def _tokens(value: str) -> list[str]:
    return [t for t in _TOKEN_SPLIT_RE.split(value.lower()) if t]


# ── Detectors ────────────────────────────────────────────────────────


def matches_ad_keyword(el: lxml.html.HtmlElement, box: ElementBox | None, snapshot: PageSnapshot) -> bool:
    """Detector 1: ad-related token in id or class."""
    for value in (el.get("id", ""), el.get("class", "")):
        if not value:
            continue
        if any(tok in AD_TOKENS for tok in _tokens(value)):
            return True
        if _AD_SUBSTRING_RE.search(value.lower()):
            return True
    return False


def has_ad_network_attr(el: lxml.html.HtmlElement, box: ElementBox | None, snapshot: PageSnapshot) -> bool:
    """Detector 2: attribute names set by known ad networks."""
    for name in el.attrib:
        low = name.lower()
        if low in AD_NETWORK_ATTRS or low.startswith(AD_NETWORK_ATTR_PREFIXES):
            return True
    return False


def is_ad_iframe(el: lxml.html.HtmlElement, box: ElementBox | None, snapshot: PageSnapshot) -> bool:
    """Detector 3: iframe served from an ad domain."""
    if el.tag != "iframe":
        return False
    src = (el.get("src") or "").lower()
    return bool(src) and any(domain in src for domain in AD_IFRAME_DOMAINS)


def is_external_image_link(el: lxml.html.HtmlElement, box: ElementBox | None, snapshot: PageSnapshot) -> bool:
    """Detector 4: link opening a new browsing context that wraps an image."""
    if el.tag != "a":
        return False
    target = (el.get("target") or "").strip().lower()
    if target in _SAME_CONTEXT_TARGETS:
        return False
    return next(el.iter("img"), None) is not None


def has_ad_role(el: lxml.html.HtmlElement, box: ElementBox | None, snapshot: PageSnapshot) -> bool:
    """Detector 5: supplementary/banner landmark roles."""
    role = el.get("role", "")
    return bool(role) and any(r in AD_ROLES for r in role.lower().split())


def is_pinned_to_edge(el: lxml.html.HtmlElement, box: ElementBox | None, snapshot: PageSnapshot) -> bool:
    """Detector 6: fixed/sticky element touching a viewport edge."""
    if box is None or box.position not in _PINNED_POSITIONS:
        return False
    tol = _EDGE_TOLERANCE_PX
    return (
        box.y <= tol
        or box.x <= tol
        or box.y + box.height >= snapshot.viewport_height - tol
        or box.x + box.width >= snapshot.viewport_width - tol
    )


Detector = Callable[[lxml.html.HtmlElement, ElementBox | None, PageSnapshot], bool]

DETECTORS: tuple[tuple[str, Detector], ...] = (
    ("keyword", matches_ad_keyword),
    ("network_attr", has_ad_network_attr),
    ("ad_iframe", is_ad_iframe),
    ("external_image_link", is_external_image_link),
    ("aria_role", has_ad_role),
    ("pinned", is_pinned_to_edge),
)


@dataclass
class ScanStats:
    """Per-scan bookkeeping for logs."""

    nominations: dict[str, int] = field(default_factory=dict)
    filtered_out: int = 0
    candidates: int = 0

    def record(self, detector: str) -> None:
        self.nominations[detector] = self.nominations.get(detector, 0) + 1


def _inside_overlay(el: lxml.html.HtmlElement) -> bool:
    for anc in el.iterancestors():
        if OVERLAY_CLASS in (anc.get("class") or "").split():
            return True
    return OVERLAY_CLASS in (el.get("class") or "").split()


def _in_body(el: lxml.html.HtmlElement) -> bool:
    return any(anc.tag == "body" for anc in el.iterancestors())


class CandidateScanner:
    """Turns a snapshot into deduplicated (selector, markup) candidates."""

    def __init__(
        self,
        *,
        min_size_px: float = _DEFAULT_MIN_SIZE_PX,
        max_markup_chars: int = _DEFAULT_MAX_MARKUP_CHARS,
        detectors: tuple[tuple[str, Detector], ...] = DETECTORS,
    ) -> None:
        self.min_size_px = min_size_px
        self.max_markup_chars = max_markup_chars
        self.detectors = detectors

    def passes_filter(self, box: ElementBox | None) -> bool:
        """Size + visibility gate applied before the AI ever sees markup."""
        if box is None or not box.is_visible:
            return False
        return box.width > self.min_size_px and box.height > self.min_size_px

    def _candidate(self, snapshot: PageSnapshot, el: lxml.html.HtmlElement, counts) -> Candidate:
        return Candidate(
            selector=snapshot.selector_for(el, counts),
            markup=snapshot.markup_of(el, self.max_markup_chars),
        )

    def scan(self, snapshot: PageSnapshot) -> list[Candidate]:
        """Run every detector once over the document."""
        stats = ScanStats()
        counts = id_counts(snapshot.root)
        found: dict[str, Candidate] = {}

        for el in snapshot.root.iter():
            if not isinstance(el.tag, str) or el.tag in _NEVER_CANDIDATE_TAGS:
                continue
            if not _in_body(el) or _inside_overlay(el):
                continue
            box = snapshot.box_for(el)
            nominated = False
            for name, detector in self.detectors:
                if detector(el, box, snapshot):
                    stats.record(name)
                    nominated = True
            if not nominated:
                continue
            if not self.passes_filter(box):
                stats.filtered_out += 1
                continue
            cand = self._candidate(snapshot, el, counts)
            found[cand.selector] = cand  # last wins

        stats.candidates = len(found)
        logger.info(
            "Heuristic scan: %d candidates (nominations=%s, filtered=%d)",
            stats.candidates,
            stats.nominations,
            stats.filtered_out,
        )
        return list(found.values())

    def fetch(self, snapshot: PageSnapshot, selectors: Iterable[str]) -> list[Candidate]:
        """Re-resolve selectors against the page, omitting unresolvable ones.

        Candidates carry the canonical generated selector of the resolved
        element, so two suggestions for the same element collapse into one.
        """
        counts = id_counts(snapshot.root)
        found: dict[str, Candidate] = {}
        skipped = 0
        for selector in selectors:
            el = snapshot.find(selector)
            if el is None or el.tag in _NEVER_CANDIDATE_TAGS or _inside_overlay(el):
                skipped += 1
                continue
            if not self.passes_filter(snapshot.box_for(el)):
                skipped += 1
                continue
            cand = self._candidate(snapshot, el, counts)
            found[cand.selector] = cand
        logger.info("Selector fetch: %d candidates, %d skipped", len(found), skipped)
        return list(found.values())


# ── Skeleton ─────────────────────────────────────────────────────────

_DROP_TAGS = frozenset({"script", "style", "noscript", "template"})
_MEDIA_TAGS = frozenset({"img", "video", "audio", "source", "picture", "track", "input"})
_MEDIA_ATTRS = ("src", "srcset", "poster", "data-src", "data-srcset", "data-lazy-src", "data-original")
_WS_RE = re.compile(r"\s+")


def _is_stylesheet_link(el: lxml.html.HtmlElement) -> bool:
    if el.tag != "link":
        return False
    rel = (el.get("rel") or "").lower().split()
    return "stylesheet" in rel or (el.get("as") or "").lower() == "style"


def _shorten(text: str | None) -> str | None:
    if not text:
        return text
    text = _WS_RE.sub(" ", text).strip()
    if not text:
        return None
    return text[:_TEXT_KEEP_CHARS]


def build_skeleton(
    snapshot: PageSnapshot,
    *,
    keep_text: bool = False,
    max_chars: int | None = None,
) -> str:
    """Reduced copy of the document for AI selector discovery.

    Drops script/style/stylesheet nodes and comments, strips text (or, with
    *keep_text*, shortens it), and blanks media source attributes while
    keeping them as empty placeholders. Tags, ids, classes and the element
    structure survive so suggested selectors resolve in the live page.
    """
    root = copy.deepcopy(snapshot.root)
    strip_index_attrs(root)

    to_drop = []
    for el in root.iter():
        if not isinstance(el.tag, str):
            # comments and processing instructions
            to_drop.append(el)
            continue
        if el.tag in _DROP_TAGS or _is_stylesheet_link(el):
            to_drop.append(el)
    for el in to_drop:
        parent = el.getparent()
        if parent is None:
            continue
        # preserve sibling text that lived in the dropped node's tail
        tail = el.tail
        prev = el.getprevious()
        parent.remove(el)
        if keep_text and tail and tail.strip():
            if prev is not None:
                prev.tail = (prev.tail or "") + tail
            else:
                parent.text = (parent.text or "") + tail

    head = root.find("head")
    if head is not None:
        for child in list(head):
            if child.tag != "title":
                head.remove(child)

    for el in list(root.iter()):
        if not isinstance(el.tag, str):
            continue
        if el.tag == "svg":
            for child in list(el):
                el.remove(child)
            el.text = None
        if el.tag in _MEDIA_TAGS:
            for attr in _MEDIA_ATTRS:
                if attr in el.attrib:
                    el.set(attr, "")
        if keep_text:
            el.text = _shorten(el.text)
            el.tail = _shorten(el.tail)
        else:
            el.text = None
            el.tail = None

    markup = etree.tostring(root, encoding="unicode", method="html")
    if max_chars is not None and len(markup) > max_chars:
        logger.info("Reduced document truncated: %d -> %d chars", len(markup), max_chars)
        markup = markup[:max_chars]
    return markup
