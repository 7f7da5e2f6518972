# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Stable CSS selectors for snapshot elements, and their re-resolution.

generate_selector() output is valid for both lxml (cssselect) and the
browser's querySelector, so a selector minted from a snapshot can be
re-resolved in the live page after the AI round trip.
"""

from __future__ import annotations

import logging
from collections import Counter

import lxml.html
from cssselect import SelectorError as CssSelectorError
from lxml import etree
from lxml.cssselect import CSSSelector

from .errors import SelectorError

logger = logging.getLogger(__name__)

_ROOT_TAGS = frozenset({"html", "body"})


def css_escape(ident: str) -> str:
    """Escape *ident* for use as a CSS identifier (CSSOM ``CSS.escape``)."""
    out: list[str] = []
    for i, ch in enumerate(ident):
        code = ord(ch)
        if code == 0:
            out.append("�")
        elif 0x01 <= code <= 0x1F or code == 0x7F:
            out.append(f"\\{code:x} ")
        elif i == 0 and ch.isdigit() and ch.isascii():
            out.append(f"\\{code:x} ")
        elif i == 1 and ch.isdigit() and ch.isascii() and ident[0] == "-":
            out.append(f"\\{code:x} ")
        elif i == 0 and ch == "-" and len(ident) == 1:
            out.append("\\-")
        elif code >= 0x80 or ch in "-_" or (ch.isascii() and ch.isalnum()):
            out.append(ch)
        else:
            out.append("\\" + ch)
    return "".join(out)


def _is_element(node) -> bool:
    return isinstance(node.tag, str)


def _tag(el: lxml.html.HtmlElement) -> str:
    return el.tag.lower()


def id_counts(root: lxml.html.HtmlElement) -> Counter:
    """Count id attribute values across the document (for uniqueness checks)."""
    counts: Counter = Counter()
    for el in root.iter():
        if not _is_element(el):
            continue
        eid = el.get("id")
        if eid:
            counts[eid] += 1
    return counts


def _nth_of_type(el: lxml.html.HtmlElement) -> int:
    tag = el.tag
    return 1 + sum(1 for sib in el.itersiblings(preceding=True) if sib.tag == tag)


def generate_selector(
    el: lxml.html.HtmlElement,
    *,
    counts: Counter | None = None,
) -> str:
    """Return a selector that re-locates *el*.

    A unique id wins unconditionally, even when it looks auto-generated.
    Otherwise a ``body > tag:nth-of-type(k) > ...`` path is built. Never
    raises: detached elements get a best-effort path from their topmost
    ancestor.
    """
    eid = el.get("id")
    if eid:
        if counts is None:
            counts = id_counts(el.getroottree().getroot())
        if counts.get(eid, 0) <= 1:
            return "#" + css_escape(eid)

    tag = _tag(el)
    if tag in _ROOT_TAGS:
        return tag

    steps: list[str] = []
    cur = el
    while cur is not None and _is_element(cur):
        cur_tag = _tag(cur)
        if cur_tag == "body":
            steps.append("body")
            break
        parent = cur.getparent()
        if parent is None:
            # Detached subtree: root step has no siblings to count.
            steps.append(css_escape(cur_tag))
            break
        steps.append(f"{css_escape(cur_tag)}:nth-of-type({_nth_of_type(cur)})")
        cur = parent

    return " > ".join(reversed(steps))


def _compile(selector: str) -> CSSSelector:
    try:
        return CSSSelector(selector, translator="html")
    except (CssSelectorError, etree.XPathError, ValueError) as e:
        raise SelectorError(f"Invalid selector: {selector!r}", selector=selector) from e


def resolve_selector_strict(root: lxml.html.HtmlElement, selector: str) -> lxml.html.HtmlElement:
    """Return the first element matching *selector*, raising SelectorError otherwise."""
    if not selector or not selector.strip():
        raise SelectorError("Empty selector", selector=selector)
    compiled = _compile(selector)
    try:
        matches = compiled(root)
    except etree.XPathError as e:
        raise SelectorError(f"Selector evaluation failed: {selector!r}", selector=selector) from e
    if not matches:
        raise SelectorError(f"Selector matched nothing: {selector!r}", selector=selector)
    return matches[0]


def resolve_selector(root: lxml.html.HtmlElement, selector: str) -> lxml.html.HtmlElement | None:
    """Soft variant: None on syntax error or no match."""
    try:
        return resolve_selector_strict(root, selector)
    except SelectorError as e:
        logger.debug("%s", e)
        return None


def count_matches(root: lxml.html.HtmlElement, selector: str) -> int:
    """Number of elements *selector* matches (0 when invalid)."""
    try:
        return len(_compile(selector)(root))
    except (SelectorError, etree.XPathError):
        return 0
