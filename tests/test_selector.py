# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for adlens.selector: selector generation, escaping, re-resolution."""

from __future__ import annotations

import lxml.html
import pytest

from adlens.errors import SelectorError
from adlens.selector import (
    count_matches,
    css_escape,
    generate_selector,
    id_counts,
    resolve_selector,
    resolve_selector_strict,
)
from tests._fakes import doc


def _root(body: str) -> lxml.html.HtmlElement:
    return lxml.html.document_fromstring(doc(body))


def _body_elements(root):
    body = root.find(".//body")
    return [el for el in body.iter() if isinstance(el.tag, str) and el is not body]


# ---------------------------------------------------------------------------
# css_escape
# ---------------------------------------------------------------------------


class TestCssEscape:
    def test_plain_identifier_unchanged(self):
        assert css_escape("main-content_2") == "main-content_2"

    def test_leading_digit(self):
        assert css_escape("1abc") == "\\31 abc"

    def test_dash_then_digit(self):
        assert css_escape("-1x") == "-\\31 x"

    def test_lone_dash(self):
        assert css_escape("-") == "\\-"

    def test_punctuation_escaped(self):
        assert css_escape("a.b:c") == "a\\.b\\:c"

    def test_space_escaped(self):
        assert css_escape("a b") == "a\\ b"

    def test_non_ascii_passthrough(self):
        assert css_escape("광고영역") == "광고영역"

    def test_control_char_hex_escaped(self):
        assert css_escape("a\x01b") == "a\\1 b"


# ---------------------------------------------------------------------------
# generate_selector
# ---------------------------------------------------------------------------


class TestGenerateSelector:
    def test_unique_id_wins(self):
        root = _root('<div><section id="sidebar"><p>x</p></section></div>')
        el = root.get_element_by_id("sidebar")
        assert generate_selector(el) == "#sidebar"

    def test_auto_generated_looking_id_still_used(self):
        root = _root('<div id="div-gpt-ad-1699999-0"></div>')
        el = root.get_element_by_id("div-gpt-ad-1699999-0")
        assert generate_selector(el) == "#div-gpt-ad-1699999-0"

    def test_duplicate_id_falls_back_to_path(self):
        root = _root('<div id="slot"></div><div id="slot"></div>')
        second = root.findall(".//div")[1]
        assert generate_selector(second) == "body > div:nth-of-type(2)"

    def test_path_uses_nth_of_type(self):
        root = _root('<div><span>a</span><p>x</p><p>y</p></div>')
        p2 = root.findall(".//p")[1]
        assert generate_selector(p2) == "body > div:nth-of-type(1) > p:nth-of-type(2)"

    def test_path_ignores_ancestor_ids(self):
        root = _root('<main id="m"><div><aside></aside></div></main>')
        aside = root.find(".//aside")
        assert generate_selector(aside) == "body > main:nth-of-type(1) > div:nth-of-type(1) > aside:nth-of-type(1)"

    def test_body_and_html(self):
        root = _root("<div></div>")
        assert generate_selector(root.find(".//body")) == "body"
        assert generate_selector(root) == "html"

    def test_escaped_id_resolves(self):
        root = _root('<div id="1st.ad"></div>')
        el = root.find(".//div")
        sel = generate_selector(el)
        assert sel == "#\\31 st\\.ad"
        assert resolve_selector(root, sel) is el

    def test_precomputed_counts(self):
        root = _root('<div id="a"></div><div id="a"></div><div id="b"></div>')
        counts = id_counts(root)
        assert counts["a"] == 2
        b = root.get_element_by_id("b")
        assert generate_selector(b, counts=counts) == "#b"

    def test_detached_element_never_raises(self):
        div = lxml.html.Element("div")
        span = lxml.html.Element("span")
        div.append(span)
        assert generate_selector(span) == "div > span:nth-of-type(1)"

    def test_round_trip_every_element(self):
        root = _root(
            '<header role="banner"><nav><a href="/">home</a></nav></header>'
            '<main><article><h1>t</h1><p>a</p><div class="ad"><iframe></iframe></div><p>b</p></article>'
            '<aside id="rail"><div></div><div></div></aside></main>'
            '<div id="dup"></div><div id="dup"><img></div>'
        )
        counts = id_counts(root)
        for el in _body_elements(root):
            sel = generate_selector(el, counts=counts)
            assert resolve_selector(root, sel) is el, sel
            assert count_matches(root, sel) == 1, sel


# ---------------------------------------------------------------------------
# resolution
# ---------------------------------------------------------------------------


class TestResolveSelector:
    def test_strict_raises_on_no_match(self):
        root = _root("<div></div>")
        with pytest.raises(SelectorError, match="matched nothing") as exc_info:
            resolve_selector_strict(root, "#missing")
        assert exc_info.value.selector == "#missing"

    def test_strict_raises_on_syntax_error(self):
        root = _root("<div></div>")
        with pytest.raises(SelectorError, match="Invalid selector"):
            resolve_selector_strict(root, "div[[")

    def test_strict_raises_on_empty(self):
        with pytest.raises(SelectorError):
            resolve_selector_strict(_root("<div></div>"), "   ")

    def test_soft_returns_none(self):
        root = _root("<div></div>")
        assert resolve_selector(root, "div >>> p") is None
        assert resolve_selector(root, ".nope") is None

    def test_first_match_returned(self):
        root = _root('<div class="x" id="one"></div><div class="x"></div>')
        assert resolve_selector(root, ".x").get("id") == "one"

    def test_count_matches_invalid_is_zero(self):
        assert count_matches(_root("<div></div>"), "::::") == 0
