# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for adlens.classification: strict parsers and the two AI stages."""

from __future__ import annotations

import asyncio
import json

import pytest

from adlens import ClassificationResult
from adlens.classification import (
    ClassificationPipeline,
    parse_classification,
    parse_selector_list,
    strip_fences,
)
from adlens.errors import ResponseParseError, TransportError
from adlens.prompts import PROMPT_VERSION, confirmation_prompt, discovery_prompt
from tests._fakes import NOT_AD, FakeGenerator, ad_reply, cand

# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------


class TestStripFences:
    def test_json_fence(self):
        assert strip_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence(self):
        assert strip_fences('```\n{"a": 1}```') == '{"a": 1}'

    @pytest.mark.parametrize("lang", ["html", "text", "JSON", "javascript"])
    def test_any_language_tag(self, lang):
        assert strip_fences(f'```{lang}\n{{"a": 1}}\n```') == '{"a": 1}'

    def test_no_fence(self):
        assert strip_fences('  {"a": 1} ') == '{"a": 1}'


class TestParseClassification:
    def test_ad(self):
        result = parse_classification(ad_reply("An ad for running shoes."))
        assert result == ClassificationResult(is_ad=True, description="An ad for running shoes.")

    def test_not_ad(self):
        assert parse_classification(NOT_AD) == ClassificationResult.negative()

    def test_fenced_reply(self):
        text = "```json\n" + ad_reply("Werbung für ein Girokonto.") + "\n```"
        assert parse_classification(text).description == "Werbung für ein Girokonto."

    def test_html_fenced_reply(self):
        text = "```html\n" + ad_reply("A banner for a bank.") + "\n```"
        assert parse_classification(text) == ClassificationResult(is_ad=True, description="A banner for a bank.")

    def test_description_trimmed(self):
        assert parse_classification(ad_reply("  A car ad.\n")).description == "A car ad."

    def test_negative_drops_description(self):
        result = parse_classification(json.dumps({"isAd": False, "description": "a menu"}))
        assert result == ClassificationResult.negative()

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "not json",
            "[true, \"x\"]",
            json.dumps({"isAd": "true", "description": "x"}),
            json.dumps({"isAd": 1, "description": "x"}),
            json.dumps({"isAd": True}),
            json.dumps({"isAd": True, "description": "x", "confidence": 0.9}),
            json.dumps({"isAd": True, "description": 5}),
            json.dumps({"isAd": True, "description": "   "}),
            '{"isAd": true, "description": "x"} trailing',
        ],
    )
    def test_rejects_malformed(self, text):
        with pytest.raises(ResponseParseError):
            parse_classification(text)


class TestParseSelectorList:
    def test_valid(self):
        assert parse_selector_list('{"selectors": ["#a", "body > div:nth-of-type(2)"]}') == [
            "#a",
            "body > div:nth-of-type(2)",
        ]

    def test_drops_non_strings_and_duplicates(self):
        text = json.dumps({"selectors": ["#a", 3, None, "#b", "#a", " ", {"x": 1}, " #b "]})
        assert parse_selector_list(text) == ["#a", "#b"]

    def test_empty_list(self):
        assert parse_selector_list('{"selectors": []}') == []

    @pytest.mark.parametrize("text", ['{"selector": ["#a"]}', '{"selectors": "#a"}', '["#a"]', "nope"])
    def test_rejects_wrong_shape(self, text):
        with pytest.raises(ResponseParseError):
            parse_selector_list(text)


class TestPrompts:
    def test_confirmation_embeds_snippet(self):
        prompt = confirmation_prompt('<div id="x">Buy</div>')
        assert '<div id="x">Buy</div>' in prompt
        assert '"isAd": true' in prompt

    def test_discovery_notes_text_mode(self):
        assert "stripped" in discovery_prompt("<html></html>")
        assert "shortened" in discovery_prompt("<html></html>", keeps_text=True)
        assert '{"selectors": []}' in discovery_prompt("<html></html>")

    def test_version_is_set(self):
        assert PROMPT_VERSION


# ---------------------------------------------------------------------------
# Discovery stage
# ---------------------------------------------------------------------------


class TestDiscover:
    async def test_returns_selectors(self):
        gen = FakeGenerator(discovery='{"selectors": ["#a", "#b"]}')
        assert await ClassificationPipeline(gen).discover("<html><body></body></html>") == ["#a", "#b"]
        assert len(gen.prompts) == 1

    async def test_transport_failure_means_no_selectors(self):
        gen = FakeGenerator(discovery=TransportError("API returned HTTP 503", status_code=503))
        assert await ClassificationPipeline(gen).discover("<html></html>") == []

    async def test_wrong_shape_means_no_selectors(self):
        gen = FakeGenerator(discovery='{"isAd": true}')
        assert await ClassificationPipeline(gen).discover("<html></html>") == []

    async def test_empty_document_skips_request(self):
        gen = FakeGenerator()
        assert await ClassificationPipeline(gen).discover("  ") == []
        assert gen.prompts == []


# ---------------------------------------------------------------------------
# Confirmation stage
# ---------------------------------------------------------------------------


class TestConfirm:
    async def test_results_follow_candidate_order(self):
        gen = FakeGenerator(
            {"cand-one": ad_reply("first"), "cand-three": ad_reply("third")},
            delays={"cand-one": 0.03, "cand-two": 0.01},
        )
        cands = [cand("#1", "<i>cand-one</i>"), cand("#2", "<i>cand-two</i>"), cand("#3", "<i>cand-three</i>")]
        results = await ClassificationPipeline(gen).confirm(cands)
        assert [r.is_ad for r in results] == [True, False, True]
        assert [r.description for r in results] == ["first", "", "third"]

    async def test_each_failure_isolated_to_its_slot(self):
        gen = FakeGenerator(
            {
                "cand-net": TransportError("Request to m failed: ConnectError"),
                "cand-http": TransportError("API returned HTTP 500", status_code=500),
                "cand-bad": "```json\n{oops\n```",
                "cand-crash": RuntimeError("boom"),
                "cand-ok": ad_reply("A mortgage ad."),
            }
        )
        names = ["cand-net", "cand-http", "cand-bad", "cand-crash", "cand-ok"]
        results = await ClassificationPipeline(gen).confirm([cand(f"#{n}", n) for n in names])
        assert results[:4] == [ClassificationResult.negative()] * 4
        assert results[4] == ClassificationResult(is_ad=True, description="A mortgage ad.")

    async def test_all_failures_yield_all_negative(self):
        gen = FakeGenerator(default=TransportError("down"))
        results = await ClassificationPipeline(gen).confirm([cand("#a"), cand("#b")])
        assert results == [ClassificationResult.negative()] * 2

    async def test_one_request_per_candidate(self):
        gen = FakeGenerator()
        await ClassificationPipeline(gen).confirm([cand(f"#c{i}", f"<p>{i}</p>") for i in range(7)])
        assert len(gen.prompts) == 7

    async def test_no_candidates_no_requests(self):
        gen = FakeGenerator()
        assert await ClassificationPipeline(gen).confirm([]) == []
        assert gen.prompts == []

    async def test_requests_run_concurrently(self):
        in_flight = 0
        peak = 0

        class CountingGenerator:
            async def generate(self, prompt):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.01)
                in_flight -= 1
                return NOT_AD

        await ClassificationPipeline(CountingGenerator()).confirm([cand(f"#c{i}") for i in range(5)])
        assert peak == 5

    async def test_max_concurrency_caps_in_flight(self):
        in_flight = 0
        peak = 0

        class CountingGenerator:
            async def generate(self, prompt):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.01)
                in_flight -= 1
                return ad_reply("x")

        results = await ClassificationPipeline(CountingGenerator(), max_concurrency=2).confirm([cand(f"#c{i}") for i in range(6)])
        assert peak == 2
        assert all(r.is_ad for r in results)
