# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for adlens.config: defaults, validation and ADLENS_* overrides."""

from __future__ import annotations

import pytest

from adlens.config import DEFAULT_API_BASE, DEFAULT_MODEL, STRATEGIES, ScanConfig
from adlens.errors import ConfigurationError


class TestDefaults:
    def test_defaults(self):
        cfg = ScanConfig()
        assert cfg.strategy == "heuristic"
        assert cfg.model == DEFAULT_MODEL
        assert cfg.api_base == DEFAULT_API_BASE
        assert cfg.max_concurrency == 0
        assert cfg.min_size_px == 30.0

    def test_strategies_are_closed_set(self):
        assert STRATEGIES == ("heuristic", "skeleton", "whole_page")


class TestValidation:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"strategy": "vision"},
            {"request_timeout_s": 0},
            {"max_concurrency": -1},
            {"max_markup_chars": 0},
            {"max_document_chars": -5},
        ],
    )
    def test_rejects(self, kwargs):
        with pytest.raises(ConfigurationError):
            ScanConfig(**kwargs)

    def test_replace_revalidates(self):
        with pytest.raises(ConfigurationError):
            ScanConfig().replace(strategy="nope")


class TestFromEnv:
    def test_empty_env_gives_defaults(self):
        assert ScanConfig.from_env({}) == ScanConfig()

    def test_reads_variables(self):
        cfg = ScanConfig.from_env(
            {
                "ADLENS_STRATEGY": " Whole_Page ",
                "ADLENS_MODEL": "gemini-2.0-flash",
                "ADLENS_API_BASE": "https://proxy.example/v1beta/",
                "ADLENS_REQUEST_TIMEOUT": "12.5",
                "ADLENS_MAX_CONCURRENCY": "4",
                "ADLENS_MIN_SIZE_PX": "50",
                "ADLENS_MAX_MARKUP_CHARS": "1000",
                "ADLENS_MAX_DOCUMENT_CHARS": "50000",
            }
        )
        assert cfg == ScanConfig(
            strategy="whole_page",
            model="gemini-2.0-flash",
            api_base="https://proxy.example/v1beta",
            request_timeout_s=12.5,
            max_concurrency=4,
            min_size_px=50.0,
            max_markup_chars=1000,
            max_document_chars=50000,
        )

    def test_blank_values_ignored(self):
        assert ScanConfig.from_env({"ADLENS_STRATEGY": "  ", "ADLENS_MAX_CONCURRENCY": ""}) == ScanConfig()

    def test_bad_number(self):
        with pytest.raises(ConfigurationError, match="ADLENS_MAX_CONCURRENCY"):
            ScanConfig.from_env({"ADLENS_MAX_CONCURRENCY": "many"})

    def test_overrides_win(self):
        cfg = ScanConfig.from_env({"ADLENS_STRATEGY": "skeleton"}, strategy="heuristic")
        assert cfg.strategy == "heuristic"

    def test_none_override_ignored(self):
        cfg = ScanConfig.from_env({"ADLENS_STRATEGY": "skeleton"}, strategy=None)
        assert cfg.strategy == "skeleton"

    def test_process_environment(self, monkeypatch):
        monkeypatch.setenv("ADLENS_STRATEGY", "skeleton")
        assert ScanConfig.from_env().strategy == "skeleton"
