# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Scan configuration: dataclass defaults overridden by ADLENS_* environment."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from dataclasses import dataclass

from .errors import ConfigurationError

STRATEGY_HEURISTIC = "heuristic"
STRATEGY_SKELETON = "skeleton"
STRATEGY_WHOLE_PAGE = "whole_page"
STRATEGIES = (STRATEGY_HEURISTIC, STRATEGY_SKELETON, STRATEGY_WHOLE_PAGE)

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_API_BASE = "https://generativelanguage.googleapis.com/v1beta"


@dataclass(frozen=True, slots=True)
class ScanConfig:
    """Knobs for one deployment of the scanner."""

    strategy: str = STRATEGY_HEURISTIC
    model: str = DEFAULT_MODEL
    api_base: str = DEFAULT_API_BASE
    request_timeout_s: float = 30.0
    max_concurrency: int = 0  # 0 = every confirmation request in flight at once
    min_size_px: float = 30.0  # candidates must be strictly larger in both dimensions
    max_markup_chars: int = 8000  # per-candidate snippet sent for confirmation
    max_document_chars: int = 200_000  # reduced document sent for discovery

    def __post_init__(self) -> None:
        if self.strategy not in STRATEGIES:
            raise ConfigurationError(f"Unknown discovery strategy {self.strategy!r}. Choose one of: {', '.join(STRATEGIES)}")
        if self.request_timeout_s <= 0:
            raise ConfigurationError("request_timeout_s must be positive")
        if self.max_concurrency < 0:
            raise ConfigurationError("max_concurrency must be >= 0")
        if self.max_markup_chars <= 0 or self.max_document_chars <= 0:
            raise ConfigurationError("character limits must be positive")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> ScanConfig:
        """Build a config from ADLENS_* variables; explicit overrides win."""
        env = os.environ if environ is None else environ
        values: dict = {}

        strategy = env.get("ADLENS_STRATEGY", "").strip().lower()
        if strategy:
            values["strategy"] = strategy
        model = env.get("ADLENS_MODEL", "").strip()
        if model:
            values["model"] = model
        api_base = env.get("ADLENS_API_BASE", "").strip()
        if api_base:
            values["api_base"] = api_base.rstrip("/")

        for env_name, field_name, conv in (
            ("ADLENS_REQUEST_TIMEOUT", "request_timeout_s", float),
            ("ADLENS_MAX_CONCURRENCY", "max_concurrency", int),
            ("ADLENS_MIN_SIZE_PX", "min_size_px", float),
            ("ADLENS_MAX_MARKUP_CHARS", "max_markup_chars", int),
            ("ADLENS_MAX_DOCUMENT_CHARS", "max_document_chars", int),
        ):
            raw = env.get(env_name, "").strip()
            if not raw:
                continue
            try:
                values[field_name] = conv(raw)
            except ValueError as e:
                raise ConfigurationError(f"{env_name}={raw!r} is not a valid {conv.__name__}") from e

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def replace(self, **changes) -> ScanConfig:
        return dataclasses.replace(self, **changes)
