# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Scan stage timer for latency tracking and failure diagnostics.

Created by the orchestrator before the first stage so it still holds the
stage an interrupted scan was in when it is reported.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

_STAGE_HINTS = {
    "credentials": "Check that an API key is configured (adlens configure --api-key ...).",
    "clear": "The page agent did not answer. The page may still be loading.",
    "discovery": "Candidate discovery is slow. Very large pages take longer with AI strategies.",
    "confirmation": "Classification requests are slow. Consider ADLENS_MAX_CONCURRENCY or a faster model.",
    "render": "Overlay rendering is stalling on the page.",
}


@dataclass(slots=True)
class StageRecord:
    name: str
    start_ns: int
    end_ns: int = 0

    @property
    def elapsed_ms(self) -> float:
        return round((self.end_ns - self.start_ns) / 1e6, 1)


class PipelineTimer:
    """Track scan stage transitions for latency reporting."""

    __slots__ = ("_stages", "_current", "_start_ns")

    def __init__(self) -> None:
        self._stages: list[StageRecord] = []
        self._current: StageRecord | None = None
        self._start_ns: int = time.monotonic_ns()

    def stage(self, name: str) -> None:
        """End previous stage + start new stage."""
        now = time.monotonic_ns()
        if self._current is not None:
            self._current.end_ns = now
            self._stages.append(self._current)
        self._current = StageRecord(name=name, start_ns=now)

    def finalize(self) -> None:
        """End current stage. Call on success or error."""
        if self._current is not None:
            self._current.end_ns = time.monotonic_ns()
            self._stages.append(self._current)
            self._current = None

    @property
    def current_stage(self) -> str | None:
        return self._current.name if self._current else None

    @property
    def total_ms(self) -> float:
        return round((time.monotonic_ns() - self._start_ns) / 1e6, 1)

    def elapsed_per_stage(self) -> dict[str, float]:
        """Return {stage_name: elapsed_ms} for all stages (including current)."""
        now = time.monotonic_ns()
        result = {s.name: s.elapsed_ms for s in self._stages}
        if self._current is not None:
            result[self._current.name] = round((now - self._current.start_ns) / 1e6, 1)
        return result

    def failure_report(self) -> dict:
        """Structured diagnostic for a scan that ended in an error."""
        now = time.monotonic_ns()
        current = self.current_stage or (self._stages[-1].name if self._stages else "unknown")
        current_ms = round((now - self._current.start_ns) / 1e6, 1) if self._current else 0
        return {
            "completed_stages": [{"stage": s.name, "ms": s.elapsed_ms} for s in self._stages],
            "failed_at": current,
            "failed_stage_ms": current_ms,
            "total_ms": self.total_ms,
            "hint": self.hint_for_stage(current),
        }

    @staticmethod
    def hint_for_stage(stage: str) -> str:
        return _STAGE_HINTS.get(stage, f"Failed during '{stage}' stage.")
