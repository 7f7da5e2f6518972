# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""AdLens: find advertisements on a live page and overlay AI descriptions.

Pipeline:
- discovery: local heuristics or an AI pass over a reduced document -> candidates
- confirmation: one AI classification per candidate (fan-out/fan-in)
- overlays: confirmed ads re-resolved in the live page and covered by widgets
"""

from __future__ import annotations

from dataclasses import dataclass

SAFE_DEFAULT_DESCRIPTION = ""


@dataclass(frozen=True, slots=True)
class Candidate:
    """An element suspected of being an ad, before confirmation."""

    selector: str  # re-resolves to the source element at creation time
    markup: str  # outerHTML snapshot taken at scan time


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    """AI verdict for one candidate."""

    is_ad: bool
    description: str = SAFE_DEFAULT_DESCRIPTION

    @classmethod
    def negative(cls) -> ClassificationResult:
        """Safe default used whenever a classification request fails."""
        return cls(is_ad=False, description=SAFE_DEFAULT_DESCRIPTION)


@dataclass(frozen=True, slots=True)
class ConfirmedAd:
    """A candidate the classifier marked as an advertisement."""

    selector: str
    description: str

    def to_dict(self) -> dict[str, str]:
        return {"selector": self.selector, "description": self.description}


@dataclass(frozen=True, slots=True)
class ScanResult:
    """Outcome of one user-triggered scan."""

    status: str  # "success" | "error"
    count: int = 0
    message: str = ""
    open_configuration: bool = False  # caller should surface credential settings
    ads: tuple[ConfirmedAd, ...] = ()  # not part of the wire shape

    @classmethod
    def success(cls, count: int, ads: tuple[ConfirmedAd, ...] = ()) -> ScanResult:
        return cls(status="success", count=count, ads=tuple(ads))

    @classmethod
    def error(cls, message: str, *, open_configuration: bool = False) -> ScanResult:
        return cls(status="error", message=message, open_configuration=open_configuration)

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict:
        if self.ok:
            return {"status": "success", "count": self.count}
        return {"status": "error", "message": self.message}

    def status_text(self) -> str:
        """One-line human status, as shown after a scan."""
        if self.ok:
            return f"Found and overlaid {self.count} ads."
        return f"Error: {self.message}"


def confirmed_ads(
    candidates: list[Candidate],
    results: list[ClassificationResult],
) -> list[ConfirmedAd]:
    """Join candidates with their verdicts by index and keep the ads."""
    return [
        ConfirmedAd(selector=cand.selector, description=res.description)
        for cand, res in zip(candidates, results, strict=True)
        if res.is_ad
    ]
