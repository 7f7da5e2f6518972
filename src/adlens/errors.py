# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""AdLens exception hierarchy.

All AdLens-specific errors inherit from AdLensError. Transport, parse and
selector errors are raised at the point of failure and caught at the
smallest scope that can degrade (one candidate, one discovery call, one
overlay). Only the orchestrator catches everything else.
"""

from __future__ import annotations


class AdLensError(Exception):
    """Base exception for all AdLens errors."""


class ConfigurationError(AdLensError):
    """Invalid or incomplete configuration."""


class MissingCredentialError(ConfigurationError):
    """No API credential stored; the scan cannot start."""

    def __init__(self, message: str = "API key is not set. Please set it in the options.") -> None:
        super().__init__(message)


class BrowserError(AdLensError):
    """Browser session launch, navigation, or page interaction failure."""


class TransportError(AdLensError):
    """Generative-language API call failed or returned a non-success status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ResponseParseError(AdLensError):
    """AI reply did not match the expected JSON contract."""


class SelectorError(AdLensError):
    """Selector is syntactically invalid or matches nothing."""

    def __init__(self, message: str, *, selector: str = "") -> None:
        super().__init__(message)
        self.selector = selector


class ReceiverMissingError(AdLensError):
    """Page-side component is not present in the target page.

    Expected for fire-and-forget messages sent before the first scan
    injected the runtime (e.g. the navigation clear).
    """
