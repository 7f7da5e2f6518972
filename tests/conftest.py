# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

import os

try:
    import adlens  # noqa: F401
except ImportError:
    raise ImportError("adlens is not installed. Run: pip install -e '.[dev]'") from None

import pytest


def pytest_collection_modifyitems(config, items):
    """Skip browser-marked tests unless ADLENS_BROWSER_TESTS=1."""
    if os.environ.get("ADLENS_BROWSER_TESTS") == "1":
        return
    skip_marker = pytest.mark.skip(reason="set ADLENS_BROWSER_TESTS=1 to run against real Chromium")
    for item in items:
        if "browser" in item.keywords:
            item.add_marker(skip_marker)


@pytest.fixture(autouse=True)
def _block_real_browser(request, monkeypatch):
    """Safety net: prevent real browser launches in unit tests.

    Tests that need a session should mock ``BrowserSession`` explicitly.
    Tests marked ``browser`` opt out and drive a real Chromium.
    """
    if "browser" in request.keywords:
        return

    def _no_real_playwright():
        raise RuntimeError("Test tried to launch a real browser. Mock BrowserSession or mark the test 'browser'.")

    monkeypatch.setattr("adlens.browser_session.async_playwright", _no_real_playwright)


@pytest.fixture(autouse=True)
def _isolate_credentials(tmp_path, monkeypatch):
    """Never read or write the developer's real settings file or key."""
    monkeypatch.setenv("ADLENS_SETTINGS_PATH", str(tmp_path / "settings.json"))
    monkeypatch.delenv("ADLENS_API_KEY", raising=False)
    for name in list(os.environ):
        if name.startswith("ADLENS_") and name not in ("ADLENS_SETTINGS_PATH", "ADLENS_BROWSER_TESTS"):
            monkeypatch.delenv(name, raising=False)
