# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Progress indicators for CLI output.

Uses ``rich`` for interactive terminals when the ``cli`` extra is
installed, falls back to plain stderr lines when it is not or when
output is piped.
"""

from __future__ import annotations

import contextlib
import sys
from collections.abc import Generator

try:
    from rich.console import Console

    _HAS_RICH = True
except ImportError:
    _HAS_RICH = False


@contextlib.contextmanager
def status_spinner(msg: str) -> Generator[None, None, None]:
    """Show a spinner with *msg* while the block runs.

    Silent when stderr is not a TTY (piped output).
    """
    if not sys.stderr.isatty():
        yield
        return

    if _HAS_RICH:
        console = Console(stderr=True)
        with console.status(msg):
            yield
    else:
        print(msg, file=sys.stderr)
        yield


def print_step(msg: str) -> None:
    """Print a step message to stderr (only when interactive)."""
    if sys.stderr.isatty():
        print(msg, file=sys.stderr)


def print_ads(ads, *, file=None) -> None:
    """Print confirmed ads as a numbered list on stdout."""
    out = file or sys.stdout
    if _HAS_RICH and out.isatty():
        console = Console(file=out, highlight=False)
        for i, ad in enumerate(ads, 1):
            console.print(f"{i:>3}. ", end="", style="bold")
            console.print(ad.selector, style="cyan", markup=False)
            console.print(f"     {ad.description}", markup=False)
        return
    for i, ad in enumerate(ads, 1):
        print(f"{i:>3}. {ad.selector}", file=out)
        print(f"     {ad.description}", file=out)
