# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Sanitization of model-written text before it reaches the page or terminal.

Ad descriptions come from a model that has just read attacker-controlled
markup. They are rendered inside overlays on the live page and printed by
the CLI, so they are reduced to a single plain line first.
"""

from __future__ import annotations

import re

# Zero-width chars, bidi overrides, interlinear annotations, C0/C1 controls
_CONTROL_CHAR_RE = re.compile(
    r"[\u200B-\u200F\u202A-\u202E\u2060-\u2069\uFEFF\uFFF9-\uFFFB"
    r"\u0000-\u0008\u000B\u000C\u000E-\u001F\u007F-\u009F]"
)

_ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;]*[a-zA-Z]")

# Markup that a model may echo back from the snippet it classified
_TAG_RE = re.compile(r"<\s*/?\s*[a-zA-Z][^>]*>")

_WS_RE = re.compile(r"\s{2,}")

DESCRIPTION_MAX_LEN = 280


def sanitize_text(text: str, max_len: int = DESCRIPTION_MAX_LEN) -> str:
    """Sanitize a short text field (ad descriptions, page titles).

    - Removes ANSI escape sequences
    - Strips Unicode control characters (zero-width, bidi overrides)
    - Drops HTML tags
    - Collapses newlines and runs of whitespace
    - Truncates to max_len, marking the cut with an ellipsis
    """
    if not text:
        return text

    text = _ANSI_ESCAPE_RE.sub("", text)
    text = _CONTROL_CHAR_RE.sub("", text)
    text = _TAG_RE.sub("", text)
    text = text.replace("\n", " ").replace("\r", " ").replace("\t", " ")
    text = _WS_RE.sub(" ", text).strip()

    if len(text) > max_len:
        text = text[: max_len - 1].rstrip() + "…"

    return text
