# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Logging for the adlens CLI: structlog over the stdlib ``logging`` tree.

Modules log through ``logging.getLogger(__name__)``; records are rendered
by structlog, on stderr so ``adlens scan --json`` keeps stdout clean.
Console output by default, one JSON object per line with ``--json-logs``.

The Gemini key travels as a ``?key=`` query parameter, so it can surface
in httpx request lines and in transport error messages. Every rendered
event passes through :func:`redact_api_key` first.

Leaf module: no adlens imports. Safe to call early in startup.
"""

from __future__ import annotations

import logging
import re
import sys

import structlog

# Chatty below WARNING; httpx logs each request URL, key included.
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")

REDACTED = "[redacted]"

_KEY_PARAM_RE = re.compile(r"([?&](?:key|api_key)=)[^&\s'\"]+", re.IGNORECASE)
_KEY_HEADER_RE = re.compile(r"((?:x-goog-api-key)['\"]?\s*[:=]\s*['\"]?)[^\s'\",}]+", re.IGNORECASE)


def _scrub(text: str) -> str:
    text = _KEY_PARAM_RE.sub(lambda m: m.group(1) + REDACTED, text)
    return _KEY_HEADER_RE.sub(lambda m: m.group(1) + REDACTED, text)


def redact_api_key(_logger, _method: str, event_dict: dict) -> dict:
    """structlog processor: mask API keys in every string value."""
    for name, value in event_dict.items():
        if isinstance(value, str):
            event_dict[name] = _scrub(value)
    return event_dict


def _renderer(json_output: bool):
    if json_output:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure(*, json_output: bool = False, level: str = "INFO") -> None:
    """Route all logging to stderr through structlog.

    Args:
        json_output: JSON lines (``--json-logs``) instead of console output.
        level: Root logger level; unknown names fall back to INFO.

    Calling it again replaces the previous handler.
    """
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,  # scan_id, strategy
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        redact_api_key,
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.PositionalArgumentsFormatter(),
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(json_output),
            ],
            foreign_pre_chain=shared_processors,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
