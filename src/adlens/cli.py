# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""AdLens CLI: scan, configure, skeleton commands.

Usage:
    adlens scan URL [--strategy NAME] [--headful] [--hold SECONDS] [--json] [--json-logs]
    adlens configure (--api-key KEY | --show | --clear)
    adlens skeleton URL [--keep-text]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from .config import STRATEGIES, ScanConfig
from .credentials import CredentialStore
from .errors import AdLensError, ConfigurationError

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NEEDS_CONFIGURATION = 2


def _mask(api_key: str) -> str:
    if len(api_key) <= 8:
        return "*" * len(api_key)
    return f"{api_key[:4]}{'*' * (len(api_key) - 8)}{api_key[-4:]}"


def _open_configuration_hint() -> None:
    print(
        "No API key configured.\n\n"
        "Set one with:\n"
        "  adlens configure --api-key YOUR_KEY\n"
        "or export ADLENS_API_KEY.",
        file=sys.stderr,
    )


def cmd_scan(args: argparse.Namespace) -> int:
    """Scan a URL for ads and overlay descriptions on them."""
    config = ScanConfig.from_env(strategy=args.strategy)
    result = asyncio.run(_scan(args.url, config, headful=args.headful, hold_s=args.hold))

    if args.json:
        payload = result.to_dict()
        if result.ok:
            payload["ads"] = [ad.to_dict() for ad in result.ads]
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        from ._progress import print_ads

        if result.ads:
            print_ads(result.ads)
        print(result.status_text())

    if result.ok:
        return EXIT_OK
    return EXIT_NEEDS_CONFIGURATION if result.open_configuration else EXIT_ERROR


async def _scan(url: str, config: ScanConfig, *, headful: bool = False, hold_s: float = 0.0):
    from ._progress import print_step, status_spinner
    from .browser_session import BrowserConfig, BrowserSession
    from .orchestrator import ScanOrchestrator
    from .page_agent import PageAgent

    async with BrowserSession(BrowserConfig(headless=not headful)) as session:
        agent = PageAgent(session.page, config)
        orchestrator = ScanOrchestrator(
            agent,
            credentials=CredentialStore(),
            config=config,
            session=session,
            on_open_configuration=_open_configuration_hint,
        )
        with status_spinner(f"Scanning {url} ({config.strategy})..."):
            result = await orchestrator.scan(url)
        if hold_s > 0 and result.ok:
            print_step(f"Holding the browser open for {hold_s:.0f}s...")
            await asyncio.sleep(hold_s)
    return result


def cmd_configure(args: argparse.Namespace) -> int:
    """Save, show or remove the stored API key."""
    store = CredentialStore(use_env=False)
    if args.show:
        key = CredentialStore().get()
        if key is None:
            print("No API key configured.")
            return EXIT_NEEDS_CONFIGURATION
        print(f"API key: {_mask(key)}")
        return EXIT_OK
    if args.clear:
        store.clear()
        print(f"API key removed from {store.path}")
        return EXIT_OK
    try:
        store.set(args.api_key)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    print("API key saved successfully!")
    return EXIT_OK


def cmd_skeleton(args: argparse.Namespace) -> int:
    """Print the reduced document the AI strategies would see."""
    config = ScanConfig.from_env()
    print(asyncio.run(_skeleton(args.url, config, keep_text=args.keep_text)))
    return EXIT_OK


async def _skeleton(url: str, config: ScanConfig, *, keep_text: bool = False) -> str:
    from ._progress import status_spinner
    from .browser_session import BrowserSession
    from .messages import DiscoverSkeleton
    from .page_agent import PageAgent

    with status_spinner(f"Reducing {url}..."):
        async with BrowserSession() as session:
            await session.navigate(url)
            reply = await PageAgent(session.page, config).request(DiscoverSkeleton(keep_text=keep_text))
    return reply.markup


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Find ads on a web page and overlay AI descriptions on them",
        prog="adlens",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines on stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    _scan_epilog = """\
examples:
  %(prog)s https://example.com                        Heuristic scan
  %(prog)s https://example.com --strategy skeleton    AI-assisted discovery
  %(prog)s https://example.com --headful --hold 30    Watch the overlays
  %(prog)s https://example.com --json                 Machine-readable result
"""
    p_scan = subparsers.add_parser(
        "scan",
        help="Scan a URL for ads",
        epilog=_scan_epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p_scan.add_argument("url", metavar="URL")
    p_scan.add_argument(
        "--strategy",
        choices=STRATEGIES,
        default=None,
        help="Candidate discovery strategy (default: $ADLENS_STRATEGY or heuristic)",
    )
    p_scan.add_argument("--headful", action="store_true", help="Show the browser window")
    p_scan.add_argument("--hold", type=float, default=0.0, metavar="SECONDS", help="Keep the browser open after scanning")
    p_scan.add_argument("--json", action="store_true", help="Print the result as JSON")
    p_scan.add_argument("--json-logs", action="store_true", default=argparse.SUPPRESS, help="Emit logs as JSON lines on stderr")

    p_conf = subparsers.add_parser("configure", help="Manage the stored API key")
    group = p_conf.add_mutually_exclusive_group(required=True)
    group.add_argument("--api-key", metavar="KEY", help="Save this API key")
    group.add_argument("--show", action="store_true", help="Show the active API key (masked)")
    group.add_argument("--clear", action="store_true", help="Remove the stored API key")

    p_skel = subparsers.add_parser("skeleton", help="Print the reduced document for a URL")
    p_skel.add_argument("url", metavar="URL")
    p_skel.add_argument("--keep-text", action="store_true", help="Keep shortened text (whole_page input)")

    return parser


_COMMANDS = {
    "scan": cmd_scan,
    "configure": cmd_configure,
    "skeleton": cmd_skeleton,
}


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    from .logging_config import configure

    parser = build_parser()
    args = parser.parse_args(argv)

    configure(json_output=args.json_logs, level="DEBUG" if args.verbose else "WARNING")

    try:
        code = _COMMANDS[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    except AdLensError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_ERROR)
    sys.exit(code)


if __name__ == "__main__":
    main()
