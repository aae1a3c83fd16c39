"""Command-line interface for the voicecode backend.

Provides the main entry point for serving the WebSocket backend and for
exercising the runner and summarizer from a terminal.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="voicecode",
        description="Voice-driven command runner with live terminal summaries",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/voicecode.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP/WebSocket backend")
    serve_parser.add_argument("--host", type=str, default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Listen port")

    run_parser = subparsers.add_parser("run", help="Run the configured command once")
    run_parser.add_argument("text", type=str, help="Prompt text passed to the command")

    summarize_parser = subparsers.add_parser(
        "summarize", help="Summarize a file (or stdin) and print the JSON summary",
    )
    summarize_parser.add_argument(
        "file", type=Path, nargs="?", default=None,
        help="File to summarize (default: read stdin)",
    )

    subparsers.add_parser("health", help="Probe the configured summarizer")

    return parser.parse_args(argv)


async def _run_once(settings, text: str) -> int:
    """Run one buffered prompt and print its result."""
    from voicecode.runner.command import CommandRunner

    runner = CommandRunner.from_config(settings.runner)
    result = await runner.run(text)
    if result.ok:
        print(result.text)
        return 0
    print(f"Error ({result.error.value if result.error else 'error'}): {result.message}", file=sys.stderr)
    if result.preview:
        print(result.preview, file=sys.stderr)
    return 1


async def _summarize(settings, path: Path | None) -> None:
    """Summarize a file or stdin with the configured engine."""
    from voicecode.summarizer.engine import build_summary_engine

    text = path.read_text(errors="replace") if path else sys.stdin.read()
    engine = build_summary_engine(settings)
    try:
        summary = await engine.summarize(text)
    finally:
        await engine.aclose()
    print(json.dumps(summary.to_wire(), indent=2))


async def _health(settings) -> None:
    """Print the summarizer health probe."""
    from voicecode.summarizer.engine import build_summary_engine

    engine = build_summary_engine(settings)
    try:
        status = await engine.health()
    finally:
        await engine.aclose()
    print(json.dumps(status, indent=2))


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the voicecode CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    from voicecode.config.settings import load_settings
    from voicecode.utils.logging import setup_logging

    settings = load_settings(args.config)

    if args.verbose:
        settings.logging.level = "DEBUG"

    setup_logging(settings.logging)

    if args.command == "serve":
        from voicecode.server.app import create_app
        import uvicorn
        host = args.host or settings.server.host
        port = args.port or settings.server.port
        logger.info("Starting backend on %s:%d", host, port)
        uvicorn.run(create_app(settings), host=host, port=port)

    elif args.command == "run":
        sys.exit(asyncio.run(_run_once(settings, args.text)))

    elif args.command == "summarize":
        asyncio.run(_summarize(settings, args.file))

    elif args.command == "health":
        asyncio.run(_health(settings))


if __name__ == "__main__":
    main()
