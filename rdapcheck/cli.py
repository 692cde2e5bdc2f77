from __future__ import annotations

"""Command-line interface for rdapcheck.

This module translates CLI flags into runtime settings, loads the RDAP
bootstrap, feeds domains to `rdapcheck.core.dispatch` and prints one
`domain,message` line per domain.
"""

import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from .core import (
    BootstrapError,
    RegistryDirectory,
    WorkQueue,
    _run_coro_sync,
    dispatch,
    feed,
    load_directory,
    logger,
)
from .output import ResultSink, err_console, print_summary
from .settings import load_runtime_settings
from .version import __version__

STDIN_FILE = "-"
INTERRUPTED_EXIT = 130


def _iter_domains_from_file(file_path: str) -> Iterator[str]:
    """Yield one domain per line, only line terminators removed."""
    if file_path == STDIN_FILE:
        for line in sys.stdin:
            yield line.rstrip("\r\n")
        return
    with Path(file_path).open("r", encoding="utf-8") as fh:
        for line in fh:
            yield line.rstrip("\r\n")


def _domain_sources(domains: Optional[List[str]], file_path: Optional[str]) -> List[Iterable[str]]:
    sources: List[Iterable[str]] = []
    if domains:
        sources.append(list(domains))
    if file_path:
        sources.append(_iter_domains_from_file(file_path))
    return sources


async def _run_lookups(
    sources: List[Iterable[str]],
    directory: RegistryDirectory,
    concurrency: int,
    timeout: Optional[float],
    sink: ResultSink,
) -> int:
    queue = WorkQueue()
    producer = asyncio.create_task(feed(queue, *sources))
    try:
        written = await sink.drain(dispatch(queue, directory, concurrency, timeout=timeout))
    finally:
        if not producer.done():
            producer.cancel()
    # Re-raise read errors from the domain feed.
    await producer
    return written


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rdapcheck",
        description=(
            f"rdapcheck v.{__version__} - Bulk domain registration lookup over RDAP\n"
            "CLI options > environment (.env) > built-in defaults."
        ),
    )
    target_group = parser.add_argument_group("Target")
    target_group.add_argument(
        "-d",
        "--domain",
        action="append",
        help="Domain to check. Repeatable.",
    )
    target_group.add_argument("-f", "--file", help="Domains file to check, one domain per line ('-' for stdin).")

    runtime_group = parser.add_argument_group("Runtime Overrides (Advanced)")
    runtime_group.add_argument(
        "-c",
        "--concurrency",
        help="Max concurrent RDAP lookups (default 256).",
        dest="concurrency",
        type=int,
        required=False,
    )
    runtime_group.add_argument(
        "--timeout",
        help="Per-request timeout in seconds (default: HTTP client default).",
        dest="timeout",
        type=float,
        required=False,
    )
    runtime_group.add_argument("--bootstrap-url", help="RDAP bootstrap document URL.", dest="bootstrap_url", required=False)

    output_group = parser.add_argument_group("Output")
    output_group.add_argument("--json", help="One JSON object per line instead of 'domain,message'.", action="store_true")
    output_group.add_argument("--summary", help="Print per-result counts on stderr when done.", action="store_true")
    output_group.add_argument("--verbose", help="Debug logging on stderr.", action="store_true")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entrypoint.

    Exit status is 1 for usage errors, an unusable bootstrap or an unreadable
    domain file, and 0 otherwise, whatever the individual lookups returned.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logger.setLevel(logging.DEBUG if args.verbose else logging.WARNING)

    if not args.domain and not args.file:
        parser.print_help(sys.stderr)
        sys.exit(1)

    saved = load_runtime_settings()
    concurrency = args.concurrency if args.concurrency is not None else saved["concurrency"]
    timeout = args.timeout if args.timeout is not None else saved["timeout"]
    bootstrap_url = args.bootstrap_url or saved["bootstrap_url"]

    if concurrency < 1:
        err_console.print(f"[red]Invalid concurrency:[/red] {concurrency} (must be >= 1)")
        sys.exit(1)

    if args.file and args.file != STDIN_FILE and not Path(args.file).is_file():
        err_console.print(f"[red]File not found:[/red] {args.file}")
        sys.exit(1)

    try:
        directory = load_directory(bootstrap_url, timeout=timeout)
    except BootstrapError as exc:
        logger.error("%s", exc)
        err_console.print(f"[red]Cannot load RDAP bootstrap:[/red] {exc}")
        sys.exit(1)

    sink = ResultSink(as_json=args.json)
    start_time = datetime.now()
    try:
        _run_coro_sync(_run_lookups(_domain_sources(args.domain, args.file), directory, concurrency, timeout, sink))
    except (OSError, UnicodeDecodeError) as exc:
        err_console.print(f"[red]Cannot read file:[/red] {args.file} ({exc})")
        sys.exit(1)
    elapsed = datetime.now() - start_time

    if args.summary:
        print_summary(sink.counts, elapsed)


def run() -> None:
    """Console-script entrypoint: `main` with a quiet exit on Ctrl-C."""
    try:
        main()
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Interrupted[/yellow]")
        # A feed thread may still be blocked reading stdin; skip joining it.
        os._exit(INTERRUPTED_EXIT)


if __name__ == "__main__":
    run()
