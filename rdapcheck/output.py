from __future__ import annotations

"""Result rendering helpers for rdapcheck.

Outcome lines go to stdout with plain writes so the `domain,message` format
stays byte exact for downstream tools. Everything decorative (errors, the
summary table) goes to stderr through rich.
"""

import json
import sys
from collections import Counter
from datetime import timedelta
from typing import AsyncIterator, Dict, Iterable, Optional, TextIO

from rich import box
from rich.console import Console
from rich.table import Table

from .core import LookupOutcome, OutcomeKind, fmt_td

err_console = Console(stderr=True)

SUMMARY_LABELS = {
    OutcomeKind.REGISTERED: "[green]Registered[/green]",
    OutcomeKind.UNREGISTERED: "[cyan]Unregistered[/cyan]",
    OutcomeKind.SERVER_ERROR: "[red]Server error[/red]",
    OutcomeKind.NO_PROVIDER: "[yellow]No provider[/yellow]",
    OutcomeKind.TRANSPORT_ERROR: "[red]Transport error[/red]",
    OutcomeKind.UNKNOWN_STATUS: "[yellow]Unknown status[/yellow]",
}


def format_line(outcome: LookupOutcome) -> str:
    return f"{outcome.domain},{outcome.message}\n"


def format_json_line(outcome: LookupOutcome) -> str:
    return json.dumps(outcome.as_dict(), ensure_ascii=False) + "\n"


class ResultSink:
    """Write outcomes as they arrive and keep per-kind counts."""

    def __init__(self, stream: Optional[TextIO] = None, as_json: bool = False):
        self.stream = stream if stream is not None else sys.stdout
        self.as_json = as_json
        self.counts: Counter = Counter()
        self.broken_pipe = False

    def write(self, outcome: LookupOutcome) -> None:
        self.counts[outcome.kind] += 1
        if self.broken_pipe:
            return
        line = format_json_line(outcome) if self.as_json else format_line(outcome)
        try:
            self.stream.write(line)
            self.stream.flush()
        except BrokenPipeError:
            # Reader went away (e.g. `| head`); keep counting without output.
            self.broken_pipe = True

    def write_all(self, outcomes: Iterable[LookupOutcome]) -> int:
        written = 0
        for outcome in outcomes:
            self.write(outcome)
            written += 1
        return written

    async def drain(self, outcomes: AsyncIterator[LookupOutcome]) -> int:
        written = 0
        async for outcome in outcomes:
            self.write(outcome)
            written += 1
        return written

    @property
    def total(self) -> int:
        return sum(self.counts.values())


def print_summary(counts: Dict[OutcomeKind, int], elapsed: Optional[timedelta] = None) -> None:
    table = Table(title="RDAP lookup summary", box=box.SIMPLE_HEAVY, title_justify="left")
    table.add_column("Result", style="cyan")
    table.add_column("Domains", justify="right")
    total = 0
    for kind in OutcomeKind:
        count = int(counts.get(kind, 0))
        total += count
        table.add_row(SUMMARY_LABELS[kind], str(count))
    table.add_row("[bold]Total[/bold]", f"[bold]{total}[/bold]")
    err_console.print(table)
    err_console.print(f"[cyan]Elapsed:[/cyan] {fmt_td(elapsed)}")
