"""Terminal output: a Rich live table of metric rates, or plain JSON lines."""

from __future__ import annotations

import json
import logging
import sys
import time
from collections import deque
from typing import Optional

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from tickrate import __version__
from tickrate.sample import Sample
from tickrate.source import CollectorSource

log = logging.getLogger(__name__)

# How many samples to keep for trend comparison
HISTORY_SIZE = 30


def _trend_arrow(current: float, previous: float) -> str:
    """Returns a ^ or v arrow, or a dash when the change is just noise."""
    if previous == 0:
        return ""

    pct_change = (current - previous) / abs(previous)
    threshold = 0.03  # ignore noise below 3%

    if abs(pct_change) < threshold:
        return "[dim]-[/dim]"
    return "[cyan]^[/cyan]" if pct_change > 0 else "[magenta]v[/magenta]"


def _get_lookback(history: deque, steps_back: int = 5) -> Optional[Sample]:
    """Grab a sample from N steps ago for trend comparison."""
    if len(history) > steps_back:
        return history[-(steps_back + 1)]
    elif len(history) > 1:
        return history[0]
    return None


def _format_value(value: float) -> str:
    if abs(value) >= 1000:
        return f"{value:,.0f}"
    return f"{value:.2f}"


def build_table(sample: Sample, history: deque) -> Table:
    prev = _get_lookback(history)

    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Metric", style="dim")
    table.add_column("Value", justify="right")
    table.add_column("", width=2)

    for name, value in sorted(sample.values.items()):
        trend = ""
        if prev is not None and name in prev.values:
            trend = _trend_arrow(value, prev.values[name])
        table.add_row(name, _format_value(value), trend)
    return table


def build_display(sample: Sample, history: deque) -> Layout:
    layout = Layout()

    header = Text(f"  tickrate v{__version__}  |  {len(sample.values)} metrics", style="bold white on blue")
    header.append(f"\n  {sample.timestamp.strftime('%Y-%m-%d %H:%M:%S')}  ", style="dim")
    if sample.tags:
        header.append("  " + " ".join(f"{k}={v}" for k, v in sorted(sample.tags.items())), style="dim")

    layout.split_column(
        Layout(Panel(header, border_style="blue"), size=4),
        Layout(Panel(build_table(sample, history), title="Metrics", border_style="cyan"), name="body"),
        Layout(Panel(Text("  Press Ctrl+C to stop", style="dim"), border_style="dim"), size=3),
    )
    return layout


def run_dashboard(source: CollectorSource, refresh_interval: Optional[float] = None):
    refresh_interval = refresh_interval or source.sink_interval
    console = Console()
    history: deque[Sample] = deque(maxlen=HISTORY_SIZE)

    log.info("Starting dashboard: %d collectors, refresh=%.1fs", len(source.active), refresh_interval)
    console.print(f"\n[bold]Starting tickrate v{__version__}...[/bold]")
    console.print(f"Collectors: {', '.join(c.name for c in source.active) or 'none'}")
    console.print(f"Refresh: every {refresh_interval}s")
    console.print()

    with Live(console=console, refresh_per_second=4, screen=True) as live:
        try:
            while True:
                sample = source.sample()
                history.append(sample)
                live.update(build_display(sample, history))
                time.sleep(refresh_interval)
        except KeyboardInterrupt:
            pass

    console.print(f"\n[dim]Dashboard stopped. {len(history)} samples shown.[/dim]")


def run_jsonl(source: CollectorSource, refresh_interval: Optional[float] = None, stream=None):
    """Non-interactive output mode: one JSON object per sample per line.

    Meant for containers and log shippers where a Rich TUI isn't available.
    """
    refresh_interval = refresh_interval or source.sink_interval
    stream = stream or sys.stdout
    log.info("Starting JSONL output: %d collectors, refresh=%.1fs", len(source.active), refresh_interval)

    try:
        while True:
            stream.write(json.dumps(source.sample().summary()) + "\n")
            stream.flush()
            time.sleep(refresh_interval)
    except KeyboardInterrupt:
        pass
