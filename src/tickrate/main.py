"""
tickrate entry point.

Usage:
    tickrate --mock -a                          Synthetic counter only
    tickrate --scrape http://localhost:9100     Rates from a Prometheus endpoint
    tickrate --basic --output jsonl             Basic host metrics as JSON lines
    tickrate --metrics                          List available metrics and exit
    tickrate --proc nginx=nginx --basic         Sum stats over all nginx processes
    tickrate fake-exporter --port 9100          Serve fake counters to scrape
"""

from __future__ import annotations

import logging
import re
from datetime import timedelta

import click

from tickrate import __version__
from tickrate.collector.host_collector import register_host_collector
from tickrate.collector.mock_collector import register_mock_collector
from tickrate.collector.process_collector import DEFAULT_PID_UPDATE_INTERVAL, register_process_collectors
from tickrate.collector.registry import CollectorRegistry
from tickrate.collector.scrape_collector import register_scrape_collector
from tickrate.dashboard.terminal import run_dashboard, run_jsonl
from tickrate.filters import build_filter
from tickrate.ring import ValueRingFactory
from tickrate.source import CollectorSource


log = logging.getLogger(__name__)


def _split_key_value(pair: str):
    index = pair.find("=")
    if index <= 0:
        raise click.BadParameter(f"expected key=value, got {pair!r}")
    return pair[:index], pair[index + 1:]


def _parse_tags(ctx, param, values) -> dict:
    return dict(map(_split_key_value, values))


def _parse_proc_substrings(ctx, param, values) -> list:
    return [(key, re.compile(re.escape(value))) for key, value in map(_split_key_value, values)]


def _parse_proc_regexes(ctx, param, values) -> list:
    result = []
    for key, value in map(_split_key_value, values):
        try:
            result.append((key, re.compile(value)))
        except re.error as e:
            raise click.BadParameter(f"invalid regex {value!r}: {e}")
    return result


def group_process_filters(*filter_lists) -> dict:
    """Merge (key, regex) pairs into one regex list per process group."""
    groups = {}
    for filters in filter_lists:
        for key, regex in filters:
            groups.setdefault(key, []).append(regex)
    return groups


def build_source(
    mock: bool,
    host: bool,
    scrape: tuple,
    collect_interval: float,
    sink_interval: float,
    window: float,
    all_metrics: bool = False,
    basic: bool = False,
    include: tuple = (),
    exclude: tuple = (),
    tags: dict = None,
    proc_groups: dict = None,
    proc_interval: float = DEFAULT_PID_UPDATE_INTERVAL,
    proc_errors: bool = False,
) -> CollectorSource:
    """Wire up the factory, registry and scheduler from command line settings."""
    factory = ValueRingFactory.for_intervals(
        window=timedelta(seconds=window),
        collect_interval=timedelta(seconds=collect_interval),
    )
    log.debug("Ring length %d for a %.2fs window", factory.length, window)

    registry = CollectorRegistry()
    if mock:
        register_mock_collector(registry, factory)
    if host:
        register_host_collector(registry, factory)
    for url in scrape:
        register_scrape_collector(registry, url, factory)
    if proc_groups:
        register_process_collectors(registry, factory, proc_groups,
                                    pid_update_interval=proc_interval, print_errors=proc_errors)

    return CollectorSource(
        registry,
        collect_interval=collect_interval,
        sink_interval=sink_interval,
        metric_filter=build_filter(all_metrics, basic, include, exclude),
        tags=tags,
    )


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="tickrate")
@click.option("--mock", is_flag=True, default=False, help="Register the synthetic mock collector")
@click.option("--host/--no-host", default=True, help="Collect local host stats via psutil")
@click.option("--scrape", multiple=True, help="Prometheus endpoint to scrape (repeatable)")
@click.option("--proc", "proc_substrings", multiple=True, callback=_parse_proc_substrings,
              help="key=substring: sum stats of processes whose command line contains substring")
@click.option("--proc-regex", "proc_regexes", multiple=True, callback=_parse_proc_regexes,
              help="key=regex: sum stats of processes whose command line matches regex")
@click.option("--proc-err", "proc_errors", is_flag=True, default=False,
              help="Log errors encountered while reading process stats")
@click.option("--proc-interval", default=DEFAULT_PID_UPDATE_INTERVAL, type=click.FloatRange(min=0.01),
              help="Seconds between re-scans of the watched process list")
@click.option("--collect-interval", default=0.5, type=click.FloatRange(min=0.01),
              help="Seconds between collector updates")
@click.option("--sink-interval", default=0.5, type=click.FloatRange(min=0.01),
              help="Seconds between emitted samples")
@click.option("--window", default=1.0, type=click.FloatRange(min=0.01),
              help="Look-back window in seconds for rates")
@click.option("-a", "--all", "all_metrics", is_flag=True, default=False,
              help="Disable built-in filters on available metrics")
@click.option("--basic", is_flag=True, default=False, help="Include only a basic subset of metrics")
@click.option("--include", multiple=True, help="Metrics to include exclusively (substring match)")
@click.option("--exclude", multiple=True, help="Metrics to exclude (substring match)")
@click.option("--tag", "tags", multiple=True, callback=_parse_tags,
              help="key=value tag attached to every sample (repeatable)")
@click.option("--metrics", "print_metrics", is_flag=True, default=False,
              help="Print all available metrics and exit")
@click.option("--output", type=click.Choice(["tui", "jsonl"]), default="tui",
              help="Output mode: tui (Rich dashboard) or jsonl (one JSON line per sample)")
@click.option("--verbose", is_flag=True, default=False, help="Enable debug logging")
@click.pass_context
def cli(ctx, mock: bool, host: bool, scrape: tuple, proc_substrings: list, proc_regexes: list,
        proc_errors: bool, proc_interval: float, collect_interval: float, sink_interval: float,
        window: float, all_metrics: bool, basic: bool, include: tuple, exclude: tuple,
        tags: dict, print_metrics: bool, output: str, verbose: bool):
    """tickrate - rate-of-change metrics collector."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    if ctx.invoked_subcommand is not None:
        return

    proc_groups = group_process_filters(proc_substrings, proc_regexes)
    if not (mock or host or scrape or proc_groups):
        raise click.UsageError("No collectors selected: use --mock, --host, --scrape or --proc")

    source = build_source(mock, host, scrape, collect_interval, sink_interval, window,
                          all_metrics, basic, include, exclude, tags,
                          proc_groups, proc_interval, proc_errors)
    try:
        source.init_collectors()
        if print_metrics:
            for name in source.available_metrics():
                click.echo(name)
            return
        if not source.active:
            click.echo("No collector initialised successfully, nothing to do.")
            raise SystemExit(1)

        source.start()
        runner = run_jsonl if output == "jsonl" else run_dashboard
        runner(source, refresh_interval=sink_interval)
    finally:
        source.close()


@cli.command("fake-exporter")
@click.option("--host", "bind_host", default="127.0.0.1", help="Address to bind")
@click.option("--port", default=9100, help="Port to serve /metrics on")
def fake_exporter(bind_host: str, port: int):
    """Serve fake Prometheus counters for trying out --scrape."""
    from tickrate.mock.fake_exporter import run_fake_exporter

    run_fake_exporter(host=bind_host, port=port)


if __name__ == "__main__":
    cli()
