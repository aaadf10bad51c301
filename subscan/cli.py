"""Rich CLI interface for Subscan."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from subscan import __version__
from subscan.core.config import ConfigurationError, Settings, apply_overrides, load_settings
from subscan.core.exporter import (
    FORMAT_PLAIN,
    SUPPORTED_FORMATS,
    format_probe_records,
    format_report,
    is_valid_format,
    write_output,
)
from subscan.core.logger import get_logger, setup_logging
from subscan.core.scheduler import Scheduler
from subscan.models.host import ProbeRecord
from subscan.models.scan import ScanReport
from subscan.modules.validation.dns_resolve import LivenessChecker
from subscan.utils.deduplicator import load_hosts

app = typer.Typer(
    name="subscan",
    help="Subdomain misconfiguration scanner",
    add_completion=False,
)
console = Console()
logger = get_logger(__name__)

_state: dict[str, Optional[Path]] = {"config": None}


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]Subscan[/bold blue] v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version",
    ),
    debug: bool = typer.Option(
        False, "--debug", "-d",
        help="Enable debug mode",
    ),
    config: Optional[Path] = typer.Option(
        None, "--config",
        help="YAML settings file",
    ),
) -> None:
    """Subscan - score and probe discovered subdomains."""
    # Quiet mode for CLI unless debug
    log_level = "DEBUG" if debug else "WARNING"
    setup_logging(level=log_level)
    _state["config"] = config


def _fail(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    raise typer.Exit(1)


def _settings(
    concurrency: Optional[int],
    timeout: Optional[float],
    user_agent: Optional[str],
    verbose: bool,
) -> Settings:
    """Load settings and apply command-line overrides to the probe section."""
    settings = load_settings(_state["config"])

    updates: dict = {"verbose": verbose or settings.probe.verbose}
    if concurrency is not None:
        updates["concurrency"] = concurrency
    if timeout is not None:
        updates["timeout"] = timeout
    if user_agent:
        updates["user_agent"] = user_agent

    return settings.model_copy(update={"probe": apply_overrides(settings.probe, **updates)})


def _load(hosts_file: Path, fmt: str) -> list[str]:
    if not is_valid_format(fmt):
        raise ConfigurationError(
            f"Invalid output format '{fmt}'. Supported formats: {', '.join(SUPPORTED_FORMATS)}"
        )
    return load_hosts(hosts_file)


async def _filter_alive(settings: Settings, hosts: list[str]) -> list[str]:
    checker = LivenessChecker(settings.dns)
    with console.status(f"[bold green]Resolving {len(hosts)} hosts..."):
        alive = await checker.filter_alive(
            hosts,
            progress_interval=settings.probe.progress_interval,
        )
    console.print(f"[cyan]Found {len(alive)} alive subdomains[/cyan]")
    return alive


async def _run_score(
    settings: Settings,
    hosts: list[str],
    resolve: bool,
) -> ScanReport:
    if resolve:
        hosts = await _filter_alive(settings, hosts)

    scheduler = Scheduler(settings, active_checks=False)
    with console.status(f"[bold green]Scoring {len(hosts)} hosts..."):
        return await scheduler.run(
            hosts,
            worker_budget=settings.probe.concurrency,
            per_host_timeout=settings.probe.timeout,
        )


async def _run_probe(
    settings: Settings,
    hosts: list[str],
    resolve: bool,
) -> list[ProbeRecord]:
    if resolve:
        hosts = await _filter_alive(settings, hosts)

    scheduler = Scheduler(settings, active_checks=True)
    with console.status(f"[bold green]Probing {len(hosts)} hosts..."):
        return await scheduler.run_probes(
            hosts,
            concurrency=settings.probe.concurrency,
            timeout=settings.probe.timeout,
        )


def _score_table(report: ScanReport, limit: int = 50) -> Table:
    table = Table(title="Subdomain Analysis Results (Sorted by Score)")
    table.add_column("Score", style="bold", justify="right")
    table.add_column("Domain", style="cyan")
    table.add_column("Status")
    table.add_column("CNAME", style="dim")
    table.add_column("Tags", style="yellow")

    for result in report.results[:limit]:
        status = str(result.status_code) if result.status_code else "-"
        table.add_row(
            f"{result.score:.1f}",
            result.hostname,
            status,
            result.cname or "",
            " ".join(result.tags),
        )

    if report.total > limit:
        table.add_row("...", f"and {report.total - limit} more", "", "", "")
    return table


def _probe_table(records: list[ProbeRecord]) -> Table:
    table = Table(title="Probe Findings")
    table.add_column("Domain", style="cyan")
    table.add_column("Vulnerabilities", style="red")
    table.add_column("Details", style="dim")

    for record in records:
        if not record.vulnerabilities:
            continue
        details = []
        if record.cname:
            details.append(f"CNAME: {record.cname}")
        details.extend(record.exposed_files)
        if record.redirect_url:
            details.append(record.redirect_url)
        table.add_row(record.domain, "\n".join(record.vulnerabilities), "\n".join(details))
    return table


@app.command()
def score(
    hosts_file: Path = typer.Argument(..., help="File with one hostname per line"),
    domain: str = typer.Option(
        "", "--domain",
        help="Target domain shown in report headers",
    ),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", "-c",
        help="Number of concurrent hosts (default: 10)",
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t",
        help="Timeout in seconds for each request (default: 5)",
    ),
    fmt: str = typer.Option(
        FORMAT_PLAIN, "--format", "-f",
        help="Output format: plain, json, csv, html, markdown",
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o",
        help="Output file",
    ),
    verbose: bool = typer.Option(
        False, "--verbose",
        help="Log every host as it completes",
    ),
    no_resolve: bool = typer.Option(
        False, "--no-resolve",
        help="Skip the DNS liveness filter",
    ),
    user_agent: Optional[str] = typer.Option(
        None, "--user-agent",
        help="User-Agent header for outbound requests",
    ),
) -> None:
    """Score hosts by how interesting they look (no active checks).

    Example:
        subscan score hosts.txt
        subscan score hosts.txt -f html -o report.html --domain example.com
    """
    if verbose:
        setup_logging(level="INFO")

    try:
        base = load_settings(_state["config"]).score
        settings = _settings(
            concurrency if concurrency is not None else base.concurrency,
            timeout if timeout is not None else base.timeout,
            user_agent,
            verbose or base.verbose,
        )
        hosts = _load(hosts_file, fmt)
        if not hosts:
            console.print("[yellow]No hosts to score[/yellow]")
            raise typer.Exit(0)

        report = asyncio.run(_run_score(settings, hosts, resolve=not no_resolve))
        rendered = format_report(report, fmt, target=domain)
        written = write_output(rendered, output)
    except ConfigurationError as e:
        _fail(str(e))
        return

    if written:
        console.print(f"[blue]Results saved to {written} in {fmt} format[/blue]")
        console.print(_score_table(report))
    elif fmt == FORMAT_PLAIN:
        console.print(_score_table(report))
    else:
        typer.echo(rendered)


@app.command()
def probe(
    hosts_file: Path = typer.Argument(..., help="File with one hostname per line"),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", "-c",
        help="Number of concurrent probes (default: 10)",
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", "-t",
        help="Timeout in seconds for probe requests (default: 10)",
    ),
    fmt: str = typer.Option(
        FORMAT_PLAIN, "--format", "-f",
        help="Output format: plain, json, csv, html, markdown",
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o",
        help="Output file",
    ),
    verbose: bool = typer.Option(
        False, "--verbose",
        help="Log every host as it completes",
    ),
    no_resolve: bool = typer.Option(
        False, "--no-resolve",
        help="Skip the DNS liveness filter",
    ),
    user_agent: Optional[str] = typer.Option(
        None, "--user-agent",
        help="User-Agent header for outbound requests",
    ),
) -> None:
    """Probe hosts for takeovers, exposed buckets and files, and open redirects.

    Example:
        subscan probe hosts.txt
        subscan probe hosts.txt -f json -o findings.json
    """
    if verbose:
        setup_logging(level="INFO")

    try:
        settings = _settings(concurrency, timeout, user_agent, verbose)
        hosts = _load(hosts_file, fmt)
        if not hosts:
            console.print("[yellow]No hosts to probe[/yellow]")
            raise typer.Exit(0)

        records = asyncio.run(_run_probe(settings, hosts, resolve=not no_resolve))
        rendered = format_probe_records(records, fmt)
        written = write_output(rendered, output)
    except ConfigurationError as e:
        _fail(str(e))
        return

    vulnerable = [r for r in records if r.vulnerabilities]
    if written:
        console.print(f"[blue]Probe results saved to {written} in {fmt} format[/blue]")
    elif fmt != FORMAT_PLAIN:
        typer.echo(rendered)
        return

    if vulnerable:
        console.print(_probe_table(records))
    console.print(
        f"[green]Probed {len(records)} hosts, "
        f"{len(vulnerable)} with issues[/green]"
    )


@app.command()
def resolve(
    hosts_file: Path = typer.Argument(..., help="File with one hostname per line"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o",
        help="Output file",
    ),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", "-c",
        help="Number of concurrent lookups (default: 50)",
    ),
) -> None:
    """Keep only hosts that resolve to an address.

    Example:
        subscan resolve hosts.txt -o alive.txt
    """
    try:
        settings = load_settings(_state["config"])
        if concurrency is not None:
            dns = apply_overrides(settings.dns, liveness_concurrency=concurrency)
            settings = settings.model_copy(update={"dns": dns})

        hosts = load_hosts(hosts_file)
        alive = asyncio.run(_filter_alive(settings, hosts))
        written = write_output("".join(f"{h}\n" for h in alive), output)
    except ConfigurationError as e:
        _fail(str(e))
        return

    if written:
        console.print(f"[blue]Results saved to {written}[/blue]")
    else:
        for host in alive:
            typer.echo(host)


if __name__ == "__main__":
    app()
