"""SilentProbe CLI - scan, re-classify, judge and plan."""

import json
import logging
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import click
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from silentprobe import __version__
from silentprobe.artifacts.canonical_json import canonical_dumps, read_jsonl, write_json
from silentprobe.artifacts.writer import write_scan_artifacts
from silentprobe.budget.engine import allocate_routes
from silentprobe.budget.profiles import create_scan_budget
from silentprobe.config import DEFAULT_CONFIG_PATH, load_scan_config, write_default_config
from silentprobe.detection.expectations import ExpectationSet, load_expectations
from silentprobe.driver.playwright_page import open_browser
from silentprobe.errors import (
    ConfigError,
    DecisionInvariantError,
    ExpectationInputError,
    InfrastructureError,
)
from silentprobe.frontier.urls import CRAWLABLE_SCHEMES
from silentprobe.obs.run_artifacts import generated_at, resolve_run_dir
from silentprobe.orchestrator.replay import reclassify_traces
from silentprobe.orchestrator.scan import ScanResult, build_result, run_scan
from silentprobe.schemas.validator import SchemaViolation
from silentprobe.truth.classifier import classify_run_truth, format_truth_as_text
from silentprobe.truth.decision import (
    EXIT_INVARIANT_VIOLATION,
    EXIT_USAGE_ERROR,
    TRUTH_EXIT_CODES,
    FinalVerdict,
)
from silentprobe.truth.types import RunSummary, TruthThresholds

cli = typer.Typer(
    name="silentprobe",
    help="SilentProbe - detect interactions that silently fail to keep their promise",
    no_args_is_help=True,
)
console = Console()

config_app = typer.Typer(help="Scan configuration file commands", no_args_is_help=True)
cli.add_typer(config_app, name="config")

PROFILE_CHOICE = click.Choice(["QUICK", "STANDARD", "THOROUGH", "EXHAUSTIVE"], case_sensitive=False)
TIMESTAMP_CHOICE = click.Choice(["deterministic", "wallclock"], case_sensitive=False)
EXIT_MODE_CHOICE = click.Choice(["decision", "truth"], case_sensitive=False)

VERDICT_STYLES: dict[FinalVerdict, str] = {
    FinalVerdict.READY: "bold green",
    FinalVerdict.FRICTION: "bold yellow",
    FinalVerdict.DO_NOT_LAUNCH: "bold red",
    FinalVerdict.ERROR: "bold magenta",
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _usage_error(exc: Exception) -> typer.Exit:
    reason = getattr(exc, "reason_code", None)
    suffix = f" [dim]({reason})[/dim]" if reason else ""
    console.print(f"[bold red]Error:[/bold red] {exc}{suffix}")
    return typer.Exit(EXIT_USAGE_ERROR)


def _load_expectations_or_empty(path: Path | None) -> ExpectationSet:
    if path is None:
        return ExpectationSet(expectations=(), routes=())
    return load_expectations(path)


def _version_option_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@cli.callback()
def _cli_callback(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show SilentProbe version and exit.",
        is_eager=True,
        callback=_version_option_callback,
    ),
) -> None:
    """Evidence-gated silent failure detection for web interactions."""
    _ = version


def _print_result(result: ScanResult, run_dir: Path) -> None:
    decision = result.decision
    console.print(format_truth_as_text(result.truth))
    style = VERDICT_STYLES[decision.final_verdict]
    console.print(
        f"[{style}]Decision: {decision.final_verdict.value}[/{style}] "
        f"(source {decision.verdict_source}, confidence {decision.confidence:.2f})"
    )
    stats = result.frontier
    console.print(
        f"[dim]Pages visited {stats.pages_visited}/{stats.pages_discovered} discovered; "
        f"{len(result.records)} interaction record(s); "
        f"{len(result.coverage_gaps)} coverage gap(s)[/dim]"
    )
    console.print(f"[cyan]Artifacts:[/cyan] {run_dir}")


@cli.command()
def scan(
    url: str = typer.Argument(..., help="Start URL (http or https)"),
    expectations: Path | None = typer.Option(
        None,
        "--expectations",
        "-e",
        help="Expectations document (JSON or YAML)",
    ),
    profile: str | None = typer.Option(
        None,
        "--profile",
        click_type=PROFILE_CHOICE,
        help="Budget profile (default STANDARD)",
    ),
    config_path: Path | None = typer.Option(
        None,
        "--config",
        help=f"Config file (default {DEFAULT_CONFIG_PATH})",
    ),
    run_root: Path | None = typer.Option(
        None,
        "--run-root",
        help="Run root directory (default: SILENTPROBE_RUN_ROOT, then ./out/runs)",
    ),
    timestamp_mode: str | None = typer.Option(
        None,
        "--timestamp-mode",
        click_type=TIMESTAMP_CHOICE,
        help="deterministic for reproducible run ids and timestamps",
    ),
    adaptive: bool | None = typer.Option(
        None,
        "--adaptive/--fixed",
        help="Adaptive settle extensions (disable for reproducible runs)",
    ),
    headless: bool | None = typer.Option(
        None,
        "--headless/--headed",
        help="Run the browser headless",
    ),
    exit_mode: str = typer.Option(
        "decision",
        "--exit-mode",
        click_type=EXIT_MODE_CHOICE,
        help="Exit with the decision code or the truth code",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Scan a site, classify every interaction, and write run artifacts."""
    _configure_logging(verbose)
    if urlsplit(url).scheme not in CRAWLABLE_SCHEMES:
        raise _usage_error(ValueError(f"Start URL must be http(s): {url}"))

    try:
        config = load_scan_config(
            url,
            config_path=config_path,
            profile=profile,
            overrides={"adaptive_stabilization": adaptive},
            run_root=run_root,
            timestamp_mode=timestamp_mode,
            headless=headless,
            exit_mode=exit_mode.lower(),
        )
        expectation_set = _load_expectations_or_empty(expectations)
    except (ConfigError, ExpectationInputError) as exc:
        raise _usage_error(exc) from exc

    thresholds = TruthThresholds(min_coverage=config.min_coverage)
    try:
        with open_browser(headless=config.headless) as page:
            result = run_scan(
                page, config.url, config.budget, expectation_set, thresholds=thresholds
            )
    except InfrastructureError as exc:
        console.print(f"[bold red]Infrastructure failure:[/bold red] {exc}")
        result = build_result(
            config.url,
            config.budget,
            expectation_set,
            infra_error=str(exc),
            thresholds=thresholds,
        )
    except DecisionInvariantError as exc:
        console.print(f"[bold red]Decision invariant violated:[/bold red] {exc}")
        raise typer.Exit(EXIT_INVARIANT_VIOLATION) from exc

    run_dir = resolve_run_dir(run_root=config.run_root, timestamp_mode=config.timestamp_mode)
    try:
        write_scan_artifacts(run_dir, result, generated_at=generated_at(config.timestamp_mode))
    except SchemaViolation as exc:
        console.print(f"[bold red]Artifact invariant violated:[/bold red] {exc}")
        raise typer.Exit(EXIT_INVARIANT_VIOLATION) from exc

    _print_result(result, run_dir)
    if config.exit_mode == "truth":
        raise typer.Exit(TRUTH_EXIT_CODES[result.truth.truth_state])
    raise typer.Exit(result.decision.exit_code)


@cli.command()
def classify(
    traces: Path = typer.Argument(..., help="traces.jsonl from a previous scan"),
    expectations: Path = typer.Option(..., "--expectations", "-e", help="Expectations document"),
    out: Path | None = typer.Option(None, "--out", help="Write verdicts as JSON to this path"),
    workers: int = typer.Option(1, "--workers", min=1, help="Classifier threads"),
    min_coverage: float = typer.Option(0.90, "--min-coverage", min=0.0, max=1.0),
) -> None:
    """Re-classify recorded traces against an expectations document."""
    try:
        expectation_set = load_expectations(expectations)
        records = read_jsonl(traces)
    except ExpectationInputError as exc:
        raise _usage_error(exc) from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise _usage_error(ValueError(f"Could not read traces {traces}: {exc}")) from exc

    result = reclassify_traces(records, expectation_set, workers=workers)
    payload = [row.to_dict() for row in result.rows]
    if out is not None:
        write_json(out, payload)
        console.print(f"[cyan]Verdicts:[/cyan] {out}")
    else:
        console.print(canonical_dumps(payload), markup=False, highlight=False)

    truth = classify_run_truth(result.summary, TruthThresholds(min_coverage=min_coverage))
    console.print(format_truth_as_text(truth))
    raise typer.Exit(TRUTH_EXIT_CODES[truth.truth_state])


@cli.command()
def truth(
    summary: Path = typer.Argument(..., help="summary.json from a previous scan"),
    min_coverage: float = typer.Option(0.90, "--min-coverage", min=0.0, max=1.0),
) -> None:
    """Compute the run truth for a summary file."""
    try:
        payload: Any = json.loads(summary.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise _usage_error(ValueError(f"Could not read summary {summary}: {exc}")) from exc
    if not isinstance(payload, dict):
        raise _usage_error(ValueError(f"Summary {summary} must be a JSON object"))

    result = classify_run_truth(
        RunSummary.from_dict(payload), TruthThresholds(min_coverage=min_coverage)
    )
    console.print(format_truth_as_text(result))
    raise typer.Exit(TRUTH_EXIT_CODES[result.truth_state])


@cli.command()
def budget(
    expectations: Path = typer.Option(..., "--expectations", "-e", help="Expectations document"),
    profile: str = typer.Option(
        "STANDARD", "--profile", click_type=PROFILE_CHOICE, help="Budget profile"
    ),
) -> None:
    """Show per-route interaction budgets, sorted by route."""
    try:
        expectation_set = load_expectations(expectations)
        scan_budget = create_scan_budget(profile)
    except (ConfigError, ExpectationInputError) as exc:
        raise _usage_error(exc) from exc

    allocations = allocate_routes(
        expectation_set.routes,
        expectation_set.counts_by_route(),
        base=scan_budget.max_interactions_per_page,
    )
    table = Table(title=f"Route budgets ({profile.upper()})")
    table.add_column("Route")
    table.add_column("Expectations", justify="right")
    table.add_column("Budget", justify="right")
    table.add_column("Critical")
    table.add_column("Reason")
    for allocation in allocations:
        table.add_row(
            allocation.route,
            str(allocation.expectations_for_route),
            str(allocation.budget),
            "yes" if allocation.is_critical else "no",
            allocation.reason,
        )
    console.print(table)


@config_app.command(name="init")
def config_init(
    path: Path = typer.Option(DEFAULT_CONFIG_PATH, "--path", help="Config file to create"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config file"),
) -> None:
    """Write the default scan configuration."""
    try:
        created = write_default_config(path, force=force)
    except FileExistsError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        console.print("[yellow]Use --force to overwrite.[/yellow]")
        raise typer.Exit(1) from exc

    console.print("[green]✓ Scan config initialized[/green]")
    console.print(f"[cyan]Path:[/cyan] {created}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
