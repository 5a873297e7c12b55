"""
CLI mirror commands — run syncs, list projects, show the last run.

Usage:
    mirror-sync sync [--parallel|--sequential] [--json-lines] [--dashboard]
                     [--interval SECONDS] [--audit-file FILE]
    mirror-sync projects [--json]
    mirror-sync status [--json]
"""

from __future__ import annotations

import json
import logging
import signal
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import click

from ..config.loader import CONFIG_ENV_VAR, DEFAULT_CONFIG_FILE
from ..persistence.report import DEFAULT_REPORT_FILE

logger = logging.getLogger(__name__)

EXIT_PROJECT_ERRORS = 1
EXIT_FATAL = 2

config_file_option = click.option(
    "--config-file",
    envvar=CONFIG_ENV_VAR,
    default=DEFAULT_CONFIG_FILE,
    show_default=True,
    help="Path to the YAML configuration file",
)


def _fatal(message: str) -> None:
    click.secho(f"❌ {message}", fg="red", err=True)
    raise SystemExit(EXIT_FATAL)


@contextmanager
def _stop_on_signals(scheduler) -> Iterator[None]:
    """Route SIGINT/SIGTERM to scheduler.stop() while a run is active."""
    previous = {}

    def _handler(signum, frame):
        logger.warning(f"Received signal {signum}, finishing in-flight projects")
        scheduler.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[sig] = signal.signal(sig, _handler)
        except ValueError:
            # Not in the main thread
            pass
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def _print_summary(result, jsonl: bool) -> None:
    from ..mirror.state import Phase

    if jsonl:
        click.echo(json.dumps({
            "event": "done",
            "run_id": result.run_id,
            "success": not result.has_errors and result.completed,
            "completed": result.completed,
            "updated": result.updated,
            "unchanged": result.unchanged,
            "errors": result.failed,
            "not_started": result.not_started,
            "duration_ms": result.duration_ms,
        }))
        return

    click.echo()
    for project in result.projects:
        phase = Phase(project.phase)
        color = "red" if phase == Phase.ERROR else "green" if phase.is_terminal else "yellow"
        click.secho(f"  {phase.label:<24} {project.id}", fg=color)
        if phase == Phase.ERROR and project.last_log:
            click.echo(f"      {project.last_log[:160]}")

    click.echo()
    summary = (
        f"{result.updated} updated, {result.unchanged} unchanged, "
        f"{result.failed} failed in {result.duration_ms / 1000:.1f}s"
    )
    if not result.completed:
        click.secho(f"⚠️  Stopped early ({result.not_started} not started): {summary}", fg="yellow")
    elif result.has_errors:
        click.secho(f"⚠️  Finished with errors: {summary}", fg="yellow")
    else:
        click.secho(f"✅ Mirror sync complete: {summary}", fg="green")


@click.command("sync")
@config_file_option
@click.option("--parallel/--sequential", "parallel", default=None,
              help="Override the 'parallel' setting from the config file")
@click.option("--json-lines", "jsonl", is_flag=True, help="Output JSON lines for streaming")
@click.option("--dashboard", is_flag=True, help="Show a live status table")
@click.option("--audit-file", default=None, help="Append lifecycle events to this NDJSON ledger")
@click.option("--report-file", default=DEFAULT_REPORT_FILE, show_default=True,
              help="Where to write the run report")
@click.option("--interval", type=float, default=None,
              help="Repeat the sync every N seconds until interrupted")
@click.option("--timeout", type=int, default=600, show_default=True,
              help="Timeout in seconds for a single git command")
@click.pass_context
def sync(
    ctx: click.Context,
    config_file: str,
    parallel: Optional[bool],
    jsonl: bool,
    dashboard: bool,
    audit_file: Optional[str],
    report_file: str,
    interval: Optional[float],
    timeout: int,
) -> None:
    """Mirror every configured project to its target remote."""
    from ..config.credentials import load_credential
    from ..config.loader import load_config
    from ..config.validator import check_config_on_startup
    from ..errors import ConfigError, CredentialError
    from ..mirror.git_client import GitClient
    from ..mirror.registry import build_registry
    from ..mirror.scheduler import SyncScheduler
    from ..mirror.sink import JsonLinesSink, LoggingSink, StateTable
    from ..persistence.audit import AuditSink, AuditWriter
    from ..persistence.report import save_report
    from .dashboard import TerminalDashboard

    root: Path = ctx.obj["root"]

    try:
        settings = load_config(root / config_file)
        registry = build_registry(settings)
        credential = load_credential(settings.ssh_key_path)
    except (ConfigError, CredentialError) as e:
        _fatal(f"{type(e).__name__}: {e}")

    check_config_on_startup(root / config_file)

    use_parallel = settings.parallel if parallel is None else parallel
    audit_writer = AuditWriter(root / audit_file) if audit_file else None
    report_path = root / report_file

    def make_table(run_id: str) -> StateTable:
        table = StateTable()
        if not dashboard:
            table.subscribe(LoggingSink())
        if jsonl:
            table.subscribe(JsonLinesSink(write=click.echo, run_id=run_id))
        if audit_writer:
            table.subscribe(AuditSink(audit_writer, run_id))
        return table

    results: List = []

    def on_result(result) -> None:
        results.append(result)
        save_report(result, report_path)
        if audit_writer:
            audit_writer.emit(
                "run_end",
                run_id=result.run_id,
                level="error" if result.has_errors else "info",
                details={
                    "updated": result.updated,
                    "unchanged": result.unchanged,
                    "failed": result.failed,
                    "completed": result.completed,
                },
            )
        # The dashboard clears the screen on every frame
        if board is None:
            _print_summary(result, jsonl)

    scheduler = SyncScheduler(GitClient(timeout=timeout), credential)
    board = TerminalDashboard(lambda: scheduler.table) if dashboard else None

    if not jsonl:
        click.echo(
            f"🔀 Mirroring {len(registry)} project(s) "
            f"({'parallel' if use_parallel else 'sequential'})"
        )

    with _stop_on_signals(scheduler):
        if board:
            board.start()
        try:
            scheduler.run_forever(
                registry,
                use_parallel,
                interval=interval or 0,
                table_factory=make_table,
                on_result=on_result,
                max_runs=None if interval else 1,
            )
        finally:
            if board:
                board.stop()

    last = results[-1] if results else None
    if board and last is not None:
        _print_summary(last, jsonl)
    if last is not None and (last.has_errors or not last.completed):
        raise SystemExit(EXIT_PROJECT_ERRORS)


@click.command("projects")
@config_file_option
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def projects(ctx: click.Context, config_file: str, as_json: bool) -> None:
    """List the configured mirror targets."""
    from dataclasses import asdict

    from ..config.loader import load_config
    from ..errors import ConfigError
    from ..mirror.registry import build_registry

    try:
        registry = build_registry(load_config(ctx.obj["root"] / config_file))
    except ConfigError as e:
        _fatal(f"ConfigError: {e}")

    if as_json:
        click.echo(json.dumps([asdict(d) for d in registry], indent=2))
        return

    click.echo(f"\n📦 {len(registry)} project(s)\n")
    for d in registry:
        click.secho(f"  {d.id}", bold=True)
        click.echo(f"    origin:    {d.origin_url}")
        click.echo(f"    target:    {d.target_url}")
        click.echo(f"    workspace: {d.workspace_path}")
    click.echo()


@click.command("status")
@click.option("--report-file", default=DEFAULT_REPORT_FILE, show_default=True)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def status(ctx: click.Context, report_file: str, as_json: bool) -> None:
    """Show the result of the last run."""
    from ..persistence.report import load_report

    result = load_report(ctx.obj["root"] / report_file)

    if result is None:
        if as_json:
            click.echo(json.dumps({"run": None}))
        else:
            click.echo("No run recorded yet. Run: mirror-sync sync")
        return

    if as_json:
        click.echo(json.dumps(result.model_dump(), indent=2))
        return

    click.echo(f"\n🔀 Last run {result.run_id}")
    click.echo(f"  Started:  {result.started_at}")
    click.echo(f"  Ended:    {result.ended_at}")
    click.echo(f"  Mode:     {'parallel' if result.parallel else 'sequential'}")
    _print_summary(result, jsonl=False)
