"""Regeneration CLI commands - regen, hooks, owned."""
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from regenconf.core.diff_engine import ChangeStatus
from regenconf.core.errors import RegenError
from regenconf.core.orchestrator import (
    CycleState,
    OutcomeStatus,
    RegenOrchestrator,
    RegenReport,
    RegenRequest,
)
from regenconf.core.resource_guard import FileLock, acquire

# Module-level console instance (will be set by register function)
console: Console = Console()

STATUS_LABELS = {
    ChangeStatus.ADDED: "[green]added[/green]",
    ChangeStatus.MODIFIED: "[yellow]modified[/yellow]",
    ChangeStatus.REMOVED: "[red]removed[/red]",
}

OUTCOME_LABELS = {
    OutcomeStatus.SUCCESS: "[green]success[/green]",
    OutcomeStatus.NOOP: "[dim]no-op[/dim]",
    OutcomeStatus.PENDING: "[cyan]pending[/cyan]",
    OutcomeStatus.FAILED: "[red]failed[/red]",
}


def _render_report(report: RegenReport) -> None:
    """Print the cycle report using Rich tables."""
    from regenconf.cli_support import print_error, print_success, print_warning

    if report.state == CycleState.FAILED:
        print_error(console, f"Regeneration failed: {report.error}")
        return

    changed = report.changed_records()
    if changed:
        title = "Pending Changes" if report.request.dry_run else "Changes"
        table = Table(title=title, show_header=True, header_style="bold")
        table.add_column("Status")
        table.add_column("Path", style="cyan")
        table.add_column("Hook")
        for record in changed:
            table.add_row(STATUS_LABELS[record.status], record.path, record.hook_id)
        console.print(table)
    else:
        print_success(console, "No changes - configuration is up to date")

    for path, text in report.diffs.items():
        if text:
            console.print(f"\n[bold]{path}[/bold]")
            console.print(Syntax(text, "diff", theme="ansi_dark"))

    hooks_table = Table(title="Hooks", show_header=True, header_style="bold")
    hooks_table.add_column("Hook", style="cyan")
    hooks_table.add_column("Outcome")
    hooks_table.add_column("Files", justify="right")
    hooks_table.add_column("Details", overflow="fold")
    for hook_id, outcome in report.outcomes.items():
        details = "; ".join(str(error) for error in outcome.errors)
        hooks_table.add_row(
            hook_id,
            OUTCOME_LABELS[outcome.status],
            str(len(outcome.changed_files)),
            details,
        )
    console.print(hooks_table)

    if report.manifest_saved is False:
        print_error(console, "Ownership manifest could not be saved")
    if report.request.dry_run:
        print_warning(console, "DRY RUN - no live file was modified")


def regen(
    names: Optional[List[str]] = typer.Argument(None, help="Hooks to run (default: all registered hooks)"),
    force: bool = typer.Option(False, "--force", "-f", help="Ignore escape hatches and run post hooks even without changes"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Report what would change without touching live files"),
    with_diff: bool = typer.Option(False, "--with-diff", help="Show a unified diff for every changed file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="Path to log file"),
):
    """Regenerate configuration files from every (or the named) hook."""
    from regenconf.cli_support import handle_cli_error, load_runtime, setup_file_logging

    setup_file_logging(log_file=log_file, verbose=verbose)

    try:
        runtime = load_runtime()
    except RegenError as e:
        handle_cli_error(e, console, verbose)

    request = RegenRequest(
        targets=tuple(names or ()),
        force=force,
        dry_run=dry_run,
        with_diff=with_diff,
    )
    orchestrator = RegenOrchestrator(
        registry=runtime.registry,
        manifest=runtime.manifest,
        live_root=runtime.live_root,
        host=runtime.host,
        staging_parent=runtime.config.staging_parent,
        mock=runtime.config.mock,
        console=console,
    )

    try:
        with acquire(FileLock(Path(runtime.config.lock_file), "regenconf"),
                     max_attempts=runtime.config.lock_attempts):
            report = orchestrator.run(request)
    except RegenError as e:
        handle_cli_error(e, console, verbose)

    _render_report(report)
    if not report.ok:
        raise typer.Exit(1)


def hooks():
    """List registered hooks in execution order."""
    from regenconf.cli_support import handle_cli_error, load_runtime

    try:
        runtime = load_runtime()
    except RegenError as e:
        handle_cli_error(e, console)

    table = Table(title="Registered Hooks")
    table.add_column("#", justify="right")
    table.add_column("Hook", style="cyan")
    table.add_column("Description")
    table.add_column("Declared files", style="green")
    for index, registration in enumerate(runtime.registry, start=1):
        table.add_row(
            str(index),
            registration.hook_id,
            registration.description,
            "\n".join(registration.owns),
        )
    console.print(table)


def owned(
    name: Optional[str] = typer.Argument(None, help="Only show files owned by this hook"),
):
    """Show which live files each hook has applied."""
    from regenconf.cli_support import handle_cli_error, load_runtime, print_warning

    try:
        runtime = load_runtime()
    except RegenError as e:
        handle_cli_error(e, console)

    mapping = runtime.manifest.as_mapping()
    if name:
        mapping = {name: mapping.get(name, [])}

    if not any(mapping.values()):
        print_warning(console, "No owned files recorded")
        return

    table = Table(title="Ownership Manifest")
    table.add_column("Hook", style="cyan")
    table.add_column("Path", style="green")
    for hook_id in sorted(mapping):
        for path in mapping[hook_id]:
            table.add_row(hook_id, path)
    console.print(table)


def register_regen_commands(app: typer.Typer, shared_console: Console):
    """Register regeneration commands with the main Typer app.

    Args:
        app: Main Typer application
        shared_console: Shared Rich console instance
    """
    global console
    console = shared_console

    app.command()(regen)
    app.command()(hooks)
    app.command()(owned)
