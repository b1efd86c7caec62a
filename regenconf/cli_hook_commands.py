"""Single-hook CLI protocol: ``regenconf hook <hook> pre|post <force> <dry_run> ...``."""
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console

from regenconf.core.errors import RegenError, UnknownPhaseError
from regenconf.core.hooks import HookContext
from regenconf.core.staging import StagingView

# Module-level console instance (will be set by register function)
console: Console = Console()

PHASES = ("pre", "post")
EXIT_USAGE = 1
EXIT_HOOK_FAILED = 3


def hook(
    hook_id: str = typer.Argument(..., help="Registered hook id"),
    phase: str = typer.Argument(..., help="pre or post"),
    force: str = typer.Argument(..., help="Force flag (0/1)"),
    dry_run: str = typer.Argument(..., help="Dry-run flag (0/1)"),
    args: Optional[List[str]] = typer.Argument(None, help="pre: staging path; post: changed files"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Run one phase of one hook, as an external orchestrator would."""
    from regenconf.cli_support import (
        handle_cli_error,
        load_runtime,
        parse_flag,
        print_success,
        print_warning,
    )

    if phase not in PHASES:
        handle_cli_error(UnknownPhaseError(phase), console, exit_code=EXIT_USAGE)

    try:
        force_flag = parse_flag(force)
        dry_run_flag = parse_flag(dry_run)
    except ValueError as e:
        handle_cli_error(e, console, exit_code=EXIT_USAGE)

    try:
        runtime = load_runtime()
    except RegenError as e:
        handle_cli_error(e, console, verbose)

    registration = runtime.registry.get(hook_id)
    if registration is None:
        handle_cli_error(
            RegenError(f"Unknown hook '{hook_id}'. Known hooks: {', '.join(runtime.registry.ids())}"),
            console,
            exit_code=EXIT_USAGE,
        )

    context = HookContext(
        force=force_flag,
        dry_run=dry_run_flag,
        live_root=runtime.live_root,
        host=runtime.host,
        mock=runtime.config.mock,
    )
    args = list(args or [])

    if phase == "pre":
        if len(args) != 1:
            handle_cli_error(
                RegenError("pre expects exactly one argument: the staging path"),
                console,
                exit_code=EXIT_USAGE,
            )
        view = StagingView(hook_id, Path(args[0]))
        try:
            view.root.mkdir(parents=True, exist_ok=True)
            registration.hook.pre_regen(view, context)
            staged = view.files()
        except Exception as e:
            handle_cli_error(e, console, verbose, exit_code=EXIT_HOOK_FAILED)
        print_success(console, f"{hook_id}: staged {len(staged)} file(s) in {view.root}")
        return

    changed_files = [path for arg in args for path in arg.split()]
    if dry_run_flag:
        print_warning(console, f"DRY RUN - {hook_id}.post_regen skipped for {len(changed_files)} file(s)")
        return

    try:
        registration.hook.post_regen(changed_files, context)
    except Exception as e:
        handle_cli_error(e, console, verbose, exit_code=EXIT_HOOK_FAILED)
    print_success(console, f"{hook_id}: post_regen done for {len(changed_files)} file(s)")


def register_hook_commands(app: typer.Typer, shared_console: Console):
    """Register the single-hook protocol command with the main Typer app."""
    global console
    console = shared_console

    app.command()(hook)
