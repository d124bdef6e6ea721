"""Typer-powered command line interface for ``instancectl``.

The CLI is a thin dispatcher: each command resolves the runtime (configuration
plus the structured operation logger), delegates to :mod:`instancectl.instances`
and reports the outcome on the terminal. Usage problems exit with
:attr:`ExitCode.USAGE`; filesystem failures abort immediately with
:attr:`ExitCode.FILESYSTEM` and leave any partial state for inspection.
"""
from __future__ import annotations

import json
import textwrap
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import click
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from typer.core import TyperGroup

from . import __version__
from .config import AppConfig, ConfigError, load_config
from .exit_codes import ExitCode
from .filesystem import DirectoryPlan, InstanceDirectoryManager
from .instances import (
    create_instance,
    is_affirmative,
    iter_instances,
    plan_instance,
    remove_instance,
)
from .layout import DirectoryKind, resolve_directory, validate_instance_name
from .logging import OperationScope, StructuredLogger
from .manual import render_manual

console = Console(soft_wrap=True)
err_console = Console(stderr=True, soft_wrap=True)

PROG_NAME = "instancectl"
USAGE = f"Usage: {PROG_NAME} {{list|create|remove|help}} [INSTANCE]"
CONFIG_FILE_META_KEY = "instancectl.config_file"

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to instancectl's YAML config file.",
)

INSTANCE_ARGUMENT = typer.Argument(
    None,
    metavar="INSTANCE",
    show_default=False,
    help="Name of the instance.",
)


class DispatcherGroup(TyperGroup):
    """Typer group that reports unknown commands as usage errors."""

    def resolve_command(
        self,
        ctx: click.Context,
        args: list[str],
    ) -> tuple[str | None, click.Command | None, list[str]]:
        cmd_name = args[0] if args else ""
        if ctx.token_normalize_func is not None:
            cmd_name = ctx.token_normalize_func(cmd_name)
        if (
            cmd_name
            and not cmd_name.startswith("-")
            and not ctx.resilient_parsing
            and self.get_command(ctx, cmd_name) is None
        ):
            err_console.print(escape(USAGE))
            err_console.print(f"Error: No such command '{escape(cmd_name)}'.")
            raise typer.Exit(code=ExitCode.USAGE)
        return super().resolve_command(ctx, args)


app = typer.Typer(
    cls=DispatcherGroup,
    add_completion=False,
    help=textwrap.dedent(
        """
        Manage per-instance directory scaffolding for a multi-instance web
        application deployment.

        Run 'instancectl help' for the full manual.
        """
    ).strip(),
)
config_app = typer.Typer(help="Inspect the effective configuration.")
app.add_typer(config_app, name="config")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    logger: StructuredLogger


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        err_console.print(f"[red]Configuration error:[/red] {escape(str(exc))}")
        raise typer.Exit(code=ExitCode.CONFIG) from exc

    runtime = RuntimeContext(config=config, logger=StructuredLogger(config.logs_dir))
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, ctx.meta.get(CONFIG_FILE_META_KEY))


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the instancectl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        console.print(f"{PROG_NAME} {__version__}")
        raise typer.Exit(code=ExitCode.OK)

    if ctx.invoked_subcommand is None:
        err_console.print(escape(USAGE))
        raise typer.Exit(code=ExitCode.USAGE)

    ctx.meta[CONFIG_FILE_META_KEY] = config_file


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    err_console.print(f"[red]{escape(message)}[/red]")
    op.error(message, errors=list(errors or [message]), rc=rc)
    raise typer.Exit(code=rc)


def _require_instance_name(name: str | None, command: str) -> str:
    try:
        return validate_instance_name(name)
    except ValueError:
        err_console.print(f"Usage: {PROG_NAME} {command} INSTANCE")
        raise typer.Exit(code=ExitCode.USAGE) from None


def _prompt_confirmation(prompt: str) -> bool:
    """Ask the operator on the terminal; end of input counts as a refusal."""
    try:
        answer = typer.prompt(prompt, default="", show_default=False)
    except typer.Abort:
        console.print()
        return False
    return is_affirmative(answer)


def _auto_confirm(prompt: str) -> bool:
    return True


def _relocated_directories(config: AppConfig, name: str) -> list[Path]:
    """Return FHS locations of *name* that exist on disk."""
    if not config.follow_fhs:
        return []
    retained: list[Path] = []
    for kind in DirectoryKind:
        directory = resolve_directory(
            config.instances_root,
            name,
            kind,
            follow_fhs=True,
            app_name=config.app_name,
            fhs_prefix=config.fhs_prefix,
        )
        if directory.physical.exists():
            retained.append(directory.physical)
    return retained


def _describe_plan(plan: DirectoryPlan) -> str:
    directory = plan.directory
    label = f"{directory.kind.value:<7}"
    if directory.relocated:
        return f"{label}{directory.logical} -> {directory.physical}"
    return f"{label}{directory.logical}"


def _record_plans(op: OperationScope, plans: Sequence[DirectoryPlan], *, applied: bool) -> None:
    status = "success" if applied else "skipped"
    for plan in plans:
        kind = plan.directory.kind.value
        for action in plan.actions:
            op.add_step(f"{kind}.{action.kind}", status=status, detail=action.describe())
        for warning in plan.warnings:
            op.add_step(f"{kind}.inspect", status="warning", detail=warning)


@app.command("list")
def list_instances(ctx: typer.Context) -> None:
    """List instance names, one per line."""
    runtime = _get_runtime(ctx)
    root = runtime.config.instances_root
    with runtime.logger.operation(
        "list",
        target={"kind": "instances", "root": str(root)},
    ) as op:
        count = 0
        try:
            for name in iter_instances(root):
                typer.echo(name)
                count += 1
        except OSError as exc:
            _command_error(op, f"Failed to list {root}: {exc}", rc=ExitCode.FILESYSTEM)
        op.success("Listed instances.", changed=0, context={"count": count})


@app.command()
def create(
    ctx: typer.Context,
    name: str | None = INSTANCE_ARGUMENT,
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Report the actions that would be taken without applying changes.",
    ),
) -> None:
    """Create or repair the directories of an instance."""
    instance = _require_instance_name(name, "create")
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "create",
        args={"name": instance, "dry_run": dry_run},
        target={"kind": "instance", "name": instance},
    ) as op:
        try:
            manager = InstanceDirectoryManager.from_config(runtime.config)
        except ConfigError as exc:
            _command_error(op, str(exc), rc=ExitCode.CONFIG)

        if dry_run:
            plans = plan_instance(manager, instance)
            _record_plans(op, plans, applied=False)
            console.print(f"[yellow]Dry run[/yellow]: instance '{escape(instance)}'")
            for plan in plans:
                for action in plan.actions:
                    console.print(f"  {escape(action.describe())}", highlight=False)
                for warning in plan.warnings:
                    console.print(f"  [yellow]warning:[/yellow] {escape(warning)}")
            op.success("Create dry-run complete.", changed=0)
            return

        try:
            plans = create_instance(manager, instance)
        except OSError as exc:
            _command_error(
                op,
                f"Failed to create instance '{instance}': {exc}",
                rc=ExitCode.FILESYSTEM,
            )

        _record_plans(op, plans, applied=True)
        warnings = [warning for plan in plans for warning in plan.warnings]
        for warning in warnings:
            err_console.print(f"[yellow]warning:[/yellow] {escape(warning)}")
        console.print(
            f"[green]Instance '{escape(instance)}' is ready[/green] "
            f"(owner {escape(str(manager.ownership))})."
        )
        for plan in plans:
            console.print(f"  {escape(_describe_plan(plan))}", highlight=False)
        op.success(
            "Instance created.",
            changed=sum(plan.changed for plan in plans),
            warnings=warnings,
        )


@app.command()
def remove(
    ctx: typer.Context,
    name: str | None = INSTANCE_ARGUMENT,
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Remove without asking for confirmation.",
    ),
) -> None:
    """Delete an instance directory after confirmation."""
    instance = _require_instance_name(name, "remove")
    runtime = _get_runtime(ctx)
    config = runtime.config
    with runtime.logger.operation(
        "remove",
        args={"name": instance, "yes": yes},
        target={"kind": "instance", "name": instance},
    ) as op:
        confirm = _auto_confirm if yes else _prompt_confirmation
        try:
            result = remove_instance(config.instances_root, instance, confirm)
        except OSError as exc:
            _command_error(
                op,
                f"Failed to remove instance '{instance}': {exc}",
                rc=ExitCode.FILESYSTEM,
            )

        if result.missing:
            console.print(
                f"[yellow]Instance '{escape(instance)}' does not exist under "
                f"{escape(str(config.instances_root))}.[/yellow]"
            )
            op.warning("Instance not found.", warnings=[str(result.root)])
            return
        if result.declined:
            console.print("Aborted.")
            op.add_step("confirm", status="skipped", detail="user-declined")
            op.success("Removal aborted by operator.", changed=0)
            return

        op.add_step("filesystem.remove", status="success", detail=str(result.root))
        console.print(f"[yellow]Removed {escape(str(result.root))}.[/yellow]")
        retained = _relocated_directories(config, instance)
        for path in retained:
            console.print(f"  left in place: {escape(str(path))}", highlight=False)
        console.print(
            "Databases and directories outside the instance tree were not touched; "
            "remove them manually if no longer needed."
        )
        op.success(
            "Instance removed.",
            changed=1,
            context={"retained": [str(path) for path in retained]},
        )


@app.command("help")
def help_command(ctx: typer.Context) -> None:
    """Show the instancectl manual."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation("help", target={"kind": "meta", "scope": "manual"}) as op:
        render_manual(console)
        op.success("Displayed manual.", changed=0)


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit configuration as JSON instead of a table.",
    ),
) -> None:
    """Display the effective configuration after merges."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict()

    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            typer.echo(json.dumps(data, indent=2, sort_keys=True))
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")
        for key, value in data.items():
            table.add_row(key, escape(str(value)))

        console.print(table)
        op.success("Rendered configuration table.", changed=0)


def main() -> None:
    """Console script entry point."""
    app(prog_name=PROG_NAME)
