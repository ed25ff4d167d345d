"""Inspect and teach procedures."""
from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from browsegate.memory.procedural import (
    ProcedureRecord,
    build_update_summary,
    compute_correction_patch,
    load_procedure,
    patch_is_meaningful,
    upsert_procedure_from_correction,
)
from browsegate.memory.store import SqlMemoryStore
from browsegate.workflow.config import get_settings
from browsegate.workflow.trace import ExecutionTrace

console = Console()

_SCOPES = click.Choice(["user", "project", "global"])


def _load_trace(path: Path) -> ExecutionTrace:
    return ExecutionTrace.from_dict(json.loads(path.read_text(encoding="utf-8")))


@click.group(name="procedure")
def procedure_command():
    """
    Manage learned procedures.
    """
    pass


@procedure_command.command(name="show")
@click.argument("user_id")
@click.argument("task_key")
@click.option("--scope", type=_SCOPES, default="user", show_default=True)
def show_procedure(user_id: str, task_key: str, scope: str):
    """Show the stored procedure for USER_ID and TASK_KEY."""
    store = SqlMemoryStore.from_settings(get_settings())
    record = asyncio.run(load_procedure(store, user_id, task_key, scope))
    if record is None:
        console.print(f"[yellow]No procedure stored for '{task_key}'[/yellow]")
        sys.exit(1)
    _display_record(record)


@procedure_command.command(name="learn")
@click.argument("corrected_trace", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--agent-trace", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Original trace; when given, only meaningful corrections are learned")
@click.option("--scope", type=_SCOPES, default="user", show_default=True)
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt")
def learn_procedure(corrected_trace: Path, agent_trace: Optional[Path], scope: str, yes: bool):
    """
    Learn a new procedure version from CORRECTED_TRACE (an execution trace JSON file).
    """
    corrected = _load_trace(corrected_trace)

    if agent_trace is not None:
        patch = compute_correction_patch(_load_trace(agent_trace), corrected)
        if not patch_is_meaningful(patch):
            console.print("[dim]No changes between the traces; nothing to learn.[/dim]")
            return
        console.print(build_update_summary(patch))
        if not yes and not Confirm.ask("Save these corrections as a new procedure version?"):
            return

    store = SqlMemoryStore.from_settings(get_settings())
    record = asyncio.run(upsert_procedure_from_correction(store, corrected, scope))
    console.print(f"[green]✓[/green] Saved '{record.task_key}' at version {record.active_version}")


def _display_record(record: ProcedureRecord) -> None:
    console.print(
        f"[bold cyan]{record.task_key}[/bold cyan] "
        f"(user [yellow]{record.user_id}[/yellow], scope {record.scope}, active v{record.active_version})"
    )
    versions = Table(title="Versions", border_style="blue")
    versions.add_column("Version")
    versions.add_column("Source", style="cyan")
    versions.add_column("Created by")
    versions.add_column("Created at", style="dim")
    versions.add_column("Steps", justify="right")
    for version in record.versions:
        versions.add_row(str(version.version), version.source, version.created_by, version.created_at, str(len(version.steps)))
    console.print(versions)

    steps = Table(title=f"Steps (v{record.active_version})", border_style="magenta")
    steps.add_column("Step", style="cyan")
    steps.add_column("Tool", style="yellow")
    steps.add_column("Inputs")
    for step in record.active.steps:
        steps.add_row(step.step_id, step.tool, json.dumps(step.inputs_template))
    console.print(steps)
