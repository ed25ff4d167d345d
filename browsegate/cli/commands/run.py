"""Run and compile automation scripts."""
from __future__ import annotations

import asyncio
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional, Sequence

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from browsegate.remote.automation import RunTaskOptions
from browsegate.remote.models import CreateTaskRequest
from browsegate.script import InvalidScript, command_label, compile_structured, compile_text, to_operations
from browsegate.workflow.config import get_settings
from browsegate.workflow.results import NormalizedResult

console = Console()


def _read_script(path: Path) -> tuple[Optional[list], Optional[str]]:
    """Return ``(dsl_json, dsl_text)`` for a script file; ``.json`` files are structured."""

    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        return json.loads(text), None
    return None, text


@click.command(name="compile")
@click.argument("script", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def compile_command(script: Path):
    """
    Validate SCRIPT and print the backend operations it compiles to.

    Files ending in .json hold a structured command list; anything else is
    read as a line-oriented text script.
    """
    dsl_json, dsl_text = _read_script(script)
    try:
        commands = compile_structured(dsl_json) if dsl_json is not None else compile_text(dsl_text or "")
    except InvalidScript as exc:
        console.print(f"[red]✗[/red] {exc}")
        sys.exit(1)

    table = Table(title=f"{len(commands)} command(s)", border_style="blue")
    table.add_column("#", width=3)
    table.add_column("Command", style="cyan")
    for index, command in enumerate(commands, start=1):
        table.add_row(str(index), command_label(command))
    console.print(table)
    console.print_json(json.dumps(to_operations(commands)))


@click.command(name="run")
@click.option("--task-type", default="browser_automation", show_default=True, help="Task type sent to the backend")
@click.option("--instructions", help="Freeform instructions (remote only when no script is given)")
@click.option("--script", "script_path", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Script file (.json or text)")
@click.option("--target", "targets", multiple=True, help="Target URL; repeatable")
@click.option("--mode", type=click.Choice(["auto", "simple", "complex"]), default="auto", show_default=True)
@click.option("--backend", type=click.Choice(["auto", "local", "remote"]), default="auto", show_default=True,
              help="Override BROWSEGATE_USE_REMOTE for this run")
@click.option("--stream", is_flag=True, help="Follow remote tasks through the event stream instead of polling")
@click.option("--timeout", type=float, default=None, help="Remote workflow timeout in seconds")
@click.option("--user-id", default=None, help="User id recorded in traces and activity logs")
@click.option("--log-activity", is_flag=True, help="Record a task_activity item in the memory database")
@click.option("--json", "as_json", is_flag=True, help="Print the normalized result as JSON")
def run_command(
    task_type: str,
    instructions: Optional[str],
    script_path: Optional[Path],
    targets: Sequence[str],
    mode: str,
    backend: str,
    stream: bool,
    timeout: Optional[float],
    user_id: Optional[str],
    log_activity: bool,
    as_json: bool,
):
    """
    Run a task through the orchestrator.

    Examples:

      browsegate run --script login.txt

      browsegate run --instructions "Collect pricing pages" --target https://example.com --backend remote
    """
    dsl_json, dsl_text = _read_script(script_path) if script_path else (None, None)
    if dsl_json is None and dsl_text is None and not instructions:
        raise click.UsageError("Provide --script or --instructions")

    request = CreateTaskRequest(
        task_type=task_type,
        instructions=instructions,
        targets=list(targets) or None,
        execution_mode=mode,
        dsl_json=dsl_json,
        dsl_text=dsl_text,
        metadata={"userId": user_id} if user_id else None,
    )
    options = RunTaskOptions(use_streaming=stream, workflow_timeout=timeout)
    result = asyncio.run(_run(request, options, backend, log_activity))

    if as_json:
        console.print_json(json.dumps(result.to_dict(), default=_json_default))
    else:
        _display_result(result)
    if not result.succeeded:
        sys.exit(1)


async def _run(request: CreateTaskRequest, options: RunTaskOptions, backend: str, log_activity: bool) -> NormalizedResult:
    from browsegate.memory.store import SqlMemoryStore
    from browsegate.workflow.orchestrator import Orchestrator

    settings = get_settings()
    if backend != "auto":
        settings = replace(settings, use_remote=backend == "remote")

    memory_store = SqlMemoryStore.from_settings(settings) if log_activity else None
    orchestrator = Orchestrator.from_settings(settings, memory_store=memory_store)
    try:
        with console.status("[bold blue]Running task..."):
            return await orchestrator.run(request, options)
    finally:
        await orchestrator.close()


def _display_result(result: NormalizedResult) -> None:
    style = "green" if result.succeeded else "red"
    console.print(Panel(f"[bold {style}]{result.status.value}[/bold {style}]", title="Result", border_style=style))

    table = Table(show_header=False, border_style="blue")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="yellow")
    table.add_row("Backend", str(result.debug.backend or "-"))
    table.add_row("Attempts", str(result.debug.attempts))
    if result.debug.fallback_from:
        table.add_row("Fell back from", result.debug.fallback_from)
    if result.error:
        table.add_row("Error", f"{result.error.code}: {result.error.message}")
    console.print(table)

    if result.output:
        console.print_json(json.dumps(result.output, default=_json_default))


def _json_default(value: Any) -> str:
    return str(value)
