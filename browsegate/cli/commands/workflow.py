"""Run YAML workflows and record their execution traces."""
from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

import click
from rich.console import Console
from rich.table import Table

from browsegate.workflow.config import get_settings
from browsegate.workflow.engine import WorkflowDefinition, WorkflowError, run_workflow_with_trace
from browsegate.workflow.local_backend import BrowserToolInvoker, DriverFactory, playwright_driver_factory
from browsegate.workflow.trace import ExecutionTrace

console = Console()


def _parse_inputs(pairs: Sequence[str]) -> Dict[str, Any]:
    inputs: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="--input")
        inputs[key] = value
    return inputs


async def _execute(
    definition: WorkflowDefinition,
    inputs: Dict[str, Any],
    driver_factory: DriverFactory,
    *,
    user_id: str,
    task_key: str,
) -> Tuple[Dict[str, Any], ExecutionTrace]:
    driver = await driver_factory()
    try:
        return await run_workflow_with_trace(
            definition, inputs, BrowserToolInvoker(driver), user_id=user_id, task_key=task_key
        )
    finally:
        await driver.close()


@click.group(name="workflow")
def workflow_command():
    """
    Run YAML workflows on the local browser.
    """
    pass


@workflow_command.command(name="run")
@click.argument("workflow_id")
@click.option("--dir", "directory", type=click.Path(exists=True, file_okay=False, path_type=Path), default=".",
              show_default=True, help="Directory holding <id>.workflow.yaml files")
@click.option("--input", "input_pairs", multiple=True, help="Workflow input as KEY=VALUE; repeatable")
@click.option("--user-id", default="anonymous", show_default=True, help="User id recorded in the trace")
@click.option("--task-key", default=None, help="Task key recorded in the trace (defaults to WORKFLOW_ID)")
@click.option("--trace-out", type=click.Path(dir_okay=False, path_type=Path),
              help="Write the execution trace as JSON; feed it to 'procedure learn'")
def run_workflow_command(
    workflow_id: str,
    directory: Path,
    input_pairs: Sequence[str],
    user_id: str,
    task_key: Optional[str],
    trace_out: Optional[Path],
):
    """Run WORKFLOW_ID and print the steps it executed."""
    inputs = _parse_inputs(input_pairs)
    try:
        definition = WorkflowDefinition.load(workflow_id, directory)
    except WorkflowError as exc:
        console.print(f"[red]✗[/red] {exc}")
        sys.exit(1)

    driver_factory = playwright_driver_factory(get_settings())
    _, trace = asyncio.run(
        _execute(definition, inputs, driver_factory, user_id=user_id, task_key=task_key or workflow_id)
    )

    table = Table(title=f"Workflow {definition.id}", border_style="blue")
    table.add_column("Step", style="cyan")
    table.add_column("Tool", style="yellow")
    table.add_column("Outputs")
    for step in trace.steps:
        table.add_row(step.step_id, step.tool or "-", json.dumps(step.outputs, default=str))
    console.print(table)

    if trace_out is not None:
        trace_out.write_text(json.dumps(trace.to_dict(), indent=2, default=str), encoding="utf-8")
        console.print(f"[green]✓[/green] Trace written to {trace_out}")
