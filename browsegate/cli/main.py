#!/usr/bin/env python3
"""Main CLI entry point for browsegate."""
from __future__ import annotations

import logging
import sys
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler

from browsegate import __version__

from .commands import procedure, run, serve, workflow

console = Console()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )


@click.group()
@click.option("--log-level", default=None, help="Logging level (defaults to LOG_LEVEL or INFO)")
@click.version_option(version=__version__, prog_name="browsegate")
def cli(log_level: Optional[str]):
    """
    browsegate - run browser automation scripts locally or on a remote task service.
    """
    from browsegate.workflow.config import get_settings

    configure_logging(log_level or get_settings().log_level)


cli.add_command(run.run_command)
cli.add_command(run.compile_command)
cli.add_command(serve.serve_command)
cli.add_command(serve.init_db_command)
cli.add_command(procedure.procedure_command)
cli.add_command(workflow.workflow_command)


def main():
    """Entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
