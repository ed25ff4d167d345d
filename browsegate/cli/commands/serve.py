"""Service and database commands."""
from __future__ import annotations

import sys
from typing import Optional

import click
from rich.console import Console

from browsegate.workflow.config import get_settings

console = Console()


@click.command(name="serve")
@click.option("--host", default=None, help="Host to bind the server to (defaults to API_SERVER_HOST)")
@click.option("--port", type=int, default=None, help="Port to bind the server to (defaults to API_SERVER_PORT)")
def serve_command(host: Optional[str], port: Optional[int]):
    """Start the task-queue API server."""
    from browsegate.service.app import run_server

    settings = get_settings()
    console.print(f"Starting task service on {host or settings.api_server_host}:{port or settings.api_server_port}")
    run_server(settings, host=host, port=port)


@click.command(name="init-db")
def init_db_command():
    """Initialize the memory database."""
    from browsegate.workflow.db import init_db

    console.print("Initializing database...")
    try:
        init_db(get_settings())
    except Exception as exc:
        console.print(f"[red]✗[/red] Database initialization failed: {exc}")
        sys.exit(1)
    console.print("[green]✓[/green] Database initialized successfully")
