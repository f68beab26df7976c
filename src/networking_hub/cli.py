"""Command-line interface for Networking Hub.

Provides commands for configuration validation, database setup and the
server.

Usage:
    python -m networking_hub validate-config
    python -m networking_hub init-db
    python -m networking_hub serve --port 3000
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from networking_hub.config import validate_config_file
from networking_hub.core.logging import configure_logging

console = Console()


@click.group()
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
def cli(debug: bool) -> None:
    """Networking Hub - Gmail networking follow-ups."""
    log_level = "DEBUG" if debug else "INFO"
    # Use human-readable output for CLI, JSON for server
    configure_logging(log_level=log_level, json_output=False)


@cli.command("validate-config")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file (default: config/config.yaml)",
)
def validate_config(config_path: Path | None) -> None:
    """Validate the configuration file.

    Checks that config.yaml exists and passes Pydantic schema validation,
    with environment overrides applied. Reports specific errors for invalid
    fields.
    """
    if config_path:
        console.print(f"Validating config: [cyan]{config_path}[/cyan]")
    else:
        console.print("Validating config: [cyan]config/config.yaml[/cyan]")

    is_valid, message = validate_config_file(config_path)

    if is_valid:
        console.print(f"\n[green]✓[/green] {message}")
        sys.exit(0)
    else:
        console.print(f"\n[red]✗[/red] {message}")
        sys.exit(1)


@cli.command("init-db")
@click.option(
    "--path",
    "db_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Database file (default: database.path from config)",
)
def init_db(db_path: Path | None) -> None:
    """Create the database, or add missing tables and columns to an existing one."""
    from networking_hub.config import get_config_or_defaults
    from networking_hub.core.errors import ConfigLoadError, ConfigValidationError, DatabaseError
    from networking_hub.db.models import REQUIRED_TABLES, init_database, verify_schema

    if db_path is None:
        try:
            db_path = Path(get_config_or_defaults().database.path)
        except (ConfigLoadError, ConfigValidationError) as e:
            console.print(f"[red]Config error:[/red] {e}")
            sys.exit(1)

    console.print(f"Initializing database: [cyan]{db_path}[/cyan]")

    try:
        asyncio.run(init_database(db_path))
        ok = asyncio.run(verify_schema(db_path))
    except DatabaseError as e:
        console.print(f"\n[red]✗[/red] Database initialization failed: {e}")
        sys.exit(1)

    if not ok:
        console.print("\n[red]✗[/red] Schema verification failed")
        sys.exit(1)

    table = Table(title="Tables")
    table.add_column("Table", style="cyan")
    for name in REQUIRED_TABLES:
        table.add_row(name)
    console.print(table)
    console.print("\n[green]✓[/green] Database ready")


@cli.command("serve")
@click.option(
    "--host",
    default="127.0.0.1",
    help="Host to bind to (default: localhost only)",
)
@click.option(
    "--port",
    default=3000,
    type=int,
    help="Port to bind to",
)
def serve(host: str, port: int) -> None:
    """Start the API, webhook and live notification server."""
    import uvicorn

    from networking_hub.web.app import create_app

    if host == "0.0.0.0":  # noqa: S104
        console.print(
            "[yellow]Warning:[/yellow] Binding to 0.0.0.0 exposes the server to the network.\n"
            "Pub/Sub must reach the webhook, so put it behind HTTPS (WEBHOOK_BASE_URL)."
        )

    configure_logging(log_level="INFO", json_output=True)

    app = create_app()
    console.print(f"Starting server on [cyan]http://{host}:{port}[/cyan]")
    uvicorn.run(app, host=host, port=port, log_level="info")


def main() -> None:
    """Entry point for the CLI."""
    load_dotenv()
    cli()


if __name__ == "__main__":
    main()
