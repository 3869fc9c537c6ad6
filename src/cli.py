#!/usr/bin/env python3
"""Command Line Interface for the listing renewal SMS engine.

Usage:
    cd src
    python cli.py server                          # Start API server
    python cli.py scheduler                       # Run the periodic sweep
    python cli.py sweep                           # Time out expired conversations once
    python cli.py init-db                         # Create missing tables
    python cli.py simulate +17185550100 "YES"     # Feed one inbound SMS through the engine
    python cli.py info                            # Show configuration
"""
from __future__ import annotations

import json
import uuid
from typing import Optional

import typer
import uvicorn

from core.config import get_settings
from core.logging_config import get_logger, setup_logging

LOGGER = get_logger(__name__)
SETTINGS = get_settings()

app = typer.Typer(help="Listing Renewal SMS Engine CLI")


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
) -> None:
    """Listing Renewal SMS Engine - inbound reply processing for listing renewals."""
    log_level = "DEBUG" if verbose else SETTINGS.log_level
    setup_logging(level=log_level, json_format=SETTINGS.log_format == "json")


# =============================================================================
# Service Commands
# =============================================================================


@app.command("server")
def run_server(
    host: str = typer.Option("0.0.0.0", help="Host to bind to"),
    port: int = typer.Option(8000, help="Port to bind to"),
    reload: bool = typer.Option(False, help="Enable auto-reload for development"),
) -> None:
    """Start the API server."""
    typer.echo(f"Starting API server on {host}:{port}...")
    uvicorn.run("api.app:app", host=host, port=port, reload=reload)


@app.command("scheduler")
def run_scheduler_cmd() -> None:
    """Start the background scheduler."""
    from scheduler.runner import run_scheduler_blocking

    typer.echo("Starting scheduler...")
    run_scheduler_blocking()


# =============================================================================
# Maintenance Commands
# =============================================================================


@app.command("sweep")
def sweep() -> None:
    """Time out expired conversations now."""
    from scheduler.jobs import run_sweep_job

    typer.echo("Running expired conversation sweep...")
    result = run_sweep_job()
    if not result["success"]:
        typer.secho(f"✗ Sweep failed: {result['error']}", fg="red")
        raise typer.Exit(1)

    summary = result["result"]
    typer.secho(f"✓ Timed out {summary['updated_count']} conversations", fg="green")
    typer.echo(f"  Auto-deactivated listings: {summary['auto_deactivated_count']}")


@app.command("init-db")
def init_database(
    all_tables: bool = typer.Option(False, "--all", help="Create all tables, not only missing ones"),
) -> None:
    """Create the database tables."""
    from core.db import init_db

    typer.echo("Initializing database...")
    result = init_db(create_missing_only=not all_tables)
    if result["status"] == "error":
        typer.secho(f"✗ Initialization failed: {result.get('error')}", fg="red")
        raise typer.Exit(1)
    typer.secho(f"✓ Tables created: {', '.join(result['tables_created']) or 'none'}", fg="green")


@app.command("simulate")
def simulate(
    phone: str = typer.Argument(..., help="Sender phone number"),
    body: str = typer.Argument(..., help="Message text"),
    message_sid: Optional[str] = typer.Option(None, help="Transport message id (random if omitted)"),
) -> None:
    """Process one inbound SMS as if it arrived through the webhook."""
    from services.engine import get_engine

    if not SETTINGS.dry_run:
        typer.secho("Warning: DRY_RUN is off, replies will be sent for real", fg="yellow")

    sid = message_sid or f"SIM{uuid.uuid4().hex[:29]}"
    result = get_engine().handle_inbound(phone, body, sid)
    typer.echo(json.dumps(result.as_dict(), indent=2))


@app.command("info")
def show_info() -> None:
    """Show application configuration info."""
    typer.echo("Listing Renewal SMS Engine Configuration:")
    typer.echo(f"  Environment: {SETTINGS.environment}")
    typer.echo(f"  Dry Run: {SETTINGS.dry_run}")
    typer.echo(f"  Log Level: {SETTINGS.log_level}")
    typer.echo(f"  Platform: {SETTINGS.platform_name}")
    typer.echo(f"  Renewal Window: {SETTINGS.renewal_window_days} days")
    typer.echo(f"  Conversation Timeout: {SETTINGS.conversation_timeout_hours}h")
    typer.echo(f"  Disambiguation Timeout: {SETTINGS.disambiguation_timeout_hours}h")
    typer.echo(f"  Fallback Cooldown: {SETTINGS.fallback_cooldown_hours}h")
    typer.echo(f"  Phone Lock Backend: {SETTINGS.phone_lock_backend}")
    typer.echo(f"  Twilio Configured: {SETTINGS.is_twilio_enabled()}")
    typer.echo(f"  Enabled Services: {', '.join(SETTINGS.get_enabled_services()) or 'none'}")


if __name__ == "__main__":
    app()
