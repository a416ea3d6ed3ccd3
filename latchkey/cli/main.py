"""CLI entry point.

Provides the main CLI application with commands for:
- serve: Run the API server
- show: Inspect a stored user record
"""

import asyncio
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from latchkey.logging_config import configure_logging
from latchkey.passkey.records import UserRecord
from latchkey.settings import get_settings
from latchkey.storage import build_record_store, close_db

app = typer.Typer(
    name="latchkey",
    help="Passkey registration and login challenge service",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


@app.command()
def serve(
    host: Annotated[
        str,
        typer.Option("--host", "-h", help="Host to bind to"),
    ] = "",
    port: Annotated[
        int,
        typer.Option("--port", "-p", help="Port to bind to"),
    ] = 0,
    reload: Annotated[
        bool,
        typer.Option("--reload", "-r", help="Enable auto-reload for development"),
    ] = False,
    workers: Annotated[
        int,
        typer.Option("--workers", "-w", help="Number of worker processes"),
    ] = 0,
) -> None:
    """Start the Latchkey API server.

    Defaults are loaded from settings (env vars / .env).
    """
    import uvicorn

    settings = get_settings()
    resolved_host = host or settings.api_host
    resolved_port = port or settings.api_port
    resolved_workers = workers or settings.api_workers

    if settings.store_backend == "memory" and resolved_workers > 1:
        console.print(
            "[yellow]Warning:[/yellow] the memory store is per process; "
            "workers will not see each other's challenges."
        )

    console.print(
        Panel(
            f"[bold green]Starting Latchkey API Server[/bold green]\n"
            f"Host: {resolved_host}\n"
            f"Port: {resolved_port}\n"
            f"Workers: {resolved_workers}\n"
            f"Store: {settings.store_backend}\n"
            f"RP ID: {settings.webauthn_rp_id}\n"
            f"Reload: {reload}",
            title="Latchkey",
            border_style="green",
        )
    )

    uvicorn.run(
        "latchkey.api.main:app",
        host=resolved_host,
        port=resolved_port,
        reload=reload,
        workers=resolved_workers if not reload else 1,
        log_level="info",
    )


@app.command()
def show(
    username: Annotated[str, typer.Argument(help="Username to look up")],
) -> None:
    """Print the stored record for a username."""
    settings = get_settings()
    configure_logging("WARNING")
    if settings.store_backend == "memory":
        console.print("[red]The memory store lives inside the server process; nothing to show.[/red]")
        raise typer.Exit(code=1)

    record = asyncio.run(_load_record(username))
    if record is None:
        console.print(f"[red]No record for {username!r}[/red]")
        raise typer.Exit(code=1)

    render_record(record)


async def _load_record(username: str) -> UserRecord | None:
    store = build_record_store(get_settings())
    try:
        return await store.load(username)
    finally:
        await close_db()


def render_record(record: UserRecord) -> None:
    """Render a user record as a rich panel and credential table."""
    console.print(
        Panel(
            f"Pending challenge: {'yes' if record.pending_challenge else 'no'}\n"
            f"Credentials: {len(record.credentials)}",
            title=record.username,
            border_style="blue",
        )
    )

    if not record.credentials:
        return

    table = Table(title="Credentials")
    table.add_column("Credential ID", style="cyan", no_wrap=True)
    table.add_column("Counter", justify="right")
    table.add_column("Device type")
    table.add_column("Transports")
    table.add_column("Created")
    table.add_column("Last used")
    for credential in record.credentials:
        table.add_row(
            credential.credential_id,
            str(credential.sign_count),
            credential.device_type or "-",
            ", ".join(credential.transports or []) or "-",
            credential.created_at.strftime("%Y-%m-%d %H:%M"),
            credential.last_used_at.strftime("%Y-%m-%d %H:%M") if credential.last_used_at else "-",
        )
    console.print(table)


if __name__ == "__main__":
    app()
