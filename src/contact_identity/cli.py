"""CLI for Contact Identity.

Commands:
    init-db                          - Create tables
    identify --email E --phone P     - Reconcile one submission
    show-contact <id>                - Show the identity graph containing a contact
    reset-db                         - Drop and recreate all tables
    serve                            - Run the HTTP API
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Annotated, TypeVar

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from contact_identity.config import settings
from contact_identity.db import create_engine, drop_db, init_db
from contact_identity.errors import IdentityError
from contact_identity.resolution import ConsolidatedContact, IdentityResolver
from contact_identity.store import SqlContactStore

T = TypeVar("T")

app = typer.Typer(
    name="contact-identity",
    help="Contact Identity: reconcile email/phone submissions into identity graphs",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def configure(
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Log at DEBUG level")
    ] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(levelname)s: %(name)s: %(message)s",
    )


def run_async(coro):
    """Run an async coroutine in sync context."""
    return asyncio.run(coro)


async def with_store(work: Callable[[SqlContactStore], Awaitable[T]]) -> T:
    """Open a SQL store for the duration of one command."""
    engine = create_engine(settings)
    store = SqlContactStore(engine)
    try:
        await init_db(engine)
        return await work(store)
    finally:
        await store.close()


def print_consolidated(consolidated: ConsolidatedContact, *, title: str) -> None:
    panel_content = []
    panel_content.append(f"[bold]Primary Contact:[/bold] {consolidated.primary_contact_id}")
    panel_content.append(f"[bold]Emails:[/bold] {', '.join(consolidated.emails) or '-'}")
    panel_content.append(
        f"[bold]Phone Numbers:[/bold] {', '.join(consolidated.phone_numbers) or '-'}"
    )
    console.print(Panel("\n".join(panel_content), title=title))

    if consolidated.secondary_contact_ids:
        table = Table(title="Secondary Contacts")
        table.add_column("ID")
        for contact_id in consolidated.secondary_contact_ids:
            table.add_row(str(contact_id))
        console.print(table)


@app.command("init-db")
def init_db_command() -> None:
    """Create the contacts table if it does not exist."""

    async def _init():
        engine = create_engine(settings)
        try:
            await init_db(engine)
        finally:
            await engine.dispose()

    run_async(_init())
    console.print("[green]Database initialized.[/green]")


@app.command()
def identify(
    email: Annotated[str | None, typer.Option("--email", "-e", help="Email address")] = None,
    phone: Annotated[str | None, typer.Option("--phone", "-p", help="Phone number")] = None,
    as_json: Annotated[
        bool, typer.Option("--json", help="Print the wire-format JSON response")
    ] = False,
):
    """Reconcile one submission and print the consolidated identity."""
    try:
        consolidated = run_async(
            with_store(lambda store: IdentityResolver(store).identify(email, phone))
        )
    except IdentityError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1) from None

    if as_json:
        typer.echo(json.dumps(consolidated.to_dict()))
    else:
        print_consolidated(consolidated, title="Consolidated Contact")


@app.command("show-contact")
def show_contact(
    contact_id: Annotated[int, typer.Argument(help="Contact ID (primary or secondary)")],
):
    """Show the identity graph containing a contact."""
    try:
        consolidated = run_async(
            with_store(lambda store: IdentityResolver(store).show_graph(contact_id))
        )
    except IdentityError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1) from None

    if consolidated is None:
        console.print(f"[red]Error:[/red] Contact not found: {contact_id}")
        raise typer.Exit(1)

    print_consolidated(consolidated, title=f"Identity Graph of Contact {contact_id}")


@app.command("reset-db")
def reset_db(
    force: Annotated[bool, typer.Option("--force", "-f", help="Skip confirmation")] = False,
):
    """Drop and recreate all tables.

    WARNING: This destroys all data!
    """
    if not force:
        confirm = typer.confirm(
            "This will DELETE ALL CONTACTS. Are you sure?",
            default=False,
        )
        if not confirm:
            console.print("[yellow]Aborted.[/yellow]")
            raise typer.Exit(0)

    async def _reset():
        engine = create_engine(settings)
        try:
            await drop_db(engine)
            await init_db(engine)
        finally:
            await engine.dispose()

    run_async(_reset())
    console.print("[green]Database reset successfully.[/green]")


@app.command()
def serve(
    host: Annotated[str | None, typer.Option(help="Bind address")] = None,
    port: Annotated[int | None, typer.Option(help="Bind port")] = None,
):
    """Run the HTTP API under uvicorn."""
    import uvicorn

    uvicorn.run(
        "contact_identity.app:app",
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
