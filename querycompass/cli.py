"""
QueryCompass CLI

Command-line interface for QueryCompass.

Usage:
    querycompass serve                             # Run the API server
    querycompass ask "show all customers"          # Run one turn and print the result
    querycompass schema sales_db                   # Print a database's schema description
    querycompass databases                         # List configured target databases
"""

import asyncio
import logging
import sys
from typing import Any

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from querycompass.config import get_settings
from querycompass.constants import Role
from querycompass.database import DatabasePoolManager, SchemaProvider
from querycompass.models import ChatMessage, ChatRequest, CurrentUser
from querycompass.pipeline import create_pipeline

console = Console()


def configure_cli_logging() -> None:
    logging.disable(logging.CRITICAL)
    for logger_name in ("querycompass", "httpx", "openai", "asyncio", "google", "grpc"):
        logging.getLogger(logger_name).setLevel(logging.CRITICAL)


def sample_table(sample: list[dict[str, Any]], columns: list[str] | None = None) -> Table:
    """Render a result sample as a rich table."""
    columns = columns or (list(sample[0]) if sample else [])
    table = Table(show_header=True, header_style="bold cyan")
    for column in columns:
        table.add_column(column)
    for row in sample:
        table.add_row(*("" if row.get(column) is None else str(row.get(column)) for column in columns))
    return table


def print_message(message: ChatMessage) -> None:
    """Display a bot message: text, SQL and the result sample."""
    style = "red" if message.is_error else "green"
    console.print(Panel(Markdown(message.text or ""), title=f"[bold {style}]Answer[/bold {style}]"))

    if message.executed_sql:
        console.print(Panel(message.executed_sql, title="SQL", border_style="cyan", highlight=True))

    metadata = message.execution_metadata
    if metadata is None:
        return
    if message.is_modification:
        console.print(f"[cyan]{metadata.operation}: {metadata.row_count} row(s) affected[/cyan]")
        return
    if message.masked_sample:
        console.print(sample_table(message.masked_sample, metadata.columns))
    shown = len(message.masked_sample or [])
    console.print(f"[dim]{metadata.row_count} row(s), showing {shown}[/dim]")
    if message.vis_package is not None:
        console.print(f"[dim]Suggested visualization: {message.vis_package.type}[/dim]")


@click.group()
@click.version_option(version="0.1.0", prog_name="QueryCompass")
def cli():
    """QueryCompass - ask your database questions in plain language."""


@cli.command()
@click.option("--host", default=None, help="Bind address (defaults to API_HOST).")
@click.option("--port", default=None, type=int, help="Port (defaults to API_PORT).")
@click.option("--reload", is_flag=True, help="Reload on code changes.")
def serve(host: str | None, port: int | None, reload: bool):
    """Run the API server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "querycompass.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
    )


@cli.command()
@click.argument("query")
@click.option("--database", "database_id", default=None, help="Target database id.")
@click.option("--conversation", "conversation_id", default=None, help="Continue a conversation.")
@click.option("--user-id", default="cli", show_default=True, help="Acting user id.")
@click.option(
    "--role",
    type=click.Choice([role.value for role in Role]),
    default=Role.USER.value,
    show_default=True,
    help="Acting user role. Only admin may modify data.",
)
@click.option("--verbose", is_flag=True, help="Show progress and logs.")
def ask(
    query: str,
    database_id: str | None,
    conversation_id: str | None,
    user_id: str,
    role: str,
    verbose: bool,
):
    """Ask a single question and exit."""
    if not verbose:
        configure_cli_logging()

    async def run_query() -> None:
        settings = get_settings()
        pipeline = await create_pipeline()
        request = ChatRequest(
            prompt=query,
            database_id=database_id or settings.database.default_id,
            conversation_id=conversation_id,
        )
        user = CurrentUser(user_id=user_id, username=user_id, role=Role(role))

        async def show_step(event_type: str, event_data: dict[str, Any]) -> None:
            if verbose:
                console.print(f"[dim]{event_data.get('step')}[/dim]")

        try:
            with console.status("[cyan]Processing query...[/cyan]", spinner="dots"):
                result = await pipeline.run_with_streaming(request, user, event_callback=show_step)
            print_message(result.message)
            console.print(f"[dim]Conversation: {result.conversation_id}[/dim]")
        finally:
            await pipeline.pool_manager.close()
            await pipeline.conversation_store.close()
            await pipeline.audit_log.close()

    try:
        asyncio.run(run_query())
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.argument("database_id")
def schema(database_id: str):
    """Print the schema description used in prompts."""

    async def fetch() -> str:
        manager = DatabasePoolManager()
        try:
            return await SchemaProvider(manager).get_schema(database_id)
        finally:
            await manager.close()

    try:
        text = asyncio.run(fetch())
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    console.print(Panel(text or "(no tables)", title=f"[bold cyan]{database_id}[/bold cyan]"))


@cli.command()
def databases():
    """List configured target databases."""
    settings = get_settings()
    manager = DatabasePoolManager(settings.database)
    ids = manager.database_ids()
    if not ids:
        console.print("[yellow]No target databases configured. Set DATABASE_TARGETS.[/yellow]")
        return
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Database")
    table.add_column("Default")
    for database_id in ids:
        table.add_row(database_id, "yes" if database_id == settings.database.default_id else "")
    console.print(table)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
