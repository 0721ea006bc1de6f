"""
Yanuka - CLI Entry Point.

Usage:
    yanuka health                                   Check configuration and store access
    yanuka get books 1760891234567_k3j9x0a2b        Show one document
    yanuka ls news --where isActive:==:true -n 5    List documents
    yanuka count prayers --where prayerType:==:daily
    yanuka config                                   Show the app config row
    yanuka watch notifications                      Stream live changes
"""

import asyncio
import json
import logging
from typing import Any, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from yanuka.db.errors import DataLayerError, UnsupportedOperator
from yanuka.db.query import OrderBy, QuerySpec, WhereClause

app = typer.Typer(
    name="yanuka",
    help="Yanuka - inspect app collections through the document data layer.",
    add_completion=False,
)
console = Console()


def _setup_logging() -> None:
    from yanuka.config import settings

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def parse_value(raw: str) -> Any:
    """JSON scalars when they parse (true, 3, null), plain text otherwise."""
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def parse_where(expressions: list[str]) -> list[WhereClause]:
    """field:op:value -> WhereClause. Values may contain ':'."""
    clauses = []
    for expression in expressions:
        parts = expression.split(":", 2)
        if len(parts) != 3:
            raise typer.BadParameter(f"Expected field:op:value, got {expression!r}")
        field, op, value = parts
        try:
            clauses.append(WhereClause(field=field, op=op, value=parse_value(value)))
        except UnsupportedOperator as e:
            raise typer.BadParameter(str(e)) from e
    return clauses


def parse_order(expression: str | None) -> OrderBy | None:
    """field[:asc|desc]"""
    if not expression:
        return None
    field, _, direction = expression.partition(":")
    return OrderBy(field=field, direction=direction or "desc")


def _run(coro):
    try:
        return asyncio.run(coro)
    except DataLayerError as e:
        console.print(f"[red]{type(e).__name__}: {e}[/red]")
        raise typer.Exit(code=1)


@app.command()
def get(
    collection: str = typer.Argument(..., help="Logical collection name (e.g. dailyLearning)"),
    doc_id: str = typer.Argument(..., help="Document id"),
) -> None:
    """Show one document."""
    from yanuka.db.client import build_repository

    _setup_logging()

    async def _get():
        repo = await build_repository()
        return await repo.get(collection, doc_id)

    console.print_json(data=_run(_get()))


@app.command("ls")
def list_documents(
    collection: str = typer.Argument(..., help="Logical collection name"),
    where: Optional[List[str]] = typer.Option(None, "--where", "-w", help="field:op:value, repeatable"),
    order: Optional[str] = typer.Option(None, "--order", "-o", help="field[:asc|desc]"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n"),
    offset: Optional[int] = typer.Option(None, "--offset"),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON"),
) -> None:
    """List documents in a collection."""
    from yanuka.db.client import build_repository

    _setup_logging()
    spec = QuerySpec(where=parse_where(where or []), order_by=parse_order(order), limit=limit, offset=offset)

    async def _list():
        repo = await build_repository()
        return await repo.list(collection, spec)

    docs = _run(_list())
    if as_json:
        console.print_json(data=docs)
        return

    table = Table(title=f"{collection} ({len(docs)})")
    table.add_column("id", style="dim")
    table.add_column("title")
    for doc in docs:
        table.add_row(str(doc["id"]), str(doc.get("title") or doc.get("name") or ""))
    console.print(table)


@app.command()
def count(
    collection: str = typer.Argument(..., help="Logical collection name"),
    where: Optional[List[str]] = typer.Option(None, "--where", "-w", help="field:op:value, repeatable"),
) -> None:
    """Count documents matching the filters."""
    from yanuka.db.client import build_repository

    _setup_logging()
    clauses = parse_where(where or [])

    async def _count():
        repo = await build_repository()
        return await repo.count(collection, clauses)

    console.print(_run(_count()))


@app.command()
def config() -> None:
    """Show the app configuration row (or note that there is none)."""
    from yanuka.db.client import build_repository

    _setup_logging()

    async def _config():
        repo = await build_repository()
        return await repo.get_app_config()

    data = _run(_config())
    if data is None:
        console.print("[yellow]No app config (row or table missing)[/yellow]")
    else:
        console.print_json(data=data)


@app.command()
def watch(
    collection: str = typer.Argument(..., help="Logical collection name"),
) -> None:
    """Print live changes until interrupted."""
    from yanuka.db.client import build_change_feed

    _setup_logging()

    def on_event(event) -> None:
        console.print(f"[bold]{event.kind.value}[/bold]")
        console.print_json(data=event.model_dump(mode="json", exclude={"kind"}))

    async def _watch():
        feed = await build_change_feed()
        unsubscribe = await feed.subscribe(collection, on_event)
        console.print(f"[dim]Watching {collection}... Ctrl-C to stop[/dim]")
        try:
            await asyncio.Event().wait()
        finally:
            await unsubscribe()

    try:
        _run(_watch())
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")


@app.command()
def health() -> None:
    """Check configuration and store access."""
    from yanuka.config import get_settings
    from yanuka.db.client import build_repository

    console.print("\n[bold]Yanuka Health Check[/bold]\n")

    try:
        settings = get_settings()
        console.print("✅ Configuration loaded")
        console.print(f"   Environment: {settings.yanuka_env}")
        console.print(f"   Log level: {settings.log_level}")
        console.print(f"   Content encoding: {settings.default_encoding}")

        if settings.supabase_url.startswith("https://"):
            console.print("✅ Supabase URL configured")
        else:
            console.print("❌ Supabase URL missing or invalid")
            raise typer.Exit(code=1)

        async def _read_config():
            repo = await build_repository()
            return await repo.get_app_config()

        config_row = asyncio.run(_read_config())
        if config_row is None:
            console.print("ℹ️  Store reachable, no app config row")
        else:
            console.print("✅ Store reachable, app config loaded")

        console.print("\n[green]All checks passed![/green]")

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"\n[red]Health check failed: {e}[/red]")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
