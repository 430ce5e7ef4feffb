#!/usr/bin/env python3
"""
devflow command-line client.

Usage:
    dev capture "text"        - Classify and save one entry
    dev bulk notes.txt        - Import a brain dump (file or stdin)
    dev search "query"        - Smart search (use --local for offline)
    dev list                  - List entries
    dev done <id>             - Mark an entry complete (--undo to reopen)
    dev delete <id>           - Delete an entry
    dev clear --yes           - Delete every entry
    dev stats                 - Entry counts per category
    dev daemon start|stop|status
"""

import asyncio
from typing import Any, Dict, List, Optional

import click
import httpx
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from loguru import logger

console = Console()

# Default daemon URL
DAEMON_URL = "http://localhost:8765"

CATEGORIES = ["code_snippet", "learning_note", "idea", "bug_fix", "general", "task"]


async def call_daemon(
    base_url: str,
    method: str,
    path: str,
    timeout: float = 10.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **kwargs
) -> Optional[Dict[str, Any]]:
    """Send one request to the daemon; print the failure and return None on error."""
    try:
        async with httpx.AsyncClient(base_url=base_url, transport=transport) as client:
            response = await client.request(method, path, timeout=timeout, **kwargs)
    except httpx.ConnectError:
        console.print("[red]Cannot connect to daemon. Is it running?[/red]")
        console.print("Start with: [cyan]dev daemon start[/cyan]")
        return None
    except httpx.TimeoutException:
        console.print("[red]Daemon did not answer in time[/red]")
        return None

    if response.is_success:
        return response.json()

    try:
        message = response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        message = response.text
    console.print(f"[red]Error ({response.status_code}):[/red] {message}")
    return None


def run(ctx: click.Context, method: str, path: str, **kwargs) -> Optional[Dict[str, Any]]:
    return asyncio.run(call_daemon(
        ctx.obj["url"], method, path, transport=ctx.obj.get("transport"), **kwargs
    ))


@click.group()
@click.option("--url", envvar="DEVFLOW_URL", default=DAEMON_URL, show_default=True,
              help="Daemon base URL")
@click.pass_context
def cli(ctx, url: str):
    """devflow - capture, classify and search developer notes."""
    ctx.ensure_object(dict)
    ctx.obj["url"] = url.rstrip("/")


@cli.command()
@click.argument("text")
@click.pass_context
def capture(ctx, text: str):
    """Classify and save one entry."""
    data = run(ctx, "POST", "/entries", json={"content": text}, timeout=60.0)
    if data:
        console.print(
            f"[green]✓[/green] Saved {data['id']} as [magenta]{data['category']}[/magenta] "
            f"({', '.join(data.get('tags') or [])})"
        )


@cli.command()
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
@click.pass_context
def bulk(ctx, source):
    """Import a multi-item brain dump from FILE (or stdin)."""
    raw_text = source.read()
    if not raw_text.strip():
        console.print("[yellow]Nothing to import[/yellow]")
        return

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
        console=console
    ) as progress:
        progress.add_task(description="Classifying...", total=None)
        data = run(ctx, "POST", "/entries/bulk", json={"text": raw_text}, timeout=180.0)

    if not data:
        return

    console.print(f"[green]✓[/green] Imported {data['saved_count']} entries")
    if data.get("failed"):
        console.print(f"[red]{data['failed']} entries could not be saved[/red]")
    if data.get("source") == "fallback" and data.get("reason") != "empty input":
        console.print(f"[yellow]Smart import unavailable, split by line:[/yellow] {data.get('reason')}")
    display_entries(data.get("saved", []))


@cli.command()
@click.argument("query")
@click.option("--local", "local_only", is_flag=True, help="Offline search, no AI expansion")
@click.pass_context
def search(ctx, query: str, local_only: bool):
    """Search entries."""
    params = {"q": query, "mode": "local" if local_only else "smart"}

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
        console=console
    ) as progress:
        progress.add_task(description="Searching...", total=None)
        data = run(ctx, "GET", "/search", params=params, timeout=30.0)

    if data:
        display_search_results(data)


def display_search_results(data: dict):
    """Display search results in a table."""
    results = data.get("results", [])

    if data.get("expanded_query"):
        console.print(f"[dim]Interpreted as: {data['expanded_query']} ({data.get('intent', 'find')})[/dim]")

    if not results:
        console.print("[yellow]No results found[/yellow]")
        return

    scores = data.get("scores", {})
    title = f"Search Results ({data.get('mode')}, {data.get('latency_ms', 0):.1f}ms)"
    display_entries(results, title=title, scores=scores)


def display_entries(entries: List[dict], title: str = "Entries", scores: Optional[dict] = None):
    if not entries:
        return

    table = Table(title=title)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Category", style="magenta")
    table.add_column("Content", no_wrap=False)
    table.add_column("Tags", style="cyan")
    if scores:
        table.add_column("Score", justify="right")

    for e in entries:
        content = e.get("content", "")
        if e.get("is_completed"):
            content = f"[strike]{content}[/strike]"
        row = [
            e.get("id", ""),
            e.get("category", ""),
            content[:120],
            ", ".join(e.get("tags") or [])
        ]
        if scores:
            row.append(str(scores.get(e.get("id"), "")))
        table.add_row(*row)

    console.print(table)


@cli.command(name="list")
@click.option("--category", "-c", type=click.Choice(CATEGORIES), help="Only this category")
@click.option("--limit", "-l", type=int, help="Max entries")
@click.pass_context
def list_entries(ctx, category: Optional[str], limit: Optional[int]):
    """List entries, newest first."""
    params = {}
    if category:
        params["category"] = category
    if limit:
        params["limit"] = limit

    data = run(ctx, "GET", "/entries", params=params)
    if data is None:
        return
    if not data["entries"]:
        console.print("[yellow]No entries yet[/yellow]")
        return
    display_entries(data["entries"])


@cli.command()
@click.argument("entry_id")
@click.option("--undo", is_flag=True, help="Mark as not completed")
@click.pass_context
def done(ctx, entry_id: str, undo: bool):
    """Mark an entry completed."""
    data = run(ctx, "PATCH", f"/entries/{entry_id}", json={"is_completed": not undo})
    if data:
        state = "reopened" if undo else "completed"
        console.print(f"[green]✓[/green] {entry_id} {state}")


@cli.command()
@click.argument("entry_id")
@click.pass_context
def delete(ctx, entry_id: str):
    """Delete an entry."""
    if run(ctx, "DELETE", f"/entries/{entry_id}"):
        console.print(f"[green]✓[/green] Deleted {entry_id}")


@cli.command()
@click.option("--yes", is_flag=True, help="Skip confirmation")
@click.pass_context
def clear(ctx, yes: bool):
    """Delete every entry."""
    if not yes and not click.confirm("Delete ALL entries?"):
        return
    if run(ctx, "DELETE", "/entries"):
        console.print("[green]✓[/green] All entries deleted")


@cli.command()
@click.pass_context
def stats(ctx):
    """Entry counts per category."""
    data = run(ctx, "GET", "/entries/stats")
    if not data:
        return

    table = Table(title=f"Entries ({data['total']})")
    table.add_column("Category", style="magenta")
    table.add_column("Count", justify="right")
    for category, count in data["counts"].items():
        table.add_row(category, str(count))
    console.print(table)


@cli.group()
def daemon():
    """Manage the devflow daemon."""
    pass


@daemon.command()
@click.option("--config", "-c", type=click.Path(exists=True), help="Config file path")
def start(config: Optional[str]):
    """Start the devflow daemon."""
    console.print("[cyan]Starting devflow daemon...[/cyan]")

    # Import here to avoid circular dependencies
    from ..daemon.main import main as daemon_main

    try:
        asyncio.run(daemon_main(config))
    except KeyboardInterrupt:
        console.print("\n[yellow]Daemon stopped by user[/yellow]")
    except Exception as e:
        console.print(f"[red]Daemon error:[/red] {e}")
        logger.exception("Daemon crashed")


@daemon.command()
@click.pass_context
def stop(ctx):
    """Stop the devflow daemon."""
    if run(ctx, "POST", "/shutdown", timeout=5.0):
        console.print("[green]Daemon stopping[/green]")


@daemon.command()
@click.pass_context
def status(ctx):
    """Check daemon status."""
    data = run(ctx, "GET", "/status", timeout=2.0)
    if not data:
        console.print("[red]✗ Daemon is not available[/red]")
        return

    console.print("[green]✓ Daemon is running[/green]")
    stats = data.get("stats", {})
    oracle = data.get("config", {}).get("oracle", {})
    console.print(f"\nUptime: {data.get('uptime', 'unknown')}")
    console.print(f"Oracle: {oracle.get('provider')} / {oracle.get('model')}")
    console.print(f"Entries created: {stats.get('entries_created', 0)}")
    console.print(f"Searches: {stats.get('search_count', 0)}")
    console.print(f"Memory: {stats.get('memory_mb', 0):.1f} MB")


def main():
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
