"""
Command-line interface for the hooked project tracker.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from hooked.client import HookedClient
from hooked.config import HookedConfig
from hooked.schema.records import SyncStatus

app = typer.Typer(
    name="hooked",
    help="Hooked - offline-first crochet and knitting project tracker",
)
console = Console()

_state: dict[str, HookedConfig] = {}


@app.callback()
def main(
    data_dir: str = typer.Option(None, "--data-dir", "-d", help="Local data directory"),
    api_url: str = typer.Option(None, "--api-url", help="Remote API base URL"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
    """Track projects locally and sync them when possible."""
    overrides = {}
    if data_dir:
        overrides["data_dir"] = data_dir
    if api_url:
        overrides["api_base_url"] = api_url
    config = HookedConfig.from_env(**overrides)

    logging.basicConfig(
        level="DEBUG" if verbose else config.log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    _state["config"] = config


def _client() -> HookedClient:
    return HookedClient(_state.get("config") or HookedConfig.from_env())


def _format_duration(seconds: int) -> str:
    hours, rest = divmod(int(seconds), 3600)
    return f"{hours}h{rest // 60:02d}"


def _format_time_ms(value: int | None) -> str:
    if not value:
        return "never"
    return datetime.fromtimestamp(value / 1000).strftime("%Y-%m-%d %H:%M:%S")


@app.command()
def status():
    """Show local data, pending changes and sync availability."""

    async def _status():
        async with _client() as client:
            summary = await client.status()

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Kind")
        table.add_column("Stored", justify="right")
        table.add_column("Pending", justify="right")
        for kind, counts in summary["kinds"].items():
            pending = counts["pending"]
            table.add_row(
                kind,
                str(counts["total"]),
                f"[yellow]{pending}[/yellow]" if pending else "0",
            )
        console.print(table)

        console.print(f"Categories: {summary['categories']}")
        console.print(f"Deletions awaiting push: {summary['tombstones']}")
        console.print(f"Last sync: {_format_time_ms(summary['last_sync'])}")
        if summary["can_sync"]:
            console.print("Sync: [green]available[/green]")
        else:
            console.print(f"Sync: [red]unavailable[/red] ({summary['blocked_by']})")

    asyncio.run(_status())


@app.command()
def sync():
    """Run one sync pass now."""

    async def _sync():
        async with _client() as client:
            result = await client.sync_now()

        if result.skipped:
            console.print(f"[yellow]Sync skipped:[/yellow] {result.reason}")
            raise typer.Exit(1)

        table = Table(show_header=True)
        table.add_column("Kind")
        table.add_column("Pushed", justify="right")
        table.add_column("Pulled", justify="right")
        for kind in sorted(set(result.pushed) | set(result.pulled)):
            table.add_row(
                kind, str(result.pushed.get(kind, "-")), str(result.pulled.get(kind, "-"))
            )
        console.print(table)

        for error in result.errors:
            console.print(f"[red]{error}[/red]")
        if not result.success:
            raise typer.Exit(1)
        console.print("[bold green]Sync complete[/bold green]")

    asyncio.run(_sync())


@app.command()
def login(token: str = typer.Argument(..., help="Bearer token of your account")):
    """Link an account."""

    async def _login():
        async with _client() as client:
            client.login(token)
        console.print("[green]Account linked[/green]")

    asyncio.run(_login())


@app.command()
def logout():
    """Forget the linked account. Local data is kept."""

    async def _logout():
        async with _client() as client:
            client.logout()
        console.print("Logged out")

    asyncio.run(_logout())


@app.command("enable-sync")
def enable_sync():
    """Turn cloud sync on."""

    async def _enable():
        async with _client() as client:
            client.set_sync_enabled(True)
        console.print("[green]Cloud sync enabled[/green]")

    asyncio.run(_enable())


@app.command("disable-sync")
def disable_sync():
    """Turn cloud sync off. Changes stay local."""

    async def _disable():
        async with _client() as client:
            client.set_sync_enabled(False)
        console.print("Cloud sync disabled")

    asyncio.run(_disable())


@app.command()
def projects():
    """List projects."""

    async def _projects():
        async with _client() as client:
            items = await client.projects()
            labels = {c.id: c.label for c in await client.categories()}

        if not items:
            console.print("[dim]No projects yet[/dim]")
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim")
        table.add_column("Title")
        table.add_column("Category")
        table.add_column("Rows", justify="right")
        table.add_column("Time", justify="right")
        table.add_column("Status")
        table.add_column("Sync")

        for project in items:
            rows = str(project.current_row)
            if project.goal_rows:
                rows = f"{rows}/{project.goal_rows}"
            sync_state = (
                "[green]synced[/green]"
                if project.sync_status is SyncStatus.SYNCED
                else "[yellow]pending[/yellow]"
            )
            table.add_row(
                project.id,
                project.title,
                labels.get(project.category_id or "", "-"),
                rows,
                _format_duration(project.total_duration),
                project.status.value,
                sync_state,
            )
        console.print(table)

    asyncio.run(_projects())


@app.command("add-project")
def add_project(
    title: str = typer.Argument(..., help="Project title"),
    goal_rows: int = typer.Option(None, "--goal", "-g", help="Target number of rows"),
    category: str = typer.Option(None, "--category", "-c", help="Category id"),
):
    """Create a project."""

    async def _add():
        async with _client() as client:
            project = await client.create_project(
                title, goal_rows=goal_rows, category_id=category
            )
            await client.triggers.wait_idle()
        console.print(f"Created [bold]{project.title}[/bold] ({project.id})")

    asyncio.run(_add())


@app.command()
def row(
    project_id: str = typer.Argument(..., help="Project id"),
    by: int = typer.Option(1, "--by", "-b", help="Rows to add (negative to undo)"),
):
    """Move a project's row counter."""

    async def _row():
        async with _client() as client:
            try:
                project = await client.increment_row(project_id, by)
            except KeyError:
                console.print(f"[red]Unknown project: {project_id}[/red]")
                raise typer.Exit(1) from None
            await client.triggers.wait_idle()
        console.print(f"{project.title}: row {project.current_row}")

    asyncio.run(_row())


@app.command()
def weekly():
    """Show time spent this week."""

    async def _weekly():
        async with _client() as client:
            seconds = await client.weekly_time()
        console.print(f"This week: [bold]{_format_duration(seconds)}[/bold]")

    asyncio.run(_weekly())


@app.command()
def reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete all local data, including changes not yet synced."""
    if not yes:
        typer.confirm("Delete all local data?", abort=True)

    async def _reset():
        async with _client() as client:
            await client.reset()
        console.print("[green]Local data cleared[/green]")

    asyncio.run(_reset())


if __name__ == "__main__":
    app()
