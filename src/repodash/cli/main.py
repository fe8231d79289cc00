"""
CLI for the repository dashboard.

Commands:
    repodash show - Load every configured repository and print a summary
    repodash detail OWNER/NAME - Show the detail sections of one repository
    repodash refresh - Clear the cache
    repodash config - Show current configuration
    repodash version - Print version
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from repodash import __version__
from repodash.cache import CacheManager, DurableStore, InMemoryKVStore, SQLiteKVStore
from repodash.config import Settings, clear_settings_cache, get_settings
from repodash.data.github_client import GitHubClient
from repodash.data.repository_service import RepoDetail, RepoOverview, RepositoryService
from repodash.exceptions import ConfigurationError, NoDataAvailableError
from repodash.logging import setup_logging
from repodash.repos_config import load_repositories
from repodash.types import RepoRef

app = typer.Typer(
    name="repodash",
    help="Repository dashboard - cached repository metadata from GitHub",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except Exception:
        return None


def _require_settings() -> Settings:
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'repodash config' to see what's wrong."
        )
        raise typer.Exit(1)
    setup_logging(settings.LOG_LEVEL, log_file=settings.LOG_FILE)
    return settings


def build_cache(settings: Settings, persist: bool = True) -> CacheManager:
    """CacheManager wired to the configured durable store."""
    store: DurableStore
    if persist:
        settings.ensure_directories()
        store = SQLiteKVStore(
            settings.cache_db_path,
            namespace=settings.CACHE_NAMESPACE,
            max_bytes=settings.cache_max_bytes,
        )
    else:
        store = InMemoryKVStore(max_bytes=settings.cache_max_bytes)
    return CacheManager(store, ttl_ms=settings.CACHE_TTL_MS)


def _format_count(value: int | None) -> str:
    return f"{value:,}" if value is not None else "-"


def _render_overviews(overviews: list[RepoOverview]) -> Table:
    table = Table(title="Repositories", show_header=True)
    table.add_column("Repository", style="cyan")
    table.add_column("Stars", justify="right")
    table.add_column("Forks", justify="right")
    table.add_column("Updated")
    table.add_column("Latest commit")

    for overview in overviews:
        if not overview.ok:
            table.add_row(
                overview.repo.full_name,
                "-",
                "-",
                "-",
                f"[red]Failed: {overview.error}[/red]",
            )
            continue
        info = overview.info or {}
        latest = "-"
        if overview.commits:
            commit = overview.commits[0]
            message = commit.get("commit", {}).get("message", "").split("\n")[0]
            latest = f"{commit.get('sha', '')[:7]} {message[:60]}"
        table.add_row(
            overview.repo.full_name,
            _format_count(overview.stars),
            _format_count(overview.forks),
            str(info.get("updated_at", "-")),
            latest,
        )
    return table


def _render_detail(detail: RepoDetail) -> None:
    info = detail.info
    console.print(
        Panel(
            f"{info.get('description') or 'No description'}\n\n"
            f"[bold]Stars:[/bold] {_format_count(info.get('stargazers_count'))}  "
            f"[bold]Forks:[/bold] {_format_count(info.get('forks_count'))}  "
            f"[bold]Open issues:[/bold] {_format_count(info.get('open_issues_count'))}",
            title=f"[bold cyan]{detail.repo.full_name}[/bold cyan]",
            border_style="cyan",
        )
    )

    sections = Table(show_header=True)
    sections.add_column("Section", style="cyan")
    sections.add_column("Items")
    for name, items, label in (
        ("branches", detail.branches, "name"),
        ("tags", detail.tags, "name"),
        ("releases", detail.releases, "name"),
        ("issues", detail.issues, "title"),
        ("contributors", detail.contributors, "login"),
    ):
        if name in detail.errors:
            sections.add_row(name, f"[red]{detail.errors[name]}[/red]")
        else:
            sections.add_row(name, ", ".join(str(i.get(label, "")) for i in items[:10]) or "-")
    console.print(sections)

    console.print(f"\n[bold]Commits on {escape(detail.branch)} (page {detail.page})[/bold]")
    if "commits" in detail.errors:
        console.print(f"  [red]{detail.errors['commits']}[/red]")
    elif not detail.commits:
        console.print("  [dim]No commits on this page[/dim]")
    else:
        for commit in detail.commits:
            message = commit.get("commit", {}).get("message", "").split("\n")[0]
            console.print(f"  [dim]{commit.get('sha', '')[:7]}[/dim] {message}")


async def _show(settings: Settings, repos: list[RepoRef], persist: bool) -> list[RepoOverview]:
    async with build_cache(settings, persist=persist) as cache:
        async with GitHubClient.from_settings(settings) as client:
            service = RepositoryService(cache, client, batch_size=settings.BATCH_SIZE)
            return await service.load_all(repos)


async def _detail(settings: Settings, repo: RepoRef, page: int) -> RepoDetail:
    async with build_cache(settings) as cache:
        async with GitHubClient.from_settings(settings) as client:
            return await RepositoryService(cache, client).detail(repo, page=page)


async def _refresh(settings: Settings) -> None:
    async with build_cache(settings) as cache:
        await cache.invalidate_all()


@app.command()
def show(
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Repositories YAML file"),
    ] = None,
    no_persist: Annotated[
        bool,
        typer.Option("--no-persist", help="Keep the cache in memory only"),
    ] = False,
) -> None:
    """Load all configured repositories and print a summary table."""
    settings = _require_settings()

    try:
        repos = load_repositories(config_path or settings.REPOS_CONFIG)
    except ConfigurationError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"Loading {len(repos)} repositories...", total=None)
        overviews = asyncio.run(_show(settings, repos, persist=not no_persist))

    console.print(_render_overviews(overviews))
    failed = [o for o in overviews if not o.ok]
    if failed:
        console.print(
            f"\n[yellow]{len(failed)} repositories failed to load. "
            "Re-run 'repodash show' to retry.[/yellow]"
        )


@app.command()
def detail(
    repo: Annotated[str, typer.Argument(help="Repository as owner/name")],
    branch: Annotated[
        Optional[str],
        typer.Option(
            "--branch", "-b", help="Branch for the commit list, the repository default if omitted"
        ),
    ] = None,
    page: Annotated[
        int, typer.Option("--page", "-p", min=1, help="Page of the commit list")
    ] = 1,
) -> None:
    """Show README status, branches, commits, releases and more for one repository."""
    settings = _require_settings()

    try:
        ref = RepoRef.parse(repo, branch=branch)
    except ValueError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)

    try:
        result = asyncio.run(_detail(settings, ref, page))
    except NoDataAvailableError as e:
        error_console.print(f"[red]Failed to load {ref.full_name}:[/red] {e.cause or e}")
        raise typer.Exit(1)

    _render_detail(result)


@app.command()
def refresh() -> None:
    """Clear every cached entry so the next run reloads from the API."""
    settings = _require_settings()
    asyncio.run(_refresh(settings))
    console.print("[green]Cache cleared.[/green]")


@app.command()
def config() -> None:
    """Show current configuration with the token redacted."""
    console.print()
    console.print("[bold]Repository Dashboard Configuration[/bold]")
    console.print()

    settings = _get_settings_safe()
    if settings is None:
        error_console.print("[red]Configuration is invalid.[/red]")
        error_console.print("Check the environment variables or your .env file.")
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.redacted_display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"repodash version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
