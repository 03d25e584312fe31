"""Sources CLI commands.

Inspect configured sources and resolve requests without installing them.
"""

import typer
from rich.table import Table

from cli.vsixsync.output import console, print_error, print_info, print_warning
from schemas.source import (
    FileSystemSource,
    ForgejoSource,
    GitHubSource,
    MarketplaceSource,
    Source,
)
from sources.base import SearchFileResult

sources_app = typer.Typer(
    name="sources",
    help="Inspect extension sources.",
)


def _describe(source: Source) -> str:
    if isinstance(source, FileSystemSource):
        return str(source.path)
    if isinstance(source, MarketplaceSource):
        detail = source.service_url
        if source.throttle:
            detail += f" (throttle {source.throttle}ms)"
        return detail
    if isinstance(source, (GitHubSource, ForgejoSource)):
        detail = source.service_url or "https://api.github.com"
        if source.owner:
            detail += f" owner={source.owner}"
        if source.token:
            detail += " [token]"
        return detail
    return "-"


@sources_app.command("list")
def list_sources() -> None:
    """List the configured sources.

    Examples:
        vsixsync sources list
    """
    from cli.vsixsync.cli import get_config

    config = get_config()
    if not config.sources:
        print_info("No sources configured.")
        return

    table = Table(title="Sources")
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="green")
    table.add_column("Location")
    table.add_column("Fallback", style="yellow")

    for name, source in sorted(config.sources.items()):
        table.add_row(name, source.type, _describe(source), source.fallback or "-")

    console.print(table)


@sources_app.command("search")
def search(
    request: str = typer.Argument(..., help="Request, e.g. vsx:acme.tool@1.2.0"),
) -> None:
    """Resolve a request against its source and print what would be installed.

    Examples:
        vsixsync sources search vsx:acme.tool
        vsixsync sources search "gh:acme/tool || vsx:acme.tool"
    """
    from cli.vsixsync.cli import build_runner, get_config

    runner = build_runner(get_config(), None)
    results = runner.search(request)

    if not results:
        print_warning(f"'{request}' has no sourced alternative")
        raise typer.Exit(1)

    found = False
    for metadata, result in results:
        if result is None:
            print_error(f"{metadata}: not found")
            continue
        found = True
        name = result.full_name or "(unknown until downloaded)"
        where = result.file if isinstance(result, SearchFileResult) else "download"
        console.print(f"[green]✓[/green] {metadata}: [cyan]{name}[/cyan] {result.version} [dim]{where}[/dim]")

    if not found:
        raise typer.Exit(1)
