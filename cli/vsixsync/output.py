"""Rich console output utilities for the vsixsync CLI."""

from typing import Any

from rich.console import Console
from rich.table import Table

from schemas.state import ExtensionState

console = Console()
error_console = Console(stderr=True)


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    error_console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]![/yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]→[/blue] {message}")


def print_report(report: Any) -> None:
    """Print the outcome of a run."""
    if report.skipped:
        print_info("Workspace ignored, nothing to do.")
        return

    rows = [
        ("Installed", report.installed, "green"),
        ("Updated", report.updated, "cyan"),
        ("Adopted", report.adopted, "green"),
        ("Removed", report.removed, "yellow"),
        ("Unmanaged", report.unmanaged, "dim"),
        ("Owned by other scope", report.owned_elsewhere, "dim"),
        ("Failed", report.failed, "red"),
    ]

    table = Table(show_header=True, header_style="bold")
    table.add_column("Result")
    table.add_column("Extensions")

    shown = False
    for label, items, style in rows:
        if items:
            table.add_row(f"[{style}]{label}[/{style}]", ", ".join(items))
            shown = True

    if shown:
        console.print(table)
    else:
        print_info("Nothing to do.")

    if report.unchanged:
        console.print(f"[dim]{len(report.unchanged)} extension(s) up to date[/dim]")
    if report.action is not None:
        print_warning(f"Editor action requested: {report.action.value}")


def print_managed(managed: dict[str, ExtensionState]) -> None:
    """Print managed extensions as a table."""
    if not managed:
        print_info("No managed extensions.")
        return

    table = Table(title="Managed Extensions")
    table.add_column("Extension", style="cyan")
    table.add_column("Version")
    table.add_column("Scope", style="green")

    for extension_id, state in managed.items():
        table.add_row(extension_id, state.version, state.mode.value)

    console.print(table)
    console.print(f"\n[dim]Total: {len(managed)} extensions[/dim]")
