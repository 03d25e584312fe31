"""Managed extension listing and workspace ignore markers."""

from pathlib import Path
from typing import Optional

import typer

from cli.vsixsync.output import console, print_error, print_info, print_managed, print_success
from extensions.manager import ManifestError


def list_extensions(
    workspace: Optional[Path] = typer.Option(
        None,
        "--workspace",
        "-w",
        help="List the extensions managed for this workspace",
    ),
) -> None:
    """List the extensions managed by vsixsync.

    Examples:
        vsixsync list
        vsixsync list --workspace .
    """
    from cli.vsixsync.cli import build_runner, get_config

    runner = build_runner(get_config(), workspace)
    try:
        managed = runner.list_managed()
    except ManifestError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_managed(managed)


def ignore_workspace(
    workspace: Path = typer.Argument(Path("."), help="Workspace directory"),
    remove: bool = typer.Option(False, "--remove", help="Stop ignoring the workspace"),
) -> None:
    """Mark a workspace so that workspace runs skip it."""
    from cli.vsixsync.cli import get_config

    storage = get_config().workspace_storage_dir(workspace.resolve())
    marker = storage / "ignore"

    if remove:
        if marker.exists():
            marker.unlink()
            print_success(f"Workspace {workspace} is no longer ignored")
        else:
            print_info(f"Workspace {workspace} is not ignored")
        return

    storage.mkdir(parents=True, exist_ok=True)
    marker.touch()
    print_success(f"Workspace {workspace} ignored")
    console.print(f"[dim]Remove {marker} or run 'vsixsync ignore --remove' to undo[/dim]")
