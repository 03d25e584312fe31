"""vsixsync CLI.

Main command-line interface for keeping editor extensions in sync with the
configuration.
"""

import logging
from pathlib import Path
from typing import Optional

import typer

from cli.vsixsync.output import (
    console,
    print_error,
    print_info,
    print_report,
    print_success,
    print_warning,
)
from extensions.host import HostError
from extensions.lock import LockError
from extensions.manager import ManifestError
from extensions.statedb import StateDBError
from orchestrator.config import Config, ConfigError, load_config
from orchestrator.runner import AdoptionCandidate, ExtensionRunner
from schemas.state import RestartMode

app = typer.Typer(
    name="vsixsync",
    help="vsixsync - keep editor extensions installed, updated and enabled as configured",
    no_args_is_help=True,
)

# Register command sub-apps
from cli.commands.extensions import ignore_workspace, list_extensions
from cli.commands.sources import sources_app

app.command("list")(list_extensions)
app.command("ignore")(ignore_workspace)
app.add_typer(sources_app, name="sources")

# Errors that abort a run
FATAL_ERRORS = (ConfigError, LockError, ManifestError, StateDBError, HostError)


class State:
    config_path: Optional[Path] = None
    log_level: Optional[str] = None


state = State()


@app.callback()
def callback(
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to vsixsync.toml (default: search current and parent directories)",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Logging level: DEBUG|INFO|WARNING|ERROR",
    ),
) -> None:
    state.config_path = config
    state.log_level = log_level


def get_config() -> Config:
    """Load the configuration and set up logging."""
    try:
        config = load_config(state.config_path)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)

    logging.basicConfig(
        level=(state.log_level or config.logging.level).upper(),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    return config


def build_runner(config: Config, workspace: Optional[Path]) -> ExtensionRunner:
    return ExtensionRunner(
        config,
        workspace=workspace.resolve() if workspace else None,
        console=console,
    )


def _confirm_restart(yes: bool, restart_mode: Optional[RestartMode], config: Config) -> None:
    mode = restart_mode or config.restart_mode
    if yes or mode is RestartMode.NONE:
        return
    if not typer.confirm("The editor might restart or reload. Do you want to continue?"):
        raise typer.Exit(0)


WorkspaceOption = typer.Option(
    None,
    "--workspace",
    "-w",
    help="Manage the extensions of this workspace instead of the global ones",
)
YesOption = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation")
RestartOption = typer.Option(
    None,
    "--restart-mode",
    "-r",
    help="auto|none|reload-windows|restart-app|restart-host",
)


def _run(action: str, config: Config, workspace: Optional[Path], restart_mode: Optional[RestartMode]) -> None:
    runner = build_runner(config, workspace)
    try:
        if action == "install":
            report = runner.install(restart_mode)
        elif action == "update":
            report = runner.update(restart_mode)
        else:
            report = runner.uninstall(restart_mode)
    except FATAL_ERRORS as e:
        print_error(str(e))
        raise typer.Exit(1)
    except KeyboardInterrupt:
        print_error("Interrupted")
        raise typer.Exit(130)

    print_report(report)


@app.command()
def install(
    workspace: Optional[Path] = WorkspaceOption,
    yes: bool = YesOption,
    restart_mode: Optional[RestartMode] = RestartOption,
) -> None:
    """Install the configured extensions.

    Examples:
        vsixsync install
        vsixsync install --workspace . --restart-mode none
    """
    config = get_config()
    if config.extensions is None:
        print_info("No extensions configured.")
        return
    _confirm_restart(yes, restart_mode, config)
    _run("install", config, workspace, restart_mode)


@app.command()
def update(
    workspace: Optional[Path] = WorkspaceOption,
    yes: bool = YesOption,
    restart_mode: Optional[RestartMode] = RestartOption,
) -> None:
    """Install the configured extensions and update the managed ones."""
    config = get_config()
    if config.extensions is None:
        print_info("No extensions configured.")
        return
    _confirm_restart(yes, restart_mode, config)
    _run("update", config, workspace, restart_mode)


@app.command()
def uninstall(
    workspace: Optional[Path] = WorkspaceOption,
    yes: bool = YesOption,
    restart_mode: Optional[RestartMode] = RestartOption,
) -> None:
    """Uninstall every extension managed by vsixsync."""
    config = get_config()
    if not yes and not typer.confirm("Uninstall all the managed extensions?"):
        raise typer.Exit(0)
    _run("uninstall", config, workspace, restart_mode)


@app.command()
def adopt(
    workspace: Optional[Path] = WorkspaceOption,
    yes: bool = YesOption,
) -> None:
    """Manage configured extensions that are already installed."""
    config = get_config()

    def confirm(candidates: list[AdoptionCandidate]) -> bool:
        console.print("vsixsync will manage:")
        for candidate in candidates:
            console.print(f"  - [cyan]{candidate.id}[/cyan] {candidate.version}")
        return yes or typer.confirm("Do you want to continue?")

    runner = build_runner(config, workspace)
    try:
        report = runner.adopt(confirm)
    except FATAL_ERRORS as e:
        print_error(str(e))
        raise typer.Exit(1)

    if not report.adopted and not report.skipped:
        print_info("No unmanaged extensions.")
        return
    print_report(report)


DEFAULT_CONFIG = '''# vsixsync configuration
# Auto-generated by 'vsixsync init'

# Requests: "publisher.name[@X.Y.Z]", "source:name[!asset][@X.Y.Z]",
# a group name, "a || b" alternatives, "-" prefix to install disabled
extensions = []

# auto | none | reload-windows | restart-app | restart-host
restart_mode = "auto"

[groups]

[sources.vsx]
type = "marketplace"
serviceUrl = "https://open-vsx.org/vscode/gallery"
itemUrl = "https://open-vsx.org/vscode/item"
throttle = 0

[editor]
cli = "code"

[lock]
timeout = 30
stale = 600

[logging]
level = "INFO"
'''


@app.command()
def init(
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing vsixsync.toml",
    ),
) -> None:
    """Create a default vsixsync.toml file.

    Example:
        vsixsync init
        vsixsync init --force
    """
    config_path = Path.cwd() / "vsixsync.toml"

    if config_path.exists() and not force:
        print_warning(f"Config file already exists: {config_path}")
        print_info("Use --force to overwrite")
        raise typer.Exit(1)

    config_path.write_text(DEFAULT_CONFIG)
    print_success(f"Created config file: {config_path}")


@app.command()
def version() -> None:
    """Show vsixsync version."""
    from cli.vsixsync import __version__

    console.print(f"vsixsync v{__version__}")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
