from pathlib import Path

import pytest
from typer.testing import CliRunner

from cli.vsixsync import cli
from conftest import FakeHost, make_vsix
from orchestrator.runner import ExtensionRunner

runner = CliRunner()


@pytest.fixture
def project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for name in ("VSIXSYNC_CONFIG", "VSIXSYNC_RESTART_MODE", "VSIXSYNC_STORAGE_DIR", "VSIXSYNC_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    make_vsix(tmp_path / "vsix" / "acme.tool-1.0.0.vsix", "acme", "tool")
    (tmp_path / "vsixsync.toml").write_text(
        f"""
extensions = ["local:acme.tool"]

[sources.local]
type = "file"
path = "{(tmp_path / 'vsix').as_posix()}"

[editor]
target_platform = "linux-x64"
version = "1.90.0"

[storage]
dir = "{(tmp_path / 'storage' / 'vsixsync').as_posix()}"

[lock]
timeout = 0
"""
    )
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def host(monkeypatch: pytest.MonkeyPatch) -> FakeHost:
    fake = FakeHost()

    def build_runner(config, workspace):
        return ExtensionRunner(config, host=fake, workspace=workspace)

    monkeypatch.setattr(cli, "build_runner", build_runner)
    return fake


def test_version() -> None:
    result = runner.invoke(cli.app, ["version"])
    assert result.exit_code == 0
    assert "vsixsync v0.1.0" in result.output


def test_init_creates_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(cli.app, ["init"])
    assert result.exit_code == 0
    assert (tmp_path / "vsixsync.toml").exists()

    result = runner.invoke(cli.app, ["init"])
    assert result.exit_code == 1


def test_install_and_list(project: Path, host: FakeHost) -> None:
    result = runner.invoke(cli.app, ["install", "--yes"])
    assert result.exit_code == 0, result.output
    assert "acme.tool" in result.output
    assert len(host.called("install")) == 1

    result = runner.invoke(cli.app, ["list"])
    assert result.exit_code == 0
    assert "acme.tool" in result.output
    assert "1.0.0" in result.output


def test_install_declined(project: Path, host: FakeHost) -> None:
    result = runner.invoke(cli.app, ["install"], input="n\n")
    assert result.exit_code == 0
    assert host.calls == []


def test_restart_mode_none_skips_confirmation(project: Path, host: FakeHost) -> None:
    result = runner.invoke(cli.app, ["install", "--restart-mode", "none"])
    assert result.exit_code == 0
    assert len(host.called("install")) == 1


def test_held_lock_fails(project: Path, host: FakeHost) -> None:
    (project / "storage" / "vsixsync" / "locks" / "main.lock").mkdir(parents=True)

    result = runner.invoke(cli.app, ["install", "--yes"])

    assert result.exit_code == 1
    assert host.called("install") == []


def test_invalid_config_fails(project: Path) -> None:
    (project / "vsixsync.toml").write_text('restart_mode = "sometimes"\n')

    result = runner.invoke(cli.app, ["list"])
    assert result.exit_code == 1


def test_sources_list_and_search(project: Path) -> None:
    result = runner.invoke(cli.app, ["sources", "list"])
    assert result.exit_code == 0
    assert "local" in result.output

    result = runner.invoke(cli.app, ["sources", "search", "local:acme.tool"])
    assert result.exit_code == 0
    assert "1.0.0" in result.output

    result = runner.invoke(cli.app, ["sources", "search", "local:acme.missing"])
    assert result.exit_code == 1


def test_ignore_workspace(project: Path, host: FakeHost) -> None:
    workspace = project / "ws"
    workspace.mkdir()

    result = runner.invoke(cli.app, ["ignore", str(workspace)])
    assert result.exit_code == 0
    assert (workspace / ".vscode" / "vsixsync" / "ignore").exists()

    result = runner.invoke(cli.app, ["install", "--yes", "--workspace", str(workspace)])
    assert result.exit_code == 0
    assert host.calls == []

    result = runner.invoke(cli.app, ["ignore", str(workspace), "--remove"])
    assert result.exit_code == 0
    assert not (workspace / ".vscode" / "vsixsync" / "ignore").exists()
