import json
from pathlib import Path

import pytest

from conftest import FakeHost
from extensions.manager import (
    ExtensionManager,
    ManifestError,
    SessionError,
    resolve_restart_action,
)
from extensions.statedb import StateDBError, read_disabled, write_disabled
from schemas.state import ManagerMode, RestartAction, RestartMode


def write_manifest(storage: Path, installed: dict) -> None:
    storage.mkdir(parents=True, exist_ok=True)
    (storage / "extensions.json").write_text(json.dumps({"installed": installed}))


def read_manifest(storage: Path) -> dict:
    return json.loads((storage / "extensions.json").read_text())["installed"]


def test_install_one_extension(host: FakeHost, global_storage: Path) -> None:
    manager = ExtensionManager(host, global_storage)
    manager.load()
    assert manager.is_first_run()

    manager.start_session()
    manager.add_installed("acme.tool", "1.0.0", True, ManagerMode.GLOBAL)
    action = manager.save(RestartMode.AUTO)

    assert action is None
    assert read_manifest(global_storage) == {"acme.tool": {"version": "1.0.0", "mode": "global"}}
    assert host.called("uninstall") == []
    assert not (global_storage.parent / "state.vscdb").exists()


def test_uninstall_dropped_extension(global_storage: Path) -> None:
    host = FakeHost(enabled={"acme.old": "1.0.0", "acme.kept": "2.0.0"})
    write_manifest(
        global_storage,
        {
            "acme.old": {"version": "1.0.0", "mode": "global"},
            "acme.kept": {"version": "2.0.0", "mode": "global"},
        },
    )

    manager = ExtensionManager(host, global_storage)
    manager.load()
    manager.start_session()
    manager.set_installed("acme.kept", "2.0.0", ManagerMode.GLOBAL)
    action = manager.save(RestartMode.AUTO)

    assert host.called("uninstall") == ["acme.old"]
    assert action is RestartAction.RELOAD_WINDOW
    assert host.called("reload_window") == [""]
    assert list(read_manifest(global_storage)) == ["acme.kept"]


def test_disabled_extensions_are_written_in_one_batch(host: FakeHost, global_storage: Path) -> None:
    manager = ExtensionManager(host, global_storage)
    manager.load()
    manager.start_session()
    manager.add_installed("acme.one", "1.0.0", False, ManagerMode.GLOBAL)
    manager.add_installed("acme.two", "1.0.0", False, ManagerMode.GLOBAL)
    action = manager.save(RestartMode.AUTO)

    assert read_disabled(global_storage.parent / "state.vscdb") == ["acme.one", "acme.two"]
    assert action is RestartAction.RESTART_APP
    assert host.called("disable") == []


def test_user_disabled_extensions_are_preserved(global_storage: Path) -> None:
    host = FakeHost(disabled={"other.ext": "1.0.0"}, builtin_disabled=["vscode.git"])
    manager = ExtensionManager(host, global_storage)
    manager.load()
    manager.start_session()
    manager.add_installed("acme.tool", "1.0.0", False, ManagerMode.GLOBAL)
    manager.save(RestartMode.NONE)

    assert read_disabled(global_storage.parent / "state.vscdb") == ["vscode.git", "other.ext", "acme.tool"]


def test_repeated_run_does_not_rewrite_or_restart(global_storage: Path) -> None:
    state_db = global_storage.parent / "state.vscdb"
    write_manifest(global_storage, {"acme.tool": {"version": "1.0.0", "mode": "global"}})
    write_disabled(state_db, ["acme.tool"])
    host = FakeHost(disabled={"acme.tool": "1.0.0"})

    manager = ExtensionManager(host, global_storage)
    manager.load()
    manager.start_session()
    manager.set_installed("acme.tool", "1.0.0", ManagerMode.GLOBAL)
    manager.disable("acme.tool", ManagerMode.GLOBAL)
    action = manager.save(RestartMode.AUTO)

    assert action is None
    assert host.calls == []
    assert read_disabled(state_db) == ["acme.tool"]


def test_reenabling_forces_a_disabled_list_rewrite(global_storage: Path) -> None:
    state_db = global_storage.parent / "state.vscdb"
    write_manifest(global_storage, {"acme.tool": {"version": "1.0.0", "mode": "global"}})
    write_disabled(state_db, ["acme.tool"])
    host = FakeHost(disabled={"acme.tool": "1.0.0"})

    manager = ExtensionManager(host, global_storage)
    manager.load()
    manager.start_session()
    manager.set_installed("acme.tool", "1.0.0", ManagerMode.GLOBAL)
    manager.enable("acme.tool", ManagerMode.GLOBAL)
    action = manager.save(RestartMode.AUTO)

    assert read_disabled(state_db) == []
    assert action is RestartAction.RESTART_APP


def test_toggling_host_is_called_directly(global_storage: Path) -> None:
    host = FakeHost(enabled={"acme.tool": "1.0.0"}, can_toggle=True)
    write_manifest(global_storage, {"acme.tool": {"version": "1.0.0", "mode": "global"}})

    manager = ExtensionManager(host, global_storage)
    manager.load()
    manager.start_session()
    manager.set_installed("acme.tool", "1.0.0", ManagerMode.GLOBAL)
    manager.disable("acme.tool", ManagerMode.GLOBAL)
    action = manager.save(RestartMode.AUTO)

    assert host.called("disable") == ["acme.tool"]
    assert action is None
    assert not (global_storage.parent / "state.vscdb").exists()


def test_workspace_entries_are_mirrored_disabled_globally(host: FakeHost, tmp_path: Path, global_storage: Path) -> None:
    workspace_storage = tmp_path / "project" / ".vscode" / "vsixsync"
    write_manifest(global_storage, {"acme.global": {"version": "1.0.0", "mode": "global"}})

    manager = ExtensionManager(host, global_storage, workspace_storage)
    manager.load()
    manager.start_session()
    manager.add_installed("acme.local", "1.0.0", True, ManagerMode.WORKSPACE)
    manager.save(RestartMode.NONE)

    assert read_manifest(workspace_storage) == {"acme.local": {"version": "1.0.0", "mode": "workspace"}}
    assert read_manifest(global_storage) == {
        "acme.global": {"version": "1.0.0", "mode": "global"},
        "acme.local": {"version": "1.0.0", "mode": "workspace"},
    }
    assert read_disabled(global_storage.parent / "state.vscdb") == ["acme.local"]
    assert host.called("uninstall") == []
    assert manager.owner("acme.local") is ManagerMode.WORKSPACE
    assert manager.owner("acme.global") is ManagerMode.GLOBAL
    assert manager.owner("acme.absent") is None


def test_workspace_run_retires_entries_it_no_longer_wants(host: FakeHost, tmp_path: Path, global_storage: Path) -> None:
    workspace_storage = tmp_path / "project" / ".vscode" / "vsixsync"
    write_manifest(workspace_storage, {"acme.local": {"version": "1.0.0", "mode": "workspace"}})
    write_manifest(
        global_storage,
        {
            "acme.global": {"version": "1.0.0", "mode": "global"},
            "acme.local": {"version": "1.0.0", "mode": "workspace"},
        },
    )
    write_disabled(global_storage.parent / "state.vscdb", ["acme.local"])

    manager = ExtensionManager(host, global_storage, workspace_storage)
    manager.load()
    manager.start_session()
    assert manager.pending_removals() == ["acme.local"]
    manager.save(RestartMode.NONE)

    assert host.called("uninstall") == ["acme.local"]
    assert read_manifest(workspace_storage) == {}
    assert read_manifest(global_storage) == {"acme.global": {"version": "1.0.0", "mode": "global"}}
    assert read_disabled(global_storage.parent / "state.vscdb") == []


def test_workspace_run_keeps_globally_owned_entries(host: FakeHost, tmp_path: Path, global_storage: Path) -> None:
    workspace_storage = tmp_path / "project" / ".vscode" / "vsixsync"
    write_manifest(workspace_storage, {"acme.tool": {"version": "1.0.0", "mode": "workspace"}})
    # A later global run took the extension over
    write_manifest(global_storage, {"acme.tool": {"version": "1.0.0", "mode": "global"}})

    manager = ExtensionManager(host, global_storage, workspace_storage)
    manager.load()
    manager.start_session()
    assert manager.pending_removals() == []
    manager.save(RestartMode.NONE)

    assert host.called("uninstall") == []
    assert read_manifest(global_storage) == {"acme.tool": {"version": "1.0.0", "mode": "global"}}


def test_failed_uninstall_does_not_stop_the_commit(global_storage: Path) -> None:
    host = FakeHost(enabled={"acme.a": "1.0.0", "acme.b": "1.0.0", "acme.kept": "1.0.0"})
    host.fail_uninstall.add("acme.a")
    write_manifest(
        global_storage,
        {
            "acme.a": {"version": "1.0.0", "mode": "global"},
            "acme.b": {"version": "1.0.0", "mode": "global"},
            "acme.kept": {"version": "1.0.0", "mode": "global"},
        },
    )

    manager = ExtensionManager(host, global_storage)
    manager.load()
    manager.start_session()
    manager.set_installed("acme.kept", "1.0.0", ManagerMode.GLOBAL)
    action = manager.save(RestartMode.AUTO)

    assert host.called("uninstall") == ["acme.a", "acme.b"]
    assert action is RestartAction.RELOAD_WINDOW
    assert list(read_manifest(global_storage)) == ["acme.kept"]


def test_failed_disabled_write_aborts_the_commit(host: FakeHost, global_storage: Path) -> None:
    # A directory where the settings store should be cannot be opened
    (global_storage.parent / "state.vscdb").mkdir(parents=True)

    manager = ExtensionManager(host, global_storage)
    manager.load()
    manager.start_session()
    manager.add_installed("acme.tool", "1.0.0", False, ManagerMode.GLOBAL)

    with pytest.raises(StateDBError):
        manager.save(RestartMode.AUTO)

    assert not (global_storage / "extensions.json").exists()
    assert host.calls == []


def test_mutations_require_a_session(host: FakeHost, global_storage: Path) -> None:
    manager = ExtensionManager(host, global_storage)
    manager.load()

    with pytest.raises(SessionError):
        manager.add_installed("acme.tool", "1.0.0", True, ManagerMode.GLOBAL)

    # Recording a version outside a session is ignored
    manager.set_installed("acme.tool", "1.0.0", ManagerMode.GLOBAL)
    assert manager.list_installed() == []


def test_session_filter_carries_entries(global_storage: Path, host: FakeHost) -> None:
    write_manifest(
        global_storage,
        {
            "acme.global": {"version": "1.0.0", "mode": "global"},
            "acme.local": {"version": "1.0.0", "mode": "workspace"},
        },
    )
    manager = ExtensionManager(host, global_storage)
    manager.load()
    manager.start_session(lambda state: state.mode is ManagerMode.WORKSPACE)
    manager.save(RestartMode.NONE)

    assert host.called("uninstall") == ["acme.global"]
    assert list(read_manifest(global_storage)) == ["acme.local"]


def test_corrupt_manifest_raises(host: FakeHost, global_storage: Path) -> None:
    global_storage.mkdir(parents=True)
    (global_storage / "extensions.json").write_text("{not json")

    with pytest.raises(ManifestError):
        ExtensionManager(host, global_storage).load()


def test_legacy_manifest_is_read(host: FakeHost, global_storage: Path) -> None:
    global_storage.mkdir(parents=True)
    (global_storage / "extensions.json").write_text(json.dumps({"acme.tool": "1.2.3"}))

    manager = ExtensionManager(host, global_storage)
    manager.load()

    assert manager.get_current_version("acme.tool") == "1.2.3"
    assert manager.is_managed("acme.tool", ManagerMode.GLOBAL)


@pytest.mark.parametrize(
    "mode, restart, reload, expected",
    [
        (RestartMode.AUTO, True, False, RestartAction.RESTART_APP),
        (RestartMode.AUTO, False, True, RestartAction.RELOAD_WINDOW),
        (RestartMode.AUTO, False, False, None),
        (RestartMode.NONE, True, True, None),
        (RestartMode.RELOAD_WINDOWS, True, False, RestartAction.RELOAD_WINDOW),
        (RestartMode.RESTART_APP, False, True, RestartAction.RESTART_APP),
        (RestartMode.RESTART_HOST, True, False, RestartAction.RESTART_EXTENSION_HOST),
        (RestartMode.RESTART_HOST, False, False, None),
    ],
)
def test_resolve_restart_action(mode, restart, reload, expected) -> None:
    assert resolve_restart_action(mode, restart, reload) is expected
