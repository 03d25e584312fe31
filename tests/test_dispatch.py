from pathlib import Path

import httpx
import pytest

from conftest import make_vsix
from extensions.aliases import AliasTable
from extensions.metadata import parse_metadata
from schemas.source import FileSystemSource, GitHubSource, LiteralGitHubSource, parse_sources
from sources import dispatch
from sources.base import ResolverContext, SearchDownloadResult, SourceError
from sources.dispatch import SourceDispatcher
from sources.github import GitHubResolver


def make_dispatcher(tmp_path: Path, sources: dict, handler=None, aliases: AliasTable | None = None) -> SourceDispatcher:
    context = ResolverContext(
        temporary_dir=tmp_path / "tmp",
        target_platform="linux-x64",
        host_version="1.90.0",
        client=httpx.Client(transport=httpx.MockTransport(handler or (lambda req: httpx.Response(500)))),
    )
    return SourceDispatcher(context, sources, aliases if aliases is not None else AliasTable(tmp_path / "aliases.json"))


def test_fallback_is_followed(tmp_path: Path) -> None:
    root = tmp_path / "vsix"
    make_vsix(root / "acme.tool-1.0.0.vsix", "acme", "tool")
    sources = parse_sources(
        {
            "gh": {"type": "github", "fallback": "local"},
            "local": {"type": "file", "path": str(root)},
        }
    )
    dispatcher = make_dispatcher(tmp_path, sources)

    (metadata,) = parse_metadata("gh:acme.tool")
    result = dispatcher.search(metadata, sources["gh"])

    assert result.version == "1.0.0"
    assert result.file == root / "acme.tool-1.0.0.vsix"


def test_fallback_cycle_stops(tmp_path: Path) -> None:
    sources = parse_sources(
        {
            "a": {"type": "file", "path": str(tmp_path / "none"), "fallback": "b"},
            "b": {"type": "file", "path": str(tmp_path / "none"), "fallback": "a"},
        }
    )
    (metadata,) = parse_metadata("a:acme.tool")
    assert make_dispatcher(tmp_path, sources).search(metadata, sources["a"]) is None


def test_unknown_fallback(tmp_path: Path) -> None:
    sources = {"a": FileSystemSource(path=str(tmp_path), fallback="missing")}
    (metadata,) = parse_metadata("a:acme.tool")
    assert make_dispatcher(tmp_path, sources).search(metadata, sources["a"]) is None


def test_literal_github_routes_to_github_resolver(tmp_path: Path) -> None:
    dispatcher = make_dispatcher(tmp_path, {})
    assert type(dispatcher.resolver_for(LiteralGitHubSource())).__name__ == "GitHubResolver"


def test_git_identity_is_learned_once(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    source = GitHubSource(owner="acme")
    aliases = AliasTable(tmp_path / "aliases.json")
    dispatcher = make_dispatcher(tmp_path, {"gh": source}, aliases=aliases)
    (metadata,) = parse_metadata("gh:tool")

    def fake_download(name: str) -> SearchDownloadResult:
        path = make_vsix(tmp_path / "tmp" / name, "acme", "tool-ext")
        return SearchDownloadResult(full_name=None, version="1.0.0", download=lambda: path)

    assert dispatcher.resolve_name(metadata, source) == "tool"

    local = dispatcher.materialize(fake_download("first.vsix"), metadata, source)
    assert local.full_name == "acme.tool-ext"
    assert local.unlink == local.file
    assert aliases.to_dict() == {"gh:tool": "acme.tool-ext"}
    assert dispatcher.resolve_name(metadata, source) == "acme.tool-ext"

    def fail(path: Path) -> str:
        raise AssertionError("identity already known")

    monkeypatch.setattr(dispatch, "extract_extension_name", fail)
    local = dispatcher.materialize(fake_download("second.vsix"), metadata, source)
    assert local.full_name == "acme.tool-ext"

    aliases.save()
    assert AliasTable.load(tmp_path / "aliases.json").get(metadata) == "acme.tool-ext"


def test_package_without_identity_raises(tmp_path: Path) -> None:
    bad = tmp_path / "bad.vsix"
    bad.write_bytes(b"not a zip")
    source = GitHubSource()
    dispatcher = make_dispatcher(tmp_path, {"gh": source})
    (metadata,) = parse_metadata("gh:acme/tool")

    result = SearchDownloadResult(full_name=None, version="1.0.0", download=lambda: bad)
    with pytest.raises(SourceError):
        dispatcher.materialize(result, metadata, source)


def test_resolver_errors_fall_through(tmp_path: Path) -> None:
    sources = parse_sources({"gh": {"type": "github"}})
    (metadata,) = parse_metadata("gh:acme/tool")
    assert make_dispatcher(tmp_path, sources).search(metadata, sources["gh"]) is None


def test_malformed_release_listing_falls_back(tmp_path: Path) -> None:
    root = tmp_path / "vsix"
    make_vsix(root / "tool-1.0.0.vsix", "acme", "tool")
    sources = parse_sources(
        {
            "gh": {"type": "github", "owner": "acme", "fallback": "local"},
            "local": {"type": "file", "path": str(root)},
        }
    )
    # The asset carries no download URL
    releases = [{"tag_name": "v2.0.0", "assets": [{"name": "tool-2.0.0.vsix"}]}]
    dispatcher = make_dispatcher(tmp_path, sources, lambda req: httpx.Response(200, json=releases))

    (metadata,) = parse_metadata("gh:tool")
    result = dispatcher.search(metadata, sources["gh"])

    assert result.version == "1.0.0"
    assert result.file == root / "tool-1.0.0.vsix"


def test_unexpected_resolver_error_falls_back(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    root = tmp_path / "vsix"
    make_vsix(root / "acme.tool-1.0.0.vsix", "acme", "tool")
    sources = parse_sources(
        {
            "gh": {"type": "github", "fallback": "local"},
            "local": {"type": "file", "path": str(root)},
        }
    )

    def broken(self, metadata, source):
        raise KeyError("browser_download_url")

    monkeypatch.setattr(GitHubResolver, "search", broken)

    (metadata,) = parse_metadata("gh:acme.tool")
    assert make_dispatcher(tmp_path, sources).search(metadata, sources["gh"]).version == "1.0.0"
