import pytest

from sources import versions
from sources.assets import AssetCandidate, parse_asset_name, select_asset


@pytest.mark.parametrize(
    "file_name, name, platform, version",
    [
        ("acme.tool-1.2.3.vsix", "acme.tool", None, "1.2.3"),
        ("acme.tool-linux-x64-1.2.3.vsix", "acme.tool", "linux-x64", "1.2.3"),
        ("acme.tool-universal-1.2.3.vsix", "acme.tool", "universal", "1.2.3"),
        ("acme-tool-darwin-arm64.vsix", "acme-tool", "darwin-arm64", None),
        ("acme-tool.vsix", "acme-tool", None, None),
    ],
)
def test_parse_asset_name(file_name, name, platform, version) -> None:
    parsed = parse_asset_name(file_name)
    assert parsed is not None
    assert (parsed.name, parsed.platform, parsed.version) == (name, platform, version)


def test_parse_asset_name_ignores_other_files() -> None:
    assert parse_asset_name("acme.tool-1.2.3.zip") is None


def candidate(version: str, platform: str | None = None, name: str = "acme.tool") -> AssetCandidate[str]:
    return AssetCandidate(name=name, version=version, platform=platform, ref=f"{name}-{platform}-{version}")


def test_highest_version_wins() -> None:
    best = select_asset([candidate("1.0.0"), candidate("2.0.0"), candidate("1.5.0")], "linux-x64")
    assert best.version == "2.0.0"


def test_target_version_requires_exact_match() -> None:
    candidates = [candidate("1.0.0"), candidate("2.0.0")]
    assert select_asset(candidates, "linux-x64", target_version="1.0.0").version == "1.0.0"
    assert select_asset(candidates, "linux-x64", target_version="3.0.0") is None


def test_universal_preferred_at_equal_version() -> None:
    specific = candidate("1.0.0", "linux-x64")
    universal = candidate("1.0.0", "universal")

    assert select_asset([specific, universal], "linux-x64") is universal
    assert select_asset([universal, specific], "linux-x64") is universal


def test_incompatible_platforms_are_skipped() -> None:
    best = select_asset([candidate("2.0.0", "win32-x64"), candidate("1.0.0", "linux-x64")], "linux-x64")
    assert best.version == "1.0.0"


def test_first_candidate_fixes_the_name() -> None:
    best = select_asset([candidate("1.0.0", name="a"), candidate("9.0.0", name="b")], "linux-x64")
    assert best.name == "a"


def test_version_comparison() -> None:
    assert versions.gt("1.10.0", "1.9.0")
    assert versions.gt("1.0.0", "1.0.0-beta.1")
    assert versions.eq("v1.2.3", "1.2.3")
    assert not versions.is_valid("1.2")


@pytest.mark.parametrize(
    "host_version, engine, expected",
    [
        ("1.90.0", "^1.80.0", True),
        ("1.70.0", "^1.80.0", False),
        ("1.80.0-insider", "^1.80.0", True),
        ("1.90.0", None, True),
        ("", "^1.80.0", True),
        ("1.90.0", "*", True),
    ],
)
def test_engine_minimum(host_version, engine, expected) -> None:
    assert versions.satisfies_minimum(host_version, engine) is expected
