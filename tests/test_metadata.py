from extensions.metadata import Metadata, MetadataKind, parse_metadata


def test_plain_extension() -> None:
    assert parse_metadata("acme.tool") == [Metadata(MetadataKind.EXTENSION, "acme.tool")]


def test_pinned_and_disabled() -> None:
    (metadata,) = parse_metadata("-acme.tool@1.2.3")
    assert metadata.full_name == "acme.tool"
    assert metadata.target_version == "1.2.3"
    assert metadata.enabled is False
    assert metadata.source is None


def test_sourced_request_with_asset_name() -> None:
    (metadata,) = parse_metadata("gh:acme/tool!tool-ext@2.0.0")
    assert metadata.source == "gh"
    assert metadata.full_name == "acme/tool"
    assert metadata.target_name == "tool-ext"
    assert metadata.target_version == "2.0.0"
    assert str(metadata) == "gh:acme/tool!tool-ext@2.0.0"


def test_group_name() -> None:
    (metadata,) = parse_metadata("web")
    assert metadata.is_group
    assert metadata.full_name == "web"


def test_alternatives_share_the_disabled_prefix() -> None:
    alternatives = parse_metadata("-acme.tool || vsx:acme.tool")
    assert [str(m) for m in alternatives] == ["-acme.tool", "-vsx:acme.tool"]


def test_object_form() -> None:
    alternatives = parse_metadata({"id": ["vsx:acme.tool", "acme.tool"], "enabled": False})
    assert [(m.source, m.enabled) for m in alternatives] == [("vsx", False), (None, False)]

    (metadata,) = parse_metadata({"id": "acme.tool"})
    assert metadata.enabled is True


def test_list_form_and_invalid_entries() -> None:
    assert len(parse_metadata(["acme.one", "acme.two", 3])) == 2
    assert parse_metadata("") == []
    assert parse_metadata({"enabled": True}) == []
    assert parse_metadata(42) == []
