from __future__ import annotations

from pathlib import Path

import pytest

from sccrawl.config import (
    DEFAULT_COMMANDS,
    DiscoveryOptions,
    EdgeTieBreak,
    build_options,
    load_config,
)
from sccrawl.exceptions import ConfigError


def test_defaults() -> None:
    options = build_options()

    assert options.max_hops == 4
    assert options.commands == DEFAULT_COMMANDS
    assert options.edge_tie_break is EdgeTieBreak.MERGE
    assert options.domains == []
    assert not options.legacy_mode


def test_precedence_defaults_yaml_flags() -> None:
    options = build_options(
        {"max_hops": 2, "command_timeout": 45, "domains": ["example.com"]},
        {"max_hops": 6, "domains": None, "legacy_mode": None},
    )

    assert options.max_hops == 6
    assert options.command_timeout == 45.0
    assert options.domains == ["example.com"]
    assert options.legacy_mode is False


def test_yaml_short_keys() -> None:
    options = build_options({"exclude": "sep, ap-", "domain": "example.com"})

    assert options.exclude_patterns == ["sep", "ap-"]
    assert options.domains == ["example.com"]


def test_tie_break_from_string() -> None:
    assert build_options({"edge_tie_break": "PREFER_LLDP"}).edge_tie_break is EdgeTieBreak.PREFER_LLDP


@pytest.mark.parametrize(
    "values",
    [
        {"edge_tie_break": "coin_flip"},
        {"max_hops": -1},
        {"max_hops": "many"},
        {"port": 0},
        {"connect_timeout": 0},
        {"commands": []},
        {"domains": 5},
    ],
)
def test_invalid_values(values: dict) -> None:
    with pytest.raises(ConfigError):
        build_options(values)


def test_unknown_keys_are_ignored(caplog: pytest.LogCaptureFixture) -> None:
    options = DiscoveryOptions.from_dict({"max_hops": 1, "colour": "blue", "credentials": []})

    assert options.max_hops == 1
    assert "colour" in caplog.text
    assert "credentials" not in caplog.text


def test_to_dict_round_trips_enum() -> None:
    data = DiscoveryOptions(edge_tie_break=EdgeTieBreak.PREFER_CDP).to_dict()

    assert data["edge_tie_break"] == "prefer_cdp"
    assert DiscoveryOptions.from_dict(data).edge_tie_break is EdgeTieBreak.PREFER_CDP


def test_load_config(tmp_path: Path) -> None:
    path = tmp_path / "lab.yaml"
    path.write_text("max_hops: 3\nexclude: sep\n")

    assert load_config(path) == {"max_hops": 3, "exclude": "sep"}


def test_load_config_errors(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yaml")

    broken = tmp_path / "broken.yaml"
    broken.write_text("max_hops: [1,\n")
    with pytest.raises(ConfigError):
        load_config(broken)

    listing = tmp_path / "list.yaml"
    listing.write_text("- 1\n- 2\n")
    with pytest.raises(ConfigError):
        load_config(listing)

    empty = tmp_path / "empty.yaml"
    empty.write_text("")
    assert load_config(empty) == {}
