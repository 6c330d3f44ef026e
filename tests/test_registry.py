from __future__ import annotations

from pathlib import Path

import pytest

from sccrawl.exceptions import TemplateLoadError
from sccrawl.parsing import ParseMethod, TemplateRegistry, normalize_command

GOOD = (
    "Value Required NEIGHBOR_NAME (\\S+)\n"
    "\n"
    "Start\n"
    "  ^Device ID:\\s*${NEIGHBOR_NAME} -> Record\n"
)

BROKEN = (
    "Value NEIGHBOR_NAME \\S+\n"
    "\n"
    "Start\n"
    "  ^Device ID:\\s*${NEIGHBOR_NAME}\n"
)


def test_shipped_templates_load() -> None:
    registry = TemplateRegistry.load()

    assert len(registry) >= 6
    assert registry.errors == []
    assert "show cdp neighbors detail" in registry.commands
    assert "show lldp neighbors detail" in registry.commands


def test_templates_for_keeps_index_order() -> None:
    registry = TemplateRegistry.load()

    cdp = registry.templates_for("show cdp neighbors detail")
    assert [t.name for t in cdp] == [
        "cisco_nxos_show_cdp_neighbors_detail",
        "cisco_ios_show_cdp_neighbors_detail",
        "cdp_detail_regex",
    ]
    assert [t.method for t in cdp] == [
        ParseMethod.STATE_MACHINE,
        ParseMethod.STATE_MACHINE,
        ParseMethod.REGEX,
    ]

    regex_only = registry.templates_for("SHOW LLDP NEIGHBORS DETAIL", ParseMethod.REGEX)
    assert [t.name for t in regex_only] == ["lldp_detail_regex"]
    assert registry.templates_for("show version") == []


def test_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(TemplateLoadError):
        TemplateRegistry.load(tmp_path / "nope")


def test_missing_index(tmp_path: Path) -> None:
    with pytest.raises(TemplateLoadError):
        TemplateRegistry.load(tmp_path)


def test_index_must_be_mapping(tmp_path: Path) -> None:
    (tmp_path / "index.yaml").write_text("- just\n- a list\n")

    with pytest.raises(TemplateLoadError):
        TemplateRegistry.load(tmp_path)


def test_broken_template_is_collected(tmp_path: Path) -> None:
    (tmp_path / "good.textfsm").write_text(GOOD)
    (tmp_path / "broken.textfsm").write_text(BROKEN)
    (tmp_path / "index.yaml").write_text(
        "state_machine:\n"
        "  - template: broken.textfsm\n"
        "    commands: [show cdp neighbors detail]\n"
        "  - template: missing.textfsm\n"
        "    commands: [show cdp neighbors detail]\n"
        "  - template: good.textfsm\n"
        "    commands: [show cdp neighbors detail]\n"
        "regex:\n"
        "  - name: no_groups\n"
        "    commands: [show cdp neighbors detail]\n"
        "    rules: ['^Device ID']\n"
    )

    registry = TemplateRegistry.load(tmp_path)

    assert [t.name for t in registry.templates] == ["good"]
    assert len(registry.errors) == 3
    assert registry.source == tmp_path


def test_nothing_loadable_raises_with_errors(tmp_path: Path) -> None:
    (tmp_path / "broken.textfsm").write_text(BROKEN)
    (tmp_path / "index.yaml").write_text(
        "state_machine:\n"
        "  - template: broken.textfsm\n"
        "    commands: [show cdp neighbors detail]\n"
        "  - template: good.textfsm\n"
    )

    with pytest.raises(TemplateLoadError) as excinfo:
        TemplateRegistry.load(tmp_path)

    assert len(excinfo.value.errors) == 2


def test_regex_file_entries(tmp_path: Path) -> None:
    (tmp_path / "fallbacks.yaml").write_text(
        "- name: ids\n"
        "  commands: show cdp neighbors detail\n"
        "  rules:\n"
        "    - pattern: '^Device ID:\\s*(?P<NEIGHBOR_NAME>\\S+)'\n"
        "- name: bad\n"
        "  rules: []\n"
    )
    (tmp_path / "index.yaml").write_text("regex:\n  - file: fallbacks.yaml\n")

    registry = TemplateRegistry.load(tmp_path)

    (template,) = registry.templates
    assert template.name == "ids"
    assert template.commands == ("show cdp neighbors detail",)
    assert template.run("Device ID: a\nDevice ID: b\n") == [
        {"NEIGHBOR_NAME": "a"},
        {"NEIGHBOR_NAME": "b"},
    ]
    assert len(registry.errors) == 1


def test_malformed_entries_are_collected(tmp_path: Path) -> None:
    (tmp_path / "good.textfsm").write_text(GOOD)
    (tmp_path / "scalar.yaml").write_text("42\n")
    (tmp_path / "index.yaml").write_text(
        "state_machine:\n"
        "  - 42\n"
        "  - [good.textfsm, show cdp neighbors detail]\n"
        "  - template: good.textfsm\n"
        "    commands: [show cdp neighbors detail]\n"
        "regex:\n"
        "  - 7\n"
        "  - file: scalar.yaml\n"
        "  - name: listed_fields\n"
        "    commands: [show cdp neighbors detail]\n"
        "    rules:\n"
        "      - pattern: '^Device ID:\\s*(?P<ID>\\S+)'\n"
        "        fields: [NEIGHBOR_NAME]\n"
        "  - name: numeric_commands\n"
        "    commands: [42]\n"
        "    rules: ['^Device ID:\\s*(?P<NEIGHBOR_NAME>\\S+)']\n"
    )

    registry = TemplateRegistry.load(tmp_path)

    assert [t.name for t in registry.templates] == ["good"]
    assert len(registry.errors) == 6


def test_index_sections_must_be_lists(tmp_path: Path) -> None:
    (tmp_path / "index.yaml").write_text("state_machine: 3\n")

    with pytest.raises(TemplateLoadError):
        TemplateRegistry.load(tmp_path)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("show cdp neighbors detail", "show cdp neighbors detail"),
        ("  Show   CDP\tNeighbors Detail ", "show cdp neighbors detail"),
        ("", ""),
    ],
)
def test_normalize_command(raw: str, expected: str) -> None:
    assert normalize_command(raw) == expected
