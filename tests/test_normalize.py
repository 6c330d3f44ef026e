from __future__ import annotations

import pytest

from sccrawl.discovery.models import edge_key
from sccrawl.discovery.normalize import (
    InterfaceNormalizer,
    expand_patterns,
    extract_hostname,
    is_ip_address,
    is_mac_address,
    normalize_identifier,
    should_exclude,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Gi0/1", "GigabitEthernet0/1"),
        ("gig1/0/24", "GigabitEthernet1/0/24"),
        ("GigabitEthernet0/1", "GigabitEthernet0/1"),
        ("Te1/1/1", "TenGigabitEthernet1/1/1"),
        ("Et1", "Ethernet1"),
        ("Eth1/49", "Ethernet1/49"),
        ("Po10", "Port-channel10"),
        ("Fa0/1", "FastEthernet0/1"),
        ("mgmt0", "Management0"),
        ("eth0", "Ethernet0"),
        ("xe-0/0/1", "xe-0/0/1"),
        ("Port 1", "Port 1"),
        ("", ""),
        (None, ""),
    ],
)
def test_interface_normalize(raw, expected: str) -> None:
    assert InterfaceNormalizer.normalize(raw) == expected


def test_interface_key_ignores_case_and_abbreviation() -> None:
    assert InterfaceNormalizer.key("gi0/1") == InterfaceNormalizer.key("GigabitEthernet0/1")


def test_edge_key_is_direction_independent() -> None:
    assert edge_key("a", "Gi0/1", "b", "Gi0/2") == edge_key("b", "GigabitEthernet0/2", "a", "gi0/1")
    assert edge_key("a", "Gi0/1", "b", "Gi0/2") != edge_key("a", "Gi0/1", "b", "Gi0/3")


@pytest.mark.parametrize(
    "value",
    ["0011.2233.4455", "00:11:22:33:44:55", "00-11-22-33-44-55", "001122334455"],
)
def test_mac_addresses(value: str) -> None:
    assert is_mac_address(value)


@pytest.mark.parametrize("value", ["sw1", "10.0.0.1", "", "0011.2233"])
def test_not_mac_addresses(value: str) -> None:
    assert not is_mac_address(value)


def test_ip_addresses() -> None:
    assert is_ip_address("10.0.0.1")
    assert is_ip_address("2001:db8::1")
    assert not is_ip_address("10.0.0.256")
    assert not is_ip_address("sw1")
    assert not is_ip_address("")


def test_normalize_identifier() -> None:
    assert normalize_identifier(" SW1.Example.COM. ") == "sw1.example.com"
    assert normalize_identifier(None) == ""


@pytest.mark.parametrize(
    ("name", "domains", "expected"),
    [
        ("switch01.example.com", "example.com", "switch01"),
        ("switch01.EXAMPLE.com", ["lab.local", ".example.com"], "switch01"),
        ("switch01.other.net", ["example.com"], "switch01.other.net"),
        ("leaf-02(FDO1234X)", None, "leaf-02"),
        ("", ["example.com"], ""),
    ],
)
def test_extract_hostname(name: str, domains, expected: str) -> None:
    assert extract_hostname(name, domains) == expected


def test_should_exclude() -> None:
    assert should_exclude(["SEP001122334455"], ["sep,ap-"]) == (True, "sep")
    assert should_exclude(["ap-lobby-01", None], ["sep", "ap-"]) == (True, "ap-")
    assert should_exclude(["core1"], ["sep,ap-"]) == (False, "")
    assert should_exclude(["core1"], []) == (False, "")


def test_expand_patterns() -> None:
    assert expand_patterns(["a, b", "c", " "]) == ["a", "b", "c"]
