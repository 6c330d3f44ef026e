"""
SC Crawl - Name Normalization.

Interface names, hostnames and identifiers arrive in whatever form each
platform prints them: "Gi0/1" from LLDP, "GigabitEthernet0/1" from CDP,
"sw1.example.com" from one neighbor and "SW1" from another. Everything
that is compared or used as a key goes through this module first.
"""

import ipaddress
import re
from typing import Iterable, List, Optional, Tuple, Union

# Cisco format: 00cc.344b.b47e
# Standard formats: 00:cc:34:4b:b4:7e or 00-cc-34-4b-b4-7e
MAC_PATTERN = re.compile(
    r'^([0-9a-fA-F]{2}[:\-.]?){5}[0-9a-fA-F]{2}$|^([0-9a-fA-F]{4}\.){2}[0-9a-fA-F]{4}$'
)

_INTERFACE_SPLIT = re.compile(r'^([A-Za-z][A-Za-z\-]*?)\s*(\d.*)$')


class InterfaceNormalizer:
    """
    Expand interface abbreviations to one canonical long form.

    Matching is on the alphabetic prefix, case-insensitive:
        >>> InterfaceNormalizer.normalize("gi0/1")
        'GigabitEthernet0/1'
        >>> InterfaceNormalizer.normalize("Et1")
        'Ethernet1'
    """

    STANDARD_INTERFACES = {
        'GigabitEthernet': ('gi', 'gig', 'gige', 'gigabitethernet'),
        'TenGigabitEthernet': ('te', 'ten', 'tengig', 'tengige', 'tengigabitethernet'),
        'TwentyFiveGigE': ('twe', 'twentyfivegige', 'twentyfivegigabitethernet'),
        'FortyGigabitEthernet': ('fo', 'fortygige', 'fortygigabitethernet'),
        'HundredGigE': ('hu', 'hundredgige', 'hundredgigabitethernet'),
        'FastEthernet': ('fa', 'fastethernet'),
        'Ethernet': ('e', 'et', 'eth', 'ethernet'),
        'Port-channel': ('po', 'port-channel', 'portchannel'),
        'Vlan': ('vl', 'vlan'),
        'Loopback': ('lo', 'loopback'),
        'Management': ('ma', 'mgmt', 'management'),
        'Tunnel': ('tu', 'tunnel'),
    }

    _LOOKUP = {
        alias: full
        for full, aliases in STANDARD_INTERFACES.items()
        for alias in aliases
    }

    @classmethod
    def normalize(cls, interface: Optional[str]) -> str:
        if not interface:
            return ""

        interface = interface.strip()
        match = _INTERFACE_SPLIT.match(interface)
        if not match:
            return interface

        prefix, rest = match.groups()
        full = cls._LOOKUP.get(prefix.lower())
        if not full:
            return interface
        return f"{full}{rest}"

    @classmethod
    def key(cls, interface: Optional[str]) -> str:
        """Comparison key: normalized and lowercased."""
        return cls.normalize(interface).lower()


def is_mac_address(value: str) -> bool:
    """Check if string looks like a MAC address."""
    if not value:
        return False
    return bool(MAC_PATTERN.match(value))


def is_ip_address(value: str) -> bool:
    """Check if string is an IPv4 or IPv6 address literal."""
    if not value:
        return False
    try:
        ipaddress.ip_address(value.strip())
        return True
    except ValueError:
        return False


def normalize_identifier(identifier: Optional[str]) -> str:
    """
    Normalize an identifier for deduplication.

    - Lowercase
    - Strip trailing dots (FQDN normalization)
    """
    if not identifier:
        return ""
    return identifier.strip().lower().rstrip('.')


def short_hostname(name: Optional[str]) -> str:
    """First label of a hostname: 'core1.lab.local' -> 'core1'. IPs come back unchanged."""
    name = normalize_identifier(name)
    if not name or is_ip_address(name):
        return name
    return name.split('.', 1)[0]


def extract_hostname(system_name: Optional[str], domains: Union[str, Iterable[str], None] = None) -> str:
    """
    Extract base hostname from a neighbor name or prompt.

    Drops an NX-OS style "(serial)" suffix, then strips the first
    matching domain suffix.

    Examples:
        >>> extract_hostname('switch01.example.com', 'example.com')
        'switch01'
        >>> extract_hostname('leaf-02(FDO1234X)')
        'leaf-02'
    """
    if not system_name:
        return ""

    name = system_name.strip()
    if '(' in name and not name.startswith('('):
        name = name.split('(', 1)[0]

    if isinstance(domains, str):
        domains = [domains]

    for domain in domains or []:
        domain_suffix = f".{domain.strip('.')}"
        if name.lower().endswith(domain_suffix.lower()):
            return name[:-len(domain_suffix)]

    return name


def expand_patterns(patterns: Iterable[str]) -> List[str]:
    """Expand comma-separated pattern strings: ["a,b", "c"] -> ["a", "b", "c"]."""
    expanded = []
    for p in patterns or []:
        expanded.extend(part.strip() for part in p.split(',') if part.strip())
    return expanded


def should_exclude(names: Iterable[Optional[str]], exclude_patterns: Iterable[str]) -> Tuple[bool, str]:
    """
    Case-insensitive substring match of any name against any pattern.

    Returns:
        (should_exclude, matching_pattern)
    """
    check_fields = [n.lower() for n in names if n]
    for pattern in expand_patterns(exclude_patterns):
        pattern_lower = pattern.lower()
        for field in check_fields:
            if pattern_lower in field:
                return True, pattern
    return False, ""
