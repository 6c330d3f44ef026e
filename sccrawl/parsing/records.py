"""
SC Crawl - Neighbor Records.

Path: sccrawl/parsing/records.py

Maps template rows onto NeighborRecord. CDP and LLDP templates name
their columns differently (DEVICE_ID vs SYSTEM_NAME, PORT_ID vs
NEIGHBOR_INTERFACE, ...); the alias lists below cover the shipped
templates and the common ntc-templates spellings.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional


class NeighborProtocol(str, Enum):
    """Neighbor discovery protocol."""
    CDP = "cdp"
    LLDP = "lldp"
    UNKNOWN = "unknown"


NEIGHBOR_NAME_FIELDS = ('NEIGHBOR_NAME', 'DEVICE_ID', 'NEIGHBOR', 'SYSTEM_NAME',
                        'DESTINATION_HOST', 'CHASSIS_ID')
LOCAL_INTERFACE_FIELDS = ('LOCAL_INTERFACE', 'LOCAL_PORT')
NEIGHBOR_INTERFACE_FIELDS = ('NEIGHBOR_INTERFACE', 'NEIGHBOR_PORT_ID', 'PORT_ID', 'REMOTE_PORT')
MGMT_ADDRESS_FIELDS = ('MGMT_ADDRESS', 'MANAGEMENT_IP', 'MGMT_IP', 'IP_ADDRESS')
PLATFORM_FIELDS = ('PLATFORM', 'NEIGHBOR_DESCRIPTION', 'SYSTEM_DESCRIPTION')
CAPABILITIES_FIELDS = ('CAPABILITIES', 'SYSTEM_CAPABILITIES')

_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')


@dataclass
class NeighborRecord:
    """
    One neighbor row in protocol-neutral form.

    ``raw`` keeps the template row as produced, for debugging and for
    callers that want columns this mapping does not know about.
    """
    neighbor_name: str
    local_interface: str = ""
    neighbor_interface: str = ""
    mgmt_address: Optional[str] = None
    platform: Optional[str] = None
    capabilities: Optional[str] = None
    protocol: NeighborProtocol = NeighborProtocol.UNKNOWN
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'neighbor_name': self.neighbor_name,
            'local_interface': self.local_interface,
            'neighbor_interface': self.neighbor_interface,
            'mgmt_address': self.mgmt_address,
            'platform': self.platform,
            'capabilities': self.capabilities,
            'protocol': self.protocol.value,
        }


def protocol_for_command(command: str) -> NeighborProtocol:
    """Derive the protocol from the command text."""
    lowered = (command or '').lower()
    if 'cdp' in lowered:
        return NeighborProtocol.CDP
    if 'lldp' in lowered:
        return NeighborProtocol.LLDP
    return NeighborProtocol.UNKNOWN


def clean_value(value: Any) -> str:
    """Strip control characters and surrounding whitespace."""
    if value is None:
        return ""
    if isinstance(value, list):
        value = value[0] if value else ""
    return _CONTROL_CHARS.sub('', str(value)).strip()


def _first(row: Dict[str, Any], names: Iterable[str]) -> str:
    for name in names:
        value = clean_value(row.get(name))
        if value:
            return value
    return ""


def row_to_neighbor(row: Dict[str, Any], protocol: NeighborProtocol) -> Optional[NeighborRecord]:
    """
    Convert one template row into a NeighborRecord.

    Returns None when the row has no usable neighbor identity.
    """
    name = _first(row, NEIGHBOR_NAME_FIELDS)
    mgmt = _first(row, MGMT_ADDRESS_FIELDS)
    if not name and not mgmt:
        return None

    return NeighborRecord(
        neighbor_name=name or mgmt,
        local_interface=_first(row, LOCAL_INTERFACE_FIELDS),
        neighbor_interface=_first(row, NEIGHBOR_INTERFACE_FIELDS),
        mgmt_address=mgmt or None,
        platform=_first(row, PLATFORM_FIELDS) or None,
        capabilities=_first(row, CAPABILITIES_FIELDS) or None,
        protocol=protocol,
        raw=dict(row),
    )


def rows_to_neighbors(rows: Iterable[Dict[str, Any]],
                      protocol: NeighborProtocol) -> List[NeighborRecord]:
    records = []
    for row in rows:
        record = row_to_neighbor(row, protocol)
        if record is not None:
            records.append(record)
    return records
