"""
SC Crawl - Discovery Data Models.

Dataclasses for crawl results: the devices met during a run, the links
between them, and the per-device failures. Serializable to JSON for
export.

Design Principles:
- Devices keyed by canonical id (management IP, or normalized hostname)
- Edges deduplicated by a key built from both normalized endpoints
- Failures are values on the result, never exceptions
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Set, Tuple
import json

from ..config import EdgeTieBreak
from ..parsing.records import NeighborProtocol, NeighborRecord
from .normalize import InterfaceNormalizer

SEED_MARKER = "seed"

EdgeKey = Tuple[Tuple[str, str], Tuple[str, str]]


class DeviceStatus(str, Enum):
    """Lifecycle of a device within one crawl."""
    PENDING = "pending"
    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"
    VISITED = "visited"
    FAILED = "failed"


class ErrorKind(str, Enum):
    """Per-device failure categories."""
    UNREACHABLE_HOST = "UnreachableHost"
    AUTH_EXHAUSTED = "AuthExhausted"
    COMMAND_TIMEOUT = "CommandTimeout"
    COMMAND_ERROR = "CommandError"
    PARSE_TEMPLATE_ERROR = "ParseTemplateError"
    TEMPLATE_LOAD_ERROR = "TemplateLoadError"
    DISCOVERY_ERROR = "DiscoveryError"


@dataclass
class DiscoveredDevice:
    """
    A device referenced during the crawl.

    Created on first reference (seed or neighbor report) and updated
    while it is visited. Never removed during a run.
    """
    canonical_id: str
    hostname: Optional[str] = None
    platform: Optional[str] = None
    management_address: Optional[str] = None
    hop_distance: int = 0
    status: DeviceStatus = DeviceStatus.PENDING
    discovered_via: str = SEED_MARKER
    credential_used: Optional[str] = None
    capabilities: Optional[str] = None
    aliases: Set[str] = field(default_factory=set)
    errors: List[str] = field(default_factory=list)
    visited_at: Optional[datetime] = None
    duration_ms: Optional[float] = None

    @property
    def is_seed(self) -> bool:
        return self.discovered_via == SEED_MARKER

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'canonical_id': self.canonical_id,
            'hostname': self.hostname,
            'platform': self.platform,
            'management_address': self.management_address,
            'hop_distance': self.hop_distance,
            'status': self.status.value,
            'discovered_via': self.discovered_via,
            'credential_used': self.credential_used,
            'capabilities': self.capabilities,
            'aliases': sorted(self.aliases),
            'errors': self.errors,
            'visited_at': self.visited_at.isoformat() if self.visited_at else None,
            'duration_ms': self.duration_ms,
        }


@dataclass
class NeighborEdge:
    """
    A link between two devices.

    ``key`` sorts the two (device, normalized interface) endpoints so the
    same physical link reported from either side, or by both CDP and
    LLDP, lands on one edge.
    """
    local_device_id: str
    local_interface: str
    remote_device_id: str
    remote_interface: str
    protocols: Set[NeighborProtocol] = field(default_factory=set)

    @property
    def key(self) -> EdgeKey:
        return edge_key(
            self.local_device_id, self.local_interface,
            self.remote_device_id, self.remote_interface,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'local_device_id': self.local_device_id,
            'local_interface': self.local_interface,
            'remote_device_id': self.remote_device_id,
            'remote_interface': self.remote_interface,
            'protocols': sorted(p.value for p in self.protocols),
        }


def edge_key(local_id: str, local_if: str, remote_id: str, remote_if: str) -> EdgeKey:
    a = (local_id, InterfaceNormalizer.key(local_if))
    b = (remote_id, InterfaceNormalizer.key(remote_if))
    return (a, b) if a <= b else (b, a)


@dataclass
class DiscoveryFailure:
    """One per-device failure."""
    device_id: str
    kind: ErrorKind
    reason: str
    hop: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'device_id': self.device_id,
            'kind': self.kind.value,
            'reason': self.reason,
            'hop': self.hop,
        }


@dataclass
class DiscoveryResult:
    """
    Result of one crawl.

    ``devices`` holds every device referenced within the hop limit,
    including unreachable and failed ones; ``mapped_devices`` only those
    that were logged into successfully.
    """
    devices: Dict[str, DiscoveredDevice] = field(default_factory=dict)
    edges: Dict[EdgeKey, NeighborEdge] = field(default_factory=dict)
    failures: List[DiscoveryFailure] = field(default_factory=list)
    boundary_peers: Set[str] = field(default_factory=set)

    # Configuration used
    seeds: List[str] = field(default_factory=list)
    max_hops: int = 0

    # Timing
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled: bool = False

    @property
    def mapped_devices(self) -> List[DiscoveredDevice]:
        return [d for d in self.devices.values() if d.status == DeviceStatus.VISITED]

    @property
    def edge_list(self) -> List[NeighborEdge]:
        return list(self.edges.values())

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get discovery duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def devices_by_hop(self) -> Dict[int, List[DiscoveredDevice]]:
        """Group devices by hop distance."""
        result: Dict[int, List[DiscoveredDevice]] = {}
        for device in self.devices.values():
            result.setdefault(device.hop_distance, []).append(device)
        return result

    def failures_for(self, device_id: str) -> List[DiscoveryFailure]:
        return [f for f in self.failures if f.device_id == device_id]

    def neighbors_of(self, device_id: str) -> List[str]:
        """Device ids linked to device_id by at least one edge."""
        peers = []
        for edge in self.edges.values():
            if edge.local_device_id == device_id:
                peer = edge.remote_device_id
            elif edge.remote_device_id == device_id:
                peer = edge.local_device_id
            else:
                continue
            if peer not in peers:
                peers.append(peer)
        return peers

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'devices': {k: d.to_dict() for k, d in self.devices.items()},
            'edges': [e.to_dict() for e in self.edges.values()],
            'failures': [f.to_dict() for f in self.failures],
            'boundary_peers': sorted(self.boundary_peers),
            'seeds': self.seeds,
            'max_hops': self.max_hops,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'duration_seconds': self.duration_seconds,
            'cancelled': self.cancelled,
            'mapped': len(self.mapped_devices),
        }

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)


__all__ = [
    'DeviceStatus',
    'ErrorKind',
    'EdgeTieBreak',
    'DiscoveredDevice',
    'NeighborEdge',
    'NeighborRecord',
    'NeighborProtocol',
    'DiscoveryFailure',
    'DiscoveryResult',
    'edge_key',
    'SEED_MARKER',
]
