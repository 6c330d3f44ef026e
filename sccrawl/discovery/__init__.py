"""
SC Crawl - Network Discovery Module.

SSH-based CDP/LLDP neighbor crawl.

Architecture:
    discovery/
    ├── models.py      # DiscoveredDevice, NeighborEdge, DiscoveryResult
    ├── normalize.py   # Interface and hostname normalization
    ├── probe.py       # Resolution and TCP reachability
    ├── events.py      # Progress events and console printer
    ├── engine.py      # Bounded breadth-first crawl
    ├── cli.py         # CLI interface
    └── ssh/
        └── client.py  # paramiko shell sessions

Quick Start:
    from sccrawl.creds import CredentialStore
    from sccrawl.discovery import DiscoveryEngine

    engine = DiscoveryEngine()
    result = engine.run(["10.0.0.1"], CredentialStore.from_env(), max_hops=2)
    print(f"Mapped {len(result.mapped_devices)} devices, {len(result.edges)} links")
"""

from .models import (
    DeviceStatus,
    ErrorKind,
    EdgeTieBreak,
    DiscoveredDevice,
    NeighborEdge,
    NeighborRecord,
    NeighborProtocol,
    DiscoveryFailure,
    DiscoveryResult,
    edge_key,
)

from .events import (
    EventEmitter,
    EventType,
    DiscoveryEvent,
    ConsoleEventPrinter,
)

from .probe import ReachabilityProbe, TCPReachabilityProbe

from .engine import (
    CrawlContext,
    DiscoveryEngine,
    crawl,
)


__all__ = [
    # Engine
    'DiscoveryEngine',
    'CrawlContext',
    'crawl',
    # Models
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
    # Events
    'EventEmitter',
    'EventType',
    'DiscoveryEvent',
    'ConsoleEventPrinter',
    # Probe
    'ReachabilityProbe',
    'TCPReachabilityProbe',
]
