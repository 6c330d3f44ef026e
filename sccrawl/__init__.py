"""
SC Crawl - SSH CDP/LLDP topology crawler.

Logs into seed devices over SSH, collects CDP and LLDP neighbor tables,
parses them with state-machine (TextFSM syntax) or regex templates, and
walks newly found neighbors breadth-first up to a hop limit.

Architecture:
    sccrawl/
    ├── config.py          # DiscoveryOptions, YAML + CLI merge
    ├── exceptions.py      # Error hierarchy
    ├── creds/             # Credential, CredentialStore
    ├── parsing/           # State machine, regex fallback, OutputParser
    ├── templates/         # Shipped TextFSM / regex templates
    └── discovery/
        ├── models.py      # DiscoveredDevice, NeighborEdge, DiscoveryResult
        ├── events.py      # EventEmitter, ConsoleEventPrinter
        ├── engine.py      # DiscoveryEngine (sequential BFS)
        ├── probe.py       # TCP reachability probe
        ├── normalize.py   # Interface / hostname normalization
        ├── cli.py         # Command line interface
        └── ssh/client.py  # ConnectionClient over paramiko

Quick Start:
    from sccrawl.creds import Credential, CredentialStore
    from sccrawl.discovery import DiscoveryEngine

    store = CredentialStore([Credential(name="lab", username="admin", password="secret")])
    engine = DiscoveryEngine()
    result = engine.run(["10.0.0.1"], store, max_hops=2)
    print(result.to_json())
"""

__version__ = "0.3.0"
