"""
SC Crawl - Sequential Discovery Engine.

Bounded breadth-first crawl over CDP/LLDP neighbor tables.

Per device:
    probe -> connect (credentials in order) -> run every discovery command
    -> disconnect -> parse -> merge edges -> enqueue neighbors at hop + 1

One device, one login attempt and one command are in flight at a time.
All per-run state (frontier, visited set, alias map, result) lives in a
CrawlContext created by run(); the engine itself keeps nothing between
runs, so two engines, or two runs of one engine, never share state.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Dict, Iterable, List, Optional, Set, Tuple, Union

from ..config import DiscoveryOptions, EdgeTieBreak
from ..creds import Credential, CredentialStore
from ..exceptions import ConfigError, TemplateLoadError
from ..parsing import OutputParser
from ..parsing.records import NeighborProtocol, NeighborRecord
from .events import EventEmitter, LogLevel
from .models import (
    DeviceStatus, DiscoveredDevice, DiscoveryFailure, DiscoveryResult,
    EdgeKey, ErrorKind, NeighborEdge, edge_key,
)
from .normalize import (
    InterfaceNormalizer, extract_hostname, is_ip_address, is_mac_address,
    normalize_identifier, short_hostname, should_exclude,
)
from .probe import ReachabilityProbe, TCPReachabilityProbe
from .ssh import (
    CommandFailure, CommandOutput, ConnectFailure, ConnectionClient,
    Session, SSHConnectionClient,
)

logger = logging.getLogger(__name__)

# (device id, normalized local interface, peer id) -> edge holding that port
PortKey = Tuple[str, str, str]

# Factory-default prompts say nothing about which box answered
FACTORY_HOSTNAMES = {'switch', 'router', 'localhost'}


@dataclass
class CrawlContext:
    """Mutable state of one run, owned by the traversal loop."""
    result: DiscoveryResult
    max_hops: int
    commands: List[str]
    credentials: CredentialStore
    cancel_event: Optional[threading.Event] = None
    frontier: Deque[Tuple[str, int]] = field(default_factory=deque)
    visited: Set[str] = field(default_factory=set)
    aliases: Dict[str, str] = field(default_factory=dict)
    ports: Dict[PortKey, EdgeKey] = field(default_factory=dict)
    reports: Dict[str, List[NeighborRecord]] = field(default_factory=dict)
    # identifier -> id used for a peer past max_hops (edge endpoint, no device)
    boundary: Dict[str, str] = field(default_factory=dict)
    # short prompt hostname -> device that was logged into with it
    prompt_names: Dict[str, str] = field(default_factory=dict)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def lookup(self, *identifiers: Optional[str]) -> Optional[str]:
        """Canonical id for the first identifier already known."""
        for ident in identifiers:
            key = normalize_identifier(ident)
            if key and key in self.aliases:
                return self.aliases[key]
        return None

    def register_alias(self, identifier: Optional[str], canonical_id: str) -> None:
        """Map identifier to canonical_id unless it already names a device."""
        key = normalize_identifier(identifier)
        if not key:
            return
        if self.aliases.setdefault(key, canonical_id) != canonical_id:
            return
        device = self.result.devices.get(canonical_id)
        if device is not None and key != canonical_id:
            device.aliases.add(key)

    def register_name(self, hostname: Optional[str], canonical_id: str) -> None:
        """Register a hostname in both its full and short (first label) form."""
        self.register_alias(hostname, canonical_id)
        self.register_alias(short_hostname(hostname), canonical_id)


class DiscoveryEngine:
    """
    Sequential CDP/LLDP crawler.

    Usage:
        from sccrawl.creds import CredentialStore
        from sccrawl.discovery import DiscoveryEngine, ConsoleEventPrinter

        engine = DiscoveryEngine()
        engine.events.subscribe(ConsoleEventPrinter().handle_event)

        result = engine.run(
            seeds=["10.0.0.1"],
            credentials=CredentialStore.from_env(),
            max_hops=2,
        )
        for edge in result.edge_list:
            print(edge.local_device_id, edge.local_interface,
                  edge.remote_device_id, edge.remote_interface)

    Collaborators default to the paramiko client, the TCP probe and the
    shipped templates; tests pass fakes.
    """

    def __init__(
        self,
        client: Optional[ConnectionClient] = None,
        probe: Optional[ReachabilityProbe] = None,
        parser: Optional[OutputParser] = None,
        events: Optional[EventEmitter] = None,
        options: Optional[DiscoveryOptions] = None,
    ):
        """
        Initialize discovery engine.

        Raises:
            TemplateLoadError: The template directory yields no templates.
        """
        self.options = options or DiscoveryOptions()
        self.client = client or SSHConnectionClient(
            port=self.options.port,
            legacy_mode=self.options.legacy_mode,
        )
        self.probe = probe or TCPReachabilityProbe(
            port=self.options.port,
            no_dns=self.options.no_dns,
        )
        self.parser = parser or OutputParser(template_dir=self.options.template_dir)
        self.events = events or EventEmitter()

    def _log(self, message: str, level: LogLevel = LogLevel.INFO, device: str = "") -> None:
        self.events.log(message, level, device)

    # =========================================================================
    # Run
    # =========================================================================

    def run(
        self,
        seeds: Iterable[str],
        credentials: Union[CredentialStore, Iterable[Credential]],
        max_hops: Optional[int] = None,
        commands: Optional[List[str]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> DiscoveryResult:
        """
        Crawl outward from the seeds.

        Args:
            seeds: Seed IP addresses or hostnames (hop 0)
            credentials: Tried in order on every device
            max_hops: Hop limit, defaults to options.max_hops
            commands: Discovery commands, defaults to options.commands
            cancel_event: Checked between devices; when set, the partial
                result is returned with ``cancelled`` True

        Returns:
            DiscoveryResult. Per-device problems are in ``failures``.

        Raises:
            TemplateLoadError: The parser has no usable templates.
        """
        if self.parser.template_count == 0:
            raise TemplateLoadError("No parse templates loaded; refusing to start")

        max_hops = self.options.max_hops if max_hops is None else max_hops
        if max_hops < 0:
            raise ConfigError(f"max_hops must be >= 0, got {max_hops}")
        commands = list(commands or self.options.commands)
        if not isinstance(credentials, CredentialStore):
            credentials = CredentialStore(credentials)

        for command in commands:
            if not self.parser.registry.templates_for(command):
                self._log(f"No template registered for '{command}'", LogLevel.WARNING)

        seeds = [s.strip() for s in seeds if s and s.strip()]
        result = DiscoveryResult(seeds=seeds, max_hops=max_hops, started_at=datetime.now())
        ctx = CrawlContext(
            result=result,
            max_hops=max_hops,
            commands=commands,
            credentials=credentials,
            cancel_event=cancel_event,
        )

        self.events.crawl_started(
            seeds, max_hops,
            domains=self.options.domains,
            exclude_patterns=self.options.exclude_patterns,
            commands=commands,
        )

        for seed in seeds:
            self._add_seed(ctx, seed)

        while ctx.frontier:
            if ctx.cancelled:
                result.cancelled = True
                self._log(f"Cancelled with {len(ctx.frontier)} devices pending", LogLevel.WARNING)
                self.events.crawl_cancelled(pending=len(ctx.frontier))
                break

            device_id, hop = ctx.frontier.popleft()
            if device_id in ctx.visited:
                continue
            ctx.visited.add(device_id)

            device = result.devices[device_id]
            if hop > ctx.max_hops:
                result.boundary_peers.add(device_id)
                continue

            try:
                self._visit(ctx, device)
            except Exception as e:
                logger.exception(f"Unexpected error while visiting {device_id}")
                device.status = DeviceStatus.FAILED
                self._fail(ctx, device, ErrorKind.DISCOVERY_ERROR, f"{type(e).__name__}: {e}")

            self.events.device_progress(device_id, device.status.value, device.hop_distance)

        self._backfill(ctx)
        result.completed_at = datetime.now()

        if not result.cancelled:
            self.events.crawl_complete(
                duration_seconds=result.duration_seconds or 0,
                edges=len(result.edges),
            )
        return result

    # =========================================================================
    # Device identity
    # =========================================================================

    def _add_seed(self, ctx: CrawlContext, seed: str) -> None:
        if is_ip_address(seed):
            canonical_id = normalize_identifier(seed)
            mgmt = seed
        else:
            canonical_id = normalize_identifier(extract_hostname(seed, self.options.domains))
            mgmt = None

        if ctx.lookup(canonical_id, seed):
            logger.debug(f"Duplicate seed ignored: {seed}")
            return

        device = DiscoveredDevice(
            canonical_id=canonical_id,
            hostname=None if mgmt else canonical_id,
            management_address=mgmt,
            hop_distance=0,
        )
        ctx.result.devices[canonical_id] = device
        ctx.register_alias(canonical_id, canonical_id)
        if mgmt:
            ctx.register_alias(seed, canonical_id)
        else:
            ctx.register_name(seed, canonical_id)
        ctx.frontier.append((canonical_id, 0))

    def _neighbor_identity(self, record: NeighborRecord) -> Tuple[str, Optional[str]]:
        """(hostname alias, management IP) for a neighbor record; either may be empty."""
        name = record.neighbor_name
        if name and (is_mac_address(name) or is_ip_address(name)):
            name = ""
        hostname = normalize_identifier(extract_hostname(name, self.options.domains))
        mgmt = record.mgmt_address if record.mgmt_address and is_ip_address(record.mgmt_address) else None
        if not mgmt and record.neighbor_name and is_ip_address(record.neighbor_name):
            mgmt = record.neighbor_name
        return hostname, mgmt

    # =========================================================================
    # Visit
    # =========================================================================

    def _visit(self, ctx: CrawlContext, device: DiscoveredDevice) -> None:
        started = time.monotonic()
        device.visited_at = datetime.now()
        hop = device.hop_distance
        self.events.device_started(device.canonical_id, hop)

        address = device.management_address or self.probe.resolve(
            device.hostname or device.canonical_id, self.options.domains
        )
        if not address:
            self._mark_unreachable(ctx, device, "Cannot resolve address")
            return
        if not device.management_address:
            owner = ctx.lookup(address)
            if owner is not None and owner != device.canonical_id:
                self._fold_into(ctx, device, owner, f"{address} belongs to {owner}")
                return
            device.management_address = address
            ctx.register_alias(address, device.canonical_id)

        if not self.probe.check(address, self.options.probe_timeout):
            self._mark_unreachable(ctx, device, f"{address} did not answer on port {self.options.port}")
            return
        device.status = DeviceStatus.REACHABLE

        session, attempts = self._login(ctx, address)
        if session is None:
            device.status = DeviceStatus.FAILED
            reason = "; ".join(attempts) if attempts else "No credentials configured"
            self._fail(ctx, device, ErrorKind.AUTH_EXHAUSTED, reason)
            device.duration_ms = (time.monotonic() - started) * 1000
            return

        if session.hostname:
            prompt_name = short_hostname(extract_hostname(session.hostname, self.options.domains))
            owner = ctx.prompt_names.get(prompt_name)
            if owner is not None and owner != device.canonical_id \
                    and prompt_name not in FACTORY_HOSTNAMES:
                self.client.disconnect(session)
                self._fold_into(ctx, device, owner, f"prompt {session.hostname!r} already seen on {owner}")
                return
            ctx.prompt_names.setdefault(prompt_name, device.canonical_id)

        device.credential_used = session.credential_name
        if session.hostname:
            device.hostname = session.hostname
            ctx.register_name(extract_hostname(session.hostname, self.options.domains),
                              device.canonical_id)

        try:
            outputs = self._collect(ctx, session)
        finally:
            self.client.disconnect(session)

        successes = [o for o in outputs if isinstance(o, CommandOutput)]
        failures = [o for o in outputs if isinstance(o, CommandFailure)]
        for failure in failures:
            device.errors.append(f"{failure.command}: {failure.kind.value} {failure.reason}".strip())

        neighbor_count = 0
        for output in successes:
            if output.protocol_disabled:
                logger.debug(f"{device.canonical_id}: '{output.command}' reports protocol disabled")
                continue
            records = self.parser.parse(output.text, output.command)
            logger.debug(f"{device.canonical_id}: {len(records)} neighbors from '{output.command}'")
            neighbor_count += len(records)
            for record in records:
                self._process_neighbor(ctx, device, record)

        device.duration_ms = (time.monotonic() - started) * 1000

        if not successes:
            device.status = DeviceStatus.FAILED
            first = failures[0]
            reason = "; ".join(f"{f.command}: {f.reason}" for f in failures)
            self._fail(ctx, device, first.kind, reason)
            return

        device.status = DeviceStatus.VISITED
        self.events.device_complete(
            target=device.canonical_id,
            hostname=device.hostname,
            neighbor_count=neighbor_count,
            duration_ms=device.duration_ms,
            credential=device.credential_used,
            hop=hop,
        )

    def _login(self, ctx: CrawlContext, address: str) -> Tuple[Optional[Session], List[str]]:
        """Try each credential once, in order; stop at the first session."""
        attempts = []
        for credential in ctx.credentials:
            outcome = self.client.connect(address, credential, self.options.connect_timeout)
            if isinstance(outcome, Session):
                logger.debug(f"{address}: logged in as {credential.name}")
                return outcome, attempts
            if isinstance(outcome, ConnectFailure):
                attempts.append(f"{credential.name}: {outcome.status.value} {outcome.reason}".strip())
            else:
                attempts.append(f"{credential.name}: unexpected connect result {outcome!r}")
        return None, attempts

    def _collect(self, ctx: CrawlContext,
                 session: Session) -> List[Union[CommandOutput, CommandFailure]]:
        """Run every discovery command regardless of earlier outcomes."""
        outputs = []
        for command in ctx.commands:
            outcome = self.client.execute_command(session, command, self.options.command_timeout)
            if isinstance(outcome, CommandFailure):
                logger.debug(f"{session.address}: '{command}' failed: {outcome.kind.value} {outcome.reason}")
            outputs.append(outcome)
        return outputs

    def _mark_unreachable(self, ctx: CrawlContext, device: DiscoveredDevice, reason: str) -> None:
        device.status = DeviceStatus.UNREACHABLE
        self._fail(ctx, device, ErrorKind.UNREACHABLE_HOST, reason)

    def _fail(self, ctx: CrawlContext, device: DiscoveredDevice, kind: ErrorKind, reason: str) -> None:
        device.errors.append(f"{kind.value}: {reason}")
        ctx.result.failures.append(
            DiscoveryFailure(device.canonical_id, kind, reason, device.hop_distance)
        )
        self._log(f"{kind.value}: {reason}", LogLevel.WARNING, device.canonical_id)
        self.events.device_failed(device.canonical_id, f"{kind.value}: {reason}", device.hop_distance)

    def _fold_into(self, ctx: CrawlContext, duplicate: DiscoveredDevice, owner_id: str,
                   reason: str) -> None:
        """
        Merge a pending entry that turned out to be an already known device.

        The duplicate's id and aliases become aliases of the owner and its
        edges are re-pointed at the owner. The entry leaves ``devices``.
        """
        dup_id = duplicate.canonical_id
        owner = ctx.result.devices[owner_id]
        self._log(f"Same device as {owner_id} ({reason})", LogLevel.INFO, dup_id)

        del ctx.result.devices[dup_id]
        for key, target in ctx.aliases.items():
            if target == dup_id:
                ctx.aliases[key] = owner_id
                owner.aliases.add(key)
        owner.aliases.discard(owner_id)
        if not owner.platform and duplicate.platform:
            owner.platform = duplicate.platform
        ctx.reports.setdefault(owner_id, []).extend(ctx.reports.pop(dup_id, []))

        edges = ctx.result.edges
        moved = [e for e in edges.values() if dup_id in (e.local_device_id, e.remote_device_id)]
        moved_keys = {e.key for e in moved}
        for key in moved_keys:
            del edges[key]
        ctx.ports = {port: key for port, key in ctx.ports.items() if key not in moved_keys}

        for edge in moved:
            local_id = owner_id if edge.local_device_id == dup_id else edge.local_device_id
            remote_id = owner_id if edge.remote_device_id == dup_id else edge.remote_device_id
            if local_id == remote_id:
                continue
            for protocol in sorted(edge.protocols):
                self._merge_edge(ctx, local_id, edge.local_interface,
                                 remote_id, edge.remote_interface, protocol)

        duplicate.status = owner.status

    # =========================================================================
    # Neighbors
    # =========================================================================

    def _process_neighbor(self, ctx: CrawlContext, device: DiscoveredDevice,
                          record: NeighborRecord) -> None:
        hostname, mgmt = self._neighbor_identity(record)
        label = record.neighbor_name or mgmt or "?"

        if not hostname and not mgmt:
            self.events.neighbor_skipped(label, "MAC address without management IP"
                                         if is_mac_address(record.neighbor_name) else "no identity",
                                         device.canonical_id)
            return

        excluded, pattern = should_exclude([record.neighbor_name, hostname],
                                           self.options.exclude_patterns)
        if excluded:
            self.events.device_excluded(record.neighbor_name or label, pattern)
            return

        peer_id = ctx.lookup(mgmt, hostname, short_hostname(hostname))
        if peer_id == device.canonical_id:
            logger.debug(f"{device.canonical_id}: ignoring self-report on {record.local_interface}")
            return

        if peer_id is None:
            child_hop = device.hop_distance + 1
            if child_hop > ctx.max_hops:
                peer_id = self._boundary_peer(ctx, hostname, mgmt)
                self.events.neighbor_skipped(label, "beyond hop limit", device.canonical_id)
                self._merge_edge(ctx, device.canonical_id, record.local_interface,
                                 peer_id, record.neighbor_interface, record.protocol)
                return
            peer_id = self._add_neighbor_device(ctx, device, hostname, mgmt, record, child_hop)
        else:
            self._enrich(ctx.result.devices[peer_id], hostname, mgmt, record)
            ctx.register_name(hostname, peer_id)
            ctx.register_alias(mgmt, peer_id)

        ctx.reports.setdefault(peer_id, []).append(record)
        self._merge_edge(ctx, device.canonical_id, record.local_interface,
                         peer_id, record.neighbor_interface, record.protocol)

    @staticmethod
    def _boundary_peer(ctx: CrawlContext, hostname: str, mgmt: Optional[str]) -> str:
        """Id for a neighbor past max_hops; it ends links but gets no device entry."""
        for ident in (mgmt, hostname, short_hostname(hostname)):
            key = normalize_identifier(ident)
            if key and key in ctx.boundary:
                peer_id = ctx.boundary[key]
                break
        else:
            peer_id = normalize_identifier(mgmt) if mgmt else hostname
        for ident in (mgmt, hostname, short_hostname(hostname)):
            key = normalize_identifier(ident)
            if key:
                ctx.boundary.setdefault(key, peer_id)
        ctx.result.boundary_peers.add(peer_id)
        return peer_id

    def _add_neighbor_device(self, ctx: CrawlContext, parent: DiscoveredDevice,
                             hostname: str, mgmt: Optional[str],
                             record: NeighborRecord, hop: int) -> str:
        canonical_id = normalize_identifier(mgmt) if mgmt else hostname
        device = DiscoveredDevice(
            canonical_id=canonical_id,
            hostname=hostname or None,
            platform=record.platform,
            management_address=mgmt,
            hop_distance=hop,
            discovered_via=parent.canonical_id,
            capabilities=record.capabilities,
        )
        ctx.result.devices[canonical_id] = device
        ctx.register_alias(canonical_id, canonical_id)
        ctx.register_name(hostname, canonical_id)
        ctx.frontier.append((canonical_id, hop))
        self.events.neighbor_queued(
            target=hostname or canonical_id,
            ip=mgmt,
            from_device=parent.canonical_id,
            hop=hop,
        )
        return canonical_id

    @staticmethod
    def _enrich(device: DiscoveredDevice, hostname: str, mgmt: Optional[str],
                record: NeighborRecord) -> None:
        if not device.hostname and hostname:
            device.hostname = hostname
        if not device.management_address and mgmt and device.status == DeviceStatus.PENDING:
            device.management_address = mgmt
        if not device.platform and record.platform:
            device.platform = record.platform
        if not device.capabilities and record.capabilities:
            device.capabilities = record.capabilities

    def _backfill(self, ctx: CrawlContext) -> None:
        """Fill hostname and platform from neighbor reports where still unknown."""
        for device_id, records in ctx.reports.items():
            device = ctx.result.devices.get(device_id)
            if device is None:
                continue
            for record in records:
                hostname, _ = self._neighbor_identity(record)
                self._enrich(device, hostname, None, record)

    # =========================================================================
    # Edges
    # =========================================================================

    def _merge_edge(self, ctx: CrawlContext, local_id: str, local_if: str,
                    remote_id: str, remote_if: str, protocol: NeighborProtocol) -> None:
        """
        Add or merge one reported link.

        Exact matches (same sorted endpoints) always merge. When the same
        local port toward the same peer is reported with a different far
        interface by the other protocol, edge_tie_break decides.
        """
        local_if = InterfaceNormalizer.normalize(local_if)
        remote_if = InterfaceNormalizer.normalize(remote_if)
        key = edge_key(local_id, local_if, remote_id, remote_if)
        edges = ctx.result.edges

        if key in edges:
            edges[key].protocols.add(protocol)
            return

        tie_break = self.options.edge_tie_break
        port = (local_id, InterfaceNormalizer.key(local_if), remote_id)
        existing_key = ctx.ports.get(port)
        existing = edges.get(existing_key) if existing_key else None

        if existing is not None and protocol not in existing.protocols \
                and tie_break != EdgeTieBreak.MERGE:
            preferred = (NeighborProtocol.CDP if tie_break == EdgeTieBreak.PREFER_CDP
                         else NeighborProtocol.LLDP)
            if preferred in existing.protocols:
                logger.debug(f"Suppressing {protocol.value} edge {key}: {preferred.value} preferred")
                return
            if protocol == preferred:
                logger.debug(f"Replacing edge {existing_key} with {protocol.value} edge {key}")
                del edges[existing_key]
                for k in [k for k, v in ctx.ports.items() if v == existing_key]:
                    del ctx.ports[k]

        edges[key] = NeighborEdge(
            local_device_id=local_id,
            local_interface=local_if,
            remote_device_id=remote_id,
            remote_interface=remote_if,
            protocols={protocol},
        )
        ctx.ports.setdefault(port, key)
        ctx.ports.setdefault((remote_id, InterfaceNormalizer.key(remote_if), local_id), key)


def crawl(seeds: Iterable[str],
          credentials: Union[CredentialStore, Iterable[Credential]],
          options: Optional[DiscoveryOptions] = None,
          cancel_event: Optional[threading.Event] = None) -> DiscoveryResult:
    """
    Convenience function for a one-off crawl.

    Example:
        result = crawl(["10.0.0.1"], CredentialStore.from_env())
    """
    engine = DiscoveryEngine(options=options)
    return engine.run(seeds, credentials, cancel_event=cancel_event)
