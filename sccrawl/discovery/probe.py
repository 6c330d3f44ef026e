"""
SC Crawl - Reachability Probe.

Cheap pre-check before spending SSH timeouts on a device: resolve the
name, then see whether the SSH port accepts a TCP connection.
"""

import logging
import socket
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from .normalize import is_ip_address

logger = logging.getLogger(__name__)

DEFAULT_SSH_PORT = 22


class ReachabilityProbe(ABC):
    """Resolution and reachability checks used by the engine."""

    @abstractmethod
    def check(self, address: str, timeout: float) -> bool:
        """True if the device accepts connections. Never raises."""
        pass

    @abstractmethod
    def resolve(self, name: str, domains: Iterable[str] = ()) -> Optional[str]:
        """Resolve a name to an address, trying domain suffixes. None on failure."""
        pass


class TCPReachabilityProbe(ReachabilityProbe):
    """
    TCP connect check against the SSH port.

    Example:
        probe = TCPReachabilityProbe()
        if probe.check("10.0.0.1", timeout=3):
            ...
    """

    def __init__(self, port: int = DEFAULT_SSH_PORT, no_dns: bool = False):
        self.port = port
        self.no_dns = no_dns

    def check(self, address: str, timeout: float) -> bool:
        try:
            target = self.resolve(address)
            if not target:
                logger.debug(f"Cannot resolve {address}")
                return False

            sock = socket.socket(socket.AF_INET6 if ':' in target else socket.AF_INET,
                                 socket.SOCK_STREAM)
            try:
                sock.settimeout(timeout)
                result = sock.connect_ex((target, self.port))
            finally:
                sock.close()
        except (OSError, ValueError, OverflowError) as e:
            logger.debug(f"Socket check failed for {address}:{self.port} - {e}")
            return False

        if result != 0:
            logger.debug(f"Port {self.port} closed on {address} (errno {result})")
        return result == 0

    def resolve(self, name: str, domains: Iterable[str] = ()) -> Optional[str]:
        """
        Resolve hostname to IP address, trying domain suffixes.

        IP literals pass through untouched.
        """
        if not name:
            return None

        name = name.strip().rstrip('.')
        if is_ip_address(name):
            return name

        if self.no_dns:
            return None

        domains = [d.strip('.') for d in domains if d]
        has_domain = any(name.lower().endswith('.' + d.lower()) for d in domains)

        candidates = [name]
        if not has_domain:
            candidates.extend(f"{name}.{d}" for d in domains)

        for candidate in candidates:
            try:
                ip = socket.gethostbyname(candidate)
                logger.debug(f"Resolved {name} -> {candidate} -> {ip}")
                return ip
            except (OSError, ValueError) as e:
                # gaierror, or UnicodeError for an empty or over-long label
                logger.debug(f"Lookup of {candidate} failed: {e}")
                continue

        return None
