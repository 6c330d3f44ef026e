"""
SC Crawl SSH - Device sessions for neighbor collection.

Usage:
    from sccrawl.discovery.ssh import SSHConnectionClient, Session

    client = SSHConnectionClient(legacy_mode=True)
"""

from .client import (
    ConnectionClient,
    SSHConnectionClient,
    Session,
    ConnectFailure,
    ConnectStatus,
    CommandOutput,
    CommandFailure,
    hostname_from_prompt,
)

__all__ = [
    'ConnectionClient',
    'SSHConnectionClient',
    'Session',
    'ConnectFailure',
    'ConnectStatus',
    'CommandOutput',
    'CommandFailure',
    'hostname_from_prompt',
]
