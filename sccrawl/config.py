"""
SC Crawl - Configuration.

Run options come from three layers, later ones winning:
    defaults < YAML config file < command line flags

YAML example:

    max_hops: 3
    connect_timeout: 10
    command_timeout: 45
    domains: [example.com, lab.local]
    exclude: "phone,ap-"
    edge_tie_break: prefer_lldp
    credentials:
      - name: primary
        username: admin
        password_env: LAB_PASSWORD
"""

import logging
from dataclasses import dataclass, field, fields, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_COMMANDS = [
    'show cdp neighbors detail',
    'show lldp neighbors detail',
]

KEY_ALIASES = {
    'exclude': 'exclude_patterns',
    'domain': 'domains',
}


class EdgeTieBreak(str, Enum):
    """How CDP and LLDP reports of the same local port are reconciled."""
    MERGE = "merge"
    PREFER_CDP = "prefer_cdp"
    PREFER_LLDP = "prefer_lldp"


@dataclass
class DiscoveryOptions:
    """Everything a crawl needs besides seeds and credentials."""
    max_hops: int = 4
    connect_timeout: float = 10.0
    command_timeout: float = 30.0
    probe_timeout: float = 3.0
    port: int = 22
    commands: List[str] = field(default_factory=lambda: list(DEFAULT_COMMANDS))
    template_dir: Optional[str] = None
    domains: List[str] = field(default_factory=list)
    exclude_patterns: List[str] = field(default_factory=list)
    edge_tie_break: EdgeTieBreak = EdgeTieBreak.MERGE
    legacy_mode: bool = False
    no_dns: bool = False

    def validate(self) -> 'DiscoveryOptions':
        """
        Check value ranges and coerce types.

        Raises:
            ConfigError: Any invalid value.
        """
        try:
            self.max_hops = int(self.max_hops)
            self.port = int(self.port)
            self.connect_timeout = float(self.connect_timeout)
            self.command_timeout = float(self.command_timeout)
            self.probe_timeout = float(self.probe_timeout)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid numeric option: {e}") from e

        if self.max_hops < 0:
            raise ConfigError(f"max_hops must be >= 0, got {self.max_hops}")
        if not 0 < self.port < 65536:
            raise ConfigError(f"port out of range: {self.port}")
        for name in ('connect_timeout', 'command_timeout', 'probe_timeout'):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")

        if isinstance(self.edge_tie_break, str):
            try:
                self.edge_tie_break = EdgeTieBreak(self.edge_tie_break.lower())
            except ValueError:
                choices = ", ".join(t.value for t in EdgeTieBreak)
                raise ConfigError(
                    f"edge_tie_break must be one of {choices}, got {self.edge_tie_break!r}"
                )

        self.commands = _as_list(self.commands, 'commands')
        self.domains = _as_list(self.domains, 'domains')
        self.exclude_patterns = _as_list(self.exclude_patterns, 'exclude_patterns')
        if not self.commands:
            raise ConfigError("At least one discovery command is required")
        return self

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d['edge_tie_break'] = self.edge_tie_break.value
        return d

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'DiscoveryOptions':
        """Build from a mapping, ignoring keys that are not options."""
        known = {f.name for f in fields(cls)}
        data = _resolve_aliases(data)

        unknown = set(data) - known - {'credentials', 'seeds'}
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")

        return cls(**{k: v for k, v in data.items() if k in known}).validate()


def _resolve_aliases(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Rename short config keys (exclude, domain) to their option names."""
    resolved = dict(data)
    for alias, name in KEY_ALIASES.items():
        if alias in resolved:
            resolved[name] = resolved.pop(alias)
    return resolved


def _as_list(value: Any, name: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(',') if v.strip()]
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    raise ConfigError(f"{name} must be a list or comma-separated string")


def load_config(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read a YAML config file.

    Raises:
        ConfigError: File missing, unreadable, or not a mapping.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Error loading YAML file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def build_options(yaml_config: Optional[Mapping[str, Any]] = None,
                  overrides: Optional[Mapping[str, Any]] = None) -> DiscoveryOptions:
    """
    Merge defaults, YAML values and command line overrides.

    Override values of None mean "not given" and do not replace
    anything.
    """
    config_dict: Dict[str, Any] = DiscoveryOptions().to_dict()
    if yaml_config:
        config_dict.update(_resolve_aliases(yaml_config))
    if overrides:
        config_dict.update({k: v for k, v in overrides.items() if v is not None})
    return DiscoveryOptions.from_dict(config_dict)
