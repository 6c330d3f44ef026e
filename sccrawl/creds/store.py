"""
SC Crawl - Credential Store.

Ordered, read-only list of credentials. Iteration order is trial order:
ascending ``priority``, then declaration order.

Sources:
    - YAML ``credentials:`` list (password inline, from an environment
      variable, or from the OS keyring)
    - SC_USERNAME / SC_PASSWORD and SC_ALT_USERNAME / SC_ALT_PASSWORD

YAML form:

    credentials:
      - name: primary
        username: admin
        password_env: LAB_PASSWORD
        priority: 10
      - name: keyed
        username: netops
        key_file: ~/.ssh/id_ed25519
      - name: vaulted
        username: backup
        keyring: sccrawl            # keyring service; account is the username
      - name: radius
        username: ops
        password_env: RADIUS_PASSWORD
        auth_method: keyboard-interactive
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

import keyring
import yaml
from keyring.errors import KeyringError

from ..exceptions import CredentialError
from .models import AuthMethod, Credential

logger = logging.getLogger(__name__)

ENV_USERNAME = "SC_USERNAME"
ENV_PASSWORD = "SC_PASSWORD"
ENV_ALT_USERNAME = "SC_ALT_USERNAME"
ENV_ALT_PASSWORD = "SC_ALT_PASSWORD"


class CredentialStore:
    """
    Immutable, priority-ordered sequence of Credentials.

    Example:
        store = CredentialStore.from_yaml("creds.yaml")
        for cred in store:
            print(cred.name, cred.username)
    """

    def __init__(self, credentials: Iterable[Credential] = ()):
        indexed = list(enumerate(credentials))
        indexed.sort(key=lambda pair: (pair[1].priority, pair[0]))
        self._credentials = tuple(cred for _, cred in indexed)

        names = [c.name for c in self._credentials]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise CredentialError(f"Duplicate credential names: {', '.join(sorted(duplicates))}")

    def __iter__(self) -> Iterator[Credential]:
        return iter(self._credentials)

    def __len__(self) -> int:
        return len(self._credentials)

    def __getitem__(self, index: int) -> Credential:
        return self._credentials[index]

    def __bool__(self) -> bool:
        return bool(self._credentials)

    @property
    def names(self) -> List[str]:
        return [c.name for c in self._credentials]

    def get(self, name: str) -> Optional[Credential]:
        for cred in self._credentials:
            if cred.name == name:
                return cred
        return None

    def merged(self, other: 'CredentialStore') -> 'CredentialStore':
        """New store holding this store's entries followed by other's."""
        return CredentialStore(list(self) + list(other))

    # =========================================================================
    # Loading
    # =========================================================================

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'CredentialStore':
        """Credentials from SC_USERNAME/SC_PASSWORD and the SC_ALT_* pair."""
        env = os.environ if environ is None else environ
        creds = []

        username = env.get(ENV_USERNAME, '')
        password = env.get(ENV_PASSWORD, '')
        if username and password:
            creds.append(Credential(name="env", username=username, password=password, priority=50))

        alt_username = env.get(ENV_ALT_USERNAME, '')
        alt_password = env.get(ENV_ALT_PASSWORD, '')
        if alt_username and alt_password:
            creds.append(Credential(name="env-alt", username=alt_username,
                                    password=alt_password, priority=51))
        elif alt_username:
            raise CredentialError(
                f"{ENV_ALT_PASSWORD} must be set when {ENV_ALT_USERNAME} is used"
            )

        logger.debug(f"Environment credentials: {[c.name for c in creds]}")
        return cls(creds)

    @classmethod
    def from_yaml(cls, path: Union[str, Path],
                  environ: Optional[Mapping[str, str]] = None) -> 'CredentialStore':
        """
        Load a credentials YAML file.

        Raises:
            CredentialError: Unreadable file or invalid entry.
        """
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise CredentialError(f"Cannot load credentials from {path}: {e}") from e
        return cls.from_dict(data, environ=environ)

    @classmethod
    def from_dict(cls, data: Union[Mapping[str, Any], List[Any]],
                  environ: Optional[Mapping[str, str]] = None) -> 'CredentialStore':
        entries = data.get('credentials', []) if isinstance(data, Mapping) else data
        if not isinstance(entries, list):
            raise CredentialError("'credentials' must be a list")

        env = os.environ if environ is None else environ
        return cls(
            _credential_from_entry(entry, index, env)
            for index, entry in enumerate(entries)
        )


def _credential_from_entry(entry: Any, index: int, env: Mapping[str, str]) -> Credential:
    if not isinstance(entry, Mapping):
        raise CredentialError(f"Credential #{index} must be a mapping")

    name = str(entry.get('name') or f"cred{index + 1}")
    username = entry.get('username')
    if not username:
        raise CredentialError(f"Credential {name} has no username")

    password = _resolve_password(name, username, entry, env)

    key_content = entry.get('key_content')
    key_file = entry.get('key_file')
    if key_file and not key_content:
        key_path = Path(key_file).expanduser()
        try:
            key_content = key_path.read_text()
        except OSError as e:
            raise CredentialError(f"Credential {name}: cannot read key {key_path}: {e}") from e

    if password is None and not key_content:
        raise CredentialError(f"Credential {name} has neither password nor key")

    method = entry.get('auth_method')
    if method:
        try:
            auth_method = AuthMethod(method)
        except ValueError:
            raise CredentialError(f"Credential {name}: unknown auth_method {method!r}")
    else:
        auth_method = AuthMethod.PUBLICKEY if key_content and password is None else AuthMethod.PASSWORD

    if auth_method is AuthMethod.PUBLICKEY and not key_content:
        raise CredentialError(f"Credential {name}: publickey auth needs key_file or key_content")
    if auth_method is not AuthMethod.PUBLICKEY and password is None:
        raise CredentialError(f"Credential {name}: {auth_method.value} auth needs a password")

    try:
        priority = int(entry.get('priority', 100))
        port = int(entry['port']) if entry.get('port') else None
    except (TypeError, ValueError) as e:
        raise CredentialError(f"Credential {name}: {e}") from e

    return Credential(
        name=name,
        username=str(username),
        password=password,
        key_content=key_content,
        key_file=str(key_file) if key_file else None,
        key_passphrase=entry.get('key_passphrase'),
        auth_method=auth_method,
        priority=priority,
        port=port,
    )


def _resolve_password(name: str, username: str, entry: Mapping[str, Any],
                      env: Mapping[str, str]) -> Optional[str]:
    if entry.get('password') is not None:
        return str(entry['password'])

    env_var = entry.get('password_env')
    if env_var:
        value = env.get(env_var)
        if value is None:
            raise CredentialError(f"Credential {name}: environment variable {env_var} not set")
        return value

    service = entry.get('keyring')
    if service:
        account = entry.get('keyring_username') or username
        try:
            value = keyring.get_password(service, account)
        except KeyringError as e:
            raise CredentialError(f"Credential {name}: keyring lookup failed: {e}") from e
        if value is None:
            raise CredentialError(
                f"Credential {name}: no keyring entry for {account} in service {service}"
            )
        return value

    return None
