"""
SC Crawl SSH Client - Interactive shell sessions over paramiko.

Path: sccrawl/discovery/ssh/client.py

One synchronous session per device: connect, run each neighbor command
in an interactive shell, disconnect. Outcomes are values (Session /
ConnectFailure, CommandOutput / CommandFailure); nothing here raises for
a device-side problem.

Shell handling:
    1. invoke_shell, send a newline, wait for a prompt
    2. take the hostname from the prompt
    3. disable paging with a vendor-agnostic command list
    4. per command: send, read until the prompt returns or time runs out
"""

import io
import logging
import re
import socket
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple, Union

import paramiko

from ...creds import AuthMethod, Credential
from ..models import ErrorKind

logger = logging.getLogger(__name__)

DEFAULT_PORT = 22

PAGING_COMMANDS = [
    'terminal length 0',
    'terminal pager 0',
    'set cli screen-length 0',
    'screen-length 0 temporary',
]

# Last line of output that looks like a CLI prompt: "rtr1#", "sw1>", "user@host>"
PROMPT_PATTERN = re.compile(r'(?:^|\n)\s*([^\s#>$]+)\s?[#>$]\s*$')
PROMPT_END_CHARS = ('#', '>', '$')

MORE_PATTERN = re.compile(r'-+\s*\(?more[^\n]*?\)?\s*-*\s*$', re.IGNORECASE)

COMMAND_ERROR_INDICATORS = [
    'invalid input',
    'incomplete command',
    'unknown command',
    'unrecognized command',
    '% invalid',
    '% ambiguous command',
    'syntax error, expecting',
]

PROTOCOL_DISABLED_INDICATORS = [
    'not enabled',
    'not running',
    'is disabled',
    'not configured',
]

ANSI_PATTERN = re.compile(r'\x1b\[[0-9;?]*[A-Za-z]|\x1b[()][A-Za-z0-9]|\x1b[=>]')


class ConnectStatus(str, Enum):
    """Why a connect attempt ended."""
    SUCCESS = "success"
    AUTH_FAILURE = "auth_failure"
    TIMEOUT = "timeout"
    CONNECTION_REFUSED = "connection_refused"
    HOST_UNREACHABLE = "host_unreachable"
    DNS_FAILURE = "dns_failure"
    PROTOCOL_ERROR = "protocol_error"
    UNKNOWN_ERROR = "unknown_error"


@dataclass
class Session:
    """An open shell on one device."""
    address: str
    credential_name: str
    hostname: Optional[str] = None
    prompt: Optional[str] = None
    closed: bool = False
    client: Any = field(default=None, repr=False)
    channel: Any = field(default=None, repr=False)


@dataclass
class ConnectFailure:
    """Connect attempt that did not yield a session."""
    address: str
    credential_name: str
    status: ConnectStatus
    reason: str = ""


@dataclass
class CommandOutput:
    """Raw output of one command."""
    command: str
    text: str
    protocol_disabled: bool = False
    duration_ms: float = 0.0


@dataclass
class CommandFailure:
    """Command that timed out or that the device rejected."""
    command: str
    kind: ErrorKind
    reason: str = ""
    partial_output: str = ""


ConnectResult = Union[Session, ConnectFailure]
CommandResult = Union[CommandOutput, CommandFailure]


def hostname_from_prompt(prompt: Optional[str]) -> Optional[str]:
    """
    'rtr1#' -> 'rtr1', 'sw1(config)#' -> 'sw1', 'admin@mx1>' -> 'mx1'
    """
    if not prompt:
        return None
    name = prompt.strip().rstrip('#>$ ').strip()
    if '@' in name:
        name = name.split('@', 1)[1]
    if '(' in name:
        name = name.split('(', 1)[0]
    name = name.strip('[]:')
    return name or None


def detect_error(output: str) -> Optional[str]:
    """Return the matching error indicator, if any."""
    lowered = output.lower()
    for indicator in COMMAND_ERROR_INDICATORS:
        if indicator in lowered:
            return indicator
    return None


def detect_protocol_disabled(output: str) -> bool:
    """
    True when the device says CDP/LLDP is off.

    Only '%' error lines are checked, or the whole reply when it is one or
    two lines long, so neighbor descriptions cannot trigger it.
    """
    lines = [line.strip().lower() for line in output.splitlines() if line.strip()]
    candidates = lines if len(lines) <= 2 else [line for line in lines if line.startswith('%')]
    return any(marker in line for line in candidates for marker in PROTOCOL_DISABLED_INDICATORS)


class ConnectionClient(ABC):
    """
    Synchronous device-connection contract used by the discovery engine.

    Implementations must not raise for device-side failures: connect
    returns a ConnectFailure, execute_command a CommandFailure.
    disconnect is idempotent and safe on half-open sessions.
    """

    @abstractmethod
    def connect(self, address: str, credential: Credential, timeout: float) -> ConnectResult:
        pass

    @abstractmethod
    def execute_command(self, session: Session, command: str, timeout: float) -> CommandResult:
        pass

    @abstractmethod
    def disconnect(self, session: Session) -> None:
        pass


class SSHConnectionClient(ConnectionClient):
    """
    paramiko-backed ConnectionClient.

    The credential's auth_method picks the login path: publickey sends
    only the key, password sends the password (and a key if loaded) and
    falls back to keyboard-interactive when the server only offers that,
    keyboard-interactive answers every server prompt with the password.

    Example:
        client = SSHConnectionClient()
        result = client.connect("10.0.0.1", cred, timeout=10)
        if isinstance(result, Session):
            try:
                out = client.execute_command(result, "show cdp neighbors detail", 30)
            finally:
                client.disconnect(result)
    """

    def __init__(
        self,
        port: int = DEFAULT_PORT,
        legacy_mode: bool = False,
        disable_paging: bool = True,
        prompt_timeout: float = 10.0,
        paging_commands: Optional[List[str]] = None,
    ):
        self.port = port
        self.legacy_mode = legacy_mode
        self.disable_paging = disable_paging
        self.prompt_timeout = prompt_timeout
        self.paging_commands = list(paging_commands or PAGING_COMMANDS)

    # =========================================================================
    # Connect
    # =========================================================================

    def connect(self, address: str, credential: Credential, timeout: float) -> ConnectResult:
        port = credential.port or self.port
        client = None

        def failure(status: ConnectStatus, reason: str) -> ConnectFailure:
            if client is not None:
                client.close()
            logger.debug(f"{address}: connect as {credential.name} failed: {status.value} {reason}")
            return ConnectFailure(address, credential.name, status, reason)

        try:
            if credential.auth_method is AuthMethod.KEYBOARD_INTERACTIVE:
                client = self._open_interactive(address, port, credential, timeout)
            else:
                client = paramiko.SSHClient()
                client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
                client.connect(**self._connect_kwargs(address, port, credential, timeout))

        except paramiko.AuthenticationException as e:
            return failure(ConnectStatus.AUTH_FAILURE, str(e) or "Authentication failed")
        except socket.timeout:
            return failure(ConnectStatus.TIMEOUT, "Connection timed out")
        except paramiko.ssh_exception.NoValidConnectionsError:
            return failure(ConnectStatus.CONNECTION_REFUSED, f"Unable to connect to port {port}")
        except ConnectionRefusedError:
            return failure(ConnectStatus.CONNECTION_REFUSED, f"Connection refused on port {port}")
        except socket.gaierror as e:
            return failure(ConnectStatus.DNS_FAILURE, f"DNS resolution failed: {e}")
        except paramiko.SSHException as e:
            return failure(ConnectStatus.PROTOCOL_ERROR, str(e))
        except OSError as e:
            if "No route to host" in str(e) or "Network is unreachable" in str(e):
                return failure(ConnectStatus.HOST_UNREACHABLE, str(e))
            return failure(ConnectStatus.UNKNOWN_ERROR, str(e))

        session = Session(address=address, credential_name=credential.name, client=client)

        try:
            session.channel = self._open_shell(client, timeout)
            session.prompt = self._detect_prompt(session.channel)
            if session.prompt:
                session.hostname = hostname_from_prompt(session.prompt)
                logger.debug(f"{address}: prompt {session.prompt!r}, hostname {session.hostname}")
                if self.disable_paging:
                    self._disable_paging(session)
        except Exception as e:
            self.disconnect(session)
            return ConnectFailure(address, credential.name, ConnectStatus.PROTOCOL_ERROR,
                                  f"Shell setup failed: {e}")

        if not session.prompt:
            self.disconnect(session)
            return ConnectFailure(address, credential.name, ConnectStatus.PROTOCOL_ERROR,
                                  "No prompt detected")

        return session

    def _disabled_algorithms(self) -> Optional[dict]:
        if self.legacy_mode:
            # old IOS images only speak ssh-rsa with SHA-1 signatures
            return {"pubkeys": ["rsa-sha2-512", "rsa-sha2-256"]}
        return None

    def _connect_kwargs(self, address: str, port: int, credential: Credential,
                        timeout: float) -> dict:
        """
        SSHClient.connect arguments for password or publickey auth.

        publickey credentials never send their password; password
        credentials also offer a key when one is loaded.
        """
        kwargs = {
            "hostname": address,
            "port": port,
            "username": credential.username,
            "timeout": timeout,
            "allow_agent": False,
            "look_for_keys": False,
            "banner_timeout": timeout,
            "auth_timeout": timeout,
        }
        disabled = self._disabled_algorithms()
        if disabled:
            kwargs["disabled_algorithms"] = disabled

        if credential.key_content:
            kwargs["pkey"] = self._load_private_key(credential)
        if credential.auth_method is AuthMethod.PASSWORD and credential.password is not None:
            kwargs["password"] = credential.password
        return kwargs

    def _open_interactive(self, address: str, port: int, credential: Credential,
                          timeout: float) -> paramiko.Transport:
        """Keyboard-interactive login on a bare transport; every prompt gets the password."""
        sock = socket.create_connection((address, port), timeout=timeout)
        transport = paramiko.Transport(sock, disabled_algorithms=self._disabled_algorithms())
        try:
            transport.banner_timeout = timeout
            transport.auth_timeout = timeout
            transport.start_client(timeout=timeout)
            transport.auth_interactive(
                credential.username,
                lambda title, instructions, prompts: [credential.password or "" for _ in prompts],
            )
            if not transport.is_authenticated():
                raise paramiko.AuthenticationException("Further authentication required")
        except Exception:
            transport.close()
            raise
        return transport

    @staticmethod
    def _open_shell(client, timeout: float):
        if isinstance(client, paramiko.Transport):
            channel = client.open_session(timeout=timeout)
            channel.get_pty(term='vt100', width=511, height=1000)
            channel.invoke_shell()
            return channel
        return client.invoke_shell(term='vt100', width=511, height=1000)

    def _load_private_key(self, credential: Credential) -> paramiko.PKey:
        key_file = io.StringIO(credential.key_content)
        last_error: Optional[Exception] = None
        for key_class in (paramiko.RSAKey, paramiko.Ed25519Key, paramiko.ECDSAKey):
            key_file.seek(0)
            try:
                return key_class.from_private_key(key_file, password=credential.key_passphrase)
            except paramiko.SSHException as e:
                last_error = e
        raise paramiko.SSHException(f"Unsupported or unreadable private key: {last_error}")

    # =========================================================================
    # Shell I/O
    # =========================================================================

    def _read_until_prompt(self, channel, timeout: float,
                           prompt: Optional[str] = None) -> Tuple[str, bool]:
        """
        Read channel output until a prompt appears or timeout expires.

        Returns:
            (output, prompt_seen)
        """
        output = ""
        deadline = time.monotonic() + timeout

        while time.monotonic() < deadline:
            if channel.recv_ready():
                chunk = channel.recv(65535)
                if not chunk:
                    break
                output += ANSI_PATTERN.sub('', chunk.decode('utf-8', errors='replace'))

                tail = output.rstrip(' ')
                if MORE_PATTERN.search(tail[-40:]):
                    channel.send(" ")
                    output = MORE_PATTERN.sub('', output)
                    continue

                if self._ends_with_prompt(output, prompt):
                    return output, True
            elif channel.closed or channel.exit_status_ready():
                break
            else:
                time.sleep(0.05)

        return output, False

    @staticmethod
    def _ends_with_prompt(output: str, prompt: Optional[str]) -> bool:
        text = output.replace('\r', '').rstrip()
        if not text:
            return False
        if prompt:
            return text.endswith(prompt)
        return bool(PROMPT_PATTERN.search(text))

    def _detect_prompt(self, channel) -> Optional[str]:
        """Send newlines until the output ends in something prompt-like."""
        for _ in range(3):
            channel.send("\n")
            output, seen = self._read_until_prompt(channel, self.prompt_timeout / 3)
            if seen:
                lines = [l.strip() for l in output.replace('\r', '').split('\n') if l.strip()]
                return lines[-1] if lines else None
        return None

    def _disable_paging(self, session: Session) -> None:
        for cmd in self.paging_commands:
            session.channel.send(cmd + "\n")
            output, _ = self._read_until_prompt(session.channel, self.prompt_timeout, session.prompt)
            if detect_error(output):
                logger.debug(f"{session.address}: paging command rejected: {cmd}")
            else:
                logger.debug(f"{session.address}: paging disabled with: {cmd}")

    # =========================================================================
    # Commands
    # =========================================================================

    def execute_command(self, session: Session, command: str, timeout: float) -> CommandResult:
        if session.closed or session.channel is None:
            return CommandFailure(command, ErrorKind.COMMAND_ERROR, "Session is closed")

        start = time.monotonic()
        try:
            session.channel.send(command + "\n")
            output, seen = self._read_until_prompt(session.channel, timeout, session.prompt)
        except (paramiko.SSHException, OSError) as e:
            return CommandFailure(command, ErrorKind.COMMAND_ERROR, f"Channel error: {e}")

        text = self._strip_echo_and_prompt(output, command, session.prompt)

        if not seen:
            last_line = output.replace('\r', '').rstrip().split('\n')[-1].rstrip()
            if not last_line.endswith(PROMPT_END_CHARS):
                logger.debug(f"{session.address}: '{command}' timed out after {timeout}s")
                return CommandFailure(command, ErrorKind.COMMAND_TIMEOUT,
                                      f"No prompt after {timeout}s", partial_output=text)

        duration_ms = (time.monotonic() - start) * 1000

        if detect_protocol_disabled(text):
            return CommandOutput(command, text, protocol_disabled=True, duration_ms=duration_ms)

        indicator = detect_error(text)
        if indicator:
            return CommandFailure(command, ErrorKind.COMMAND_ERROR,
                                  f"Device rejected command ({indicator})", partial_output=text)

        return CommandOutput(command, text, duration_ms=duration_ms)

    @staticmethod
    def _strip_echo_and_prompt(output: str, command: str, prompt: Optional[str]) -> str:
        lines = output.replace('\r\n', '\n').replace('\r', '\n').split('\n')
        if lines and lines[0].strip().endswith(command.strip()):
            lines = lines[1:]
        while lines and not lines[-1].strip():
            lines.pop()
        if lines and prompt and lines[-1].strip() == prompt:
            lines.pop()
        return '\n'.join(lines)

    # =========================================================================
    # Disconnect
    # =========================================================================

    def disconnect(self, session: Session) -> None:
        if session.closed:
            return
        session.closed = True
        for resource in (session.channel, session.client):
            if resource is None:
                continue
            try:
                resource.close()
            except Exception as e:
                logger.debug(f"{session.address}: error during close: {e}")
