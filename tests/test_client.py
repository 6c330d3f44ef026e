"""SSHConnectionClient against a scripted paramiko shell."""

from __future__ import annotations

import socket
from typing import Dict, List, Optional

import paramiko
import pytest

from sccrawl.creds import AuthMethod, Credential
from sccrawl.discovery.models import ErrorKind
from sccrawl.discovery.ssh import (
    CommandFailure,
    CommandOutput,
    ConnectFailure,
    ConnectStatus,
    Session,
    SSHConnectionClient,
    hostname_from_prompt,
)
from sccrawl.discovery.ssh.client import detect_protocol_disabled

PROMPT = "rtr1#"
CDP = "show cdp neighbors detail"


class FakeChannel:
    """Answers each line sent with scripted chunks; a space pages to the next chunk."""

    def __init__(self, responses: Optional[Dict[str, List[str]]] = None, prompt: str = PROMPT):
        self.responses = responses or {}
        self.prompt = prompt
        self.sent: List[str] = []
        self.closed = False
        self.close_calls = 0
        self._buffer = b""
        self._pending: List[str] = []

    def send(self, data: str) -> int:
        self.sent.append(data)
        if data == " ":
            if self._pending:
                self._queue(self._pending.pop(0))
            return len(data)

        line = data.rstrip("\n")
        if not line:
            if self.prompt:
                self._queue(f"\r\n{self.prompt}")
            return len(data)

        chunks = self.responses.get(line, [f"{line}\r\n{self.prompt}"])
        self._queue(chunks[0])
        self._pending = list(chunks[1:])
        return len(data)

    def _queue(self, text: str) -> None:
        self._buffer += text.encode()

    def recv_ready(self) -> bool:
        return bool(self._buffer)

    def recv(self, size: int) -> bytes:
        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data

    def exit_status_ready(self) -> bool:
        return False

    def close(self) -> None:
        self.closed = True
        self.close_calls += 1


class FakeSSHClient:
    def __init__(self, channel: FakeChannel, error: Optional[Exception] = None):
        self.channel = channel
        self.error = error
        self.connect_kwargs: Dict = {}
        self.closed = False

    def set_missing_host_key_policy(self, policy) -> None:
        pass

    def connect(self, **kwargs) -> None:
        self.connect_kwargs = kwargs
        if self.error is not None:
            raise self.error

    def invoke_shell(self, **kwargs) -> FakeChannel:
        return self.channel

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def credential() -> Credential:
    return Credential(name="primary", username="admin", password="secret")


def install(monkeypatch: pytest.MonkeyPatch, channel: Optional[FakeChannel] = None,
            error: Optional[Exception] = None) -> List[FakeSSHClient]:
    created: List[FakeSSHClient] = []

    def factory() -> FakeSSHClient:
        client = FakeSSHClient(channel or FakeChannel(), error)
        created.append(client)
        return client

    monkeypatch.setattr(paramiko, "SSHClient", factory)
    return created


def open_session(monkeypatch: pytest.MonkeyPatch, credential: Credential,
                 responses: Optional[Dict[str, List[str]]] = None):
    channel = FakeChannel(responses)
    install(monkeypatch, channel)
    client = SSHConnectionClient(prompt_timeout=1.0)
    session = client.connect("10.0.0.1", credential, timeout=5)
    assert isinstance(session, Session)
    return client, session, channel


# =============================================================================
# Connect
# =============================================================================

def test_connect_detects_prompt_and_disables_paging(monkeypatch: pytest.MonkeyPatch,
                                                    credential: Credential) -> None:
    client, session, channel = open_session(monkeypatch, credential)

    assert session.prompt == PROMPT
    assert session.hostname == "rtr1"
    assert session.credential_name == "primary"
    assert "terminal length 0\n" in channel.sent


def test_connect_passes_credentials(monkeypatch: pytest.MonkeyPatch, credential: Credential) -> None:
    created = install(monkeypatch, FakeChannel())
    client = SSHConnectionClient(port=2222, legacy_mode=True, disable_paging=False)

    client.connect("10.0.0.1", credential, timeout=7)

    kwargs = created[0].connect_kwargs
    assert kwargs["hostname"] == "10.0.0.1"
    assert kwargs["port"] == 2222
    assert kwargs["username"] == "admin"
    assert kwargs["password"] == "secret"
    assert kwargs["timeout"] == 7
    assert "rsa-sha2-256" in kwargs["disabled_algorithms"]["pubkeys"]


def test_credential_port_overrides_client_port(monkeypatch: pytest.MonkeyPatch) -> None:
    created = install(monkeypatch, FakeChannel())
    cred = Credential(name="alt", username="u", password="p", port=8022)

    SSHConnectionClient(disable_paging=False).connect("10.0.0.1", cred, timeout=5)

    assert created[0].connect_kwargs["port"] == 8022
    assert "disabled_algorithms" not in created[0].connect_kwargs


@pytest.mark.parametrize(
    ("error", "status"),
    [
        (paramiko.AuthenticationException("Authentication failed."), ConnectStatus.AUTH_FAILURE),
        (socket.timeout("timed out"), ConnectStatus.TIMEOUT),
        (
            paramiko.ssh_exception.NoValidConnectionsError(
                {("10.0.0.1", 22): ConnectionRefusedError("refused")}
            ),
            ConnectStatus.CONNECTION_REFUSED,
        ),
        (paramiko.SSHException("Error reading SSH protocol banner"), ConnectStatus.PROTOCOL_ERROR),
        (OSError("[Errno 113] No route to host"), ConnectStatus.HOST_UNREACHABLE),
    ],
)
def test_connect_failures_are_values(monkeypatch: pytest.MonkeyPatch, credential: Credential,
                                     error: Exception, status: ConnectStatus) -> None:
    created = install(monkeypatch, error=error)

    outcome = SSHConnectionClient().connect("10.0.0.1", credential, timeout=1)

    assert isinstance(outcome, ConnectFailure)
    assert outcome.status is status
    assert outcome.credential_name == "primary"
    assert created[0].closed


def test_no_prompt_is_a_failure(monkeypatch: pytest.MonkeyPatch, credential: Credential) -> None:
    channel = FakeChannel(prompt="")
    created = install(monkeypatch, channel)

    outcome = SSHConnectionClient(prompt_timeout=0.3).connect("10.0.0.1", credential, timeout=1)

    assert isinstance(outcome, ConnectFailure)
    assert outcome.status is ConnectStatus.PROTOCOL_ERROR
    assert channel.closed
    assert created[0].closed



class BrokenChannel(FakeChannel):
    """Drops the connection when a given line is sent."""

    def __init__(self, fail_on: str):
        super().__init__()
        self.fail_on = fail_on

    def send(self, data: str) -> int:
        if data.rstrip("\n") == self.fail_on:
            raise OSError("Socket is closed")
        return super().send(data)


def test_paging_failure_closes_session(monkeypatch: pytest.MonkeyPatch,
                                       credential: Credential) -> None:
    channel = BrokenChannel("terminal length 0")
    created = install(monkeypatch, channel)

    outcome = SSHConnectionClient(prompt_timeout=1.0).connect("10.0.0.1", credential, timeout=5)

    assert isinstance(outcome, ConnectFailure)
    assert outcome.status is ConnectStatus.PROTOCOL_ERROR
    assert "Socket is closed" in outcome.reason
    assert channel.closed
    assert created[0].closed


def test_publickey_credential_never_sends_password(monkeypatch: pytest.MonkeyPatch) -> None:
    created = install(monkeypatch, FakeChannel())
    client = SSHConnectionClient(disable_paging=False)
    monkeypatch.setattr(client, "_load_private_key", lambda credential: "loaded-key")
    cred = Credential(name="keyed", username="u", password="p", key_content="KEY",
                      auth_method=AuthMethod.PUBLICKEY)

    client.connect("10.0.0.1", cred, timeout=5)

    kwargs = created[0].connect_kwargs
    assert kwargs["pkey"] == "loaded-key"
    assert "password" not in kwargs


class FakeTransport:
    """Stands in for paramiko.Transport; answers one keyboard-interactive round."""

    instances: List["FakeTransport"] = []

    def __init__(self, sock, disabled_algorithms=None):
        self.sock = sock
        self.disabled_algorithms = disabled_algorithms
        self.answers: List[str] = []
        self.authenticated = False
        self.closed = False
        self.channel = FakeChannel()
        self.pty = None
        FakeTransport.instances.append(self)

    def start_client(self, timeout=None) -> None:
        pass

    def auth_interactive(self, username, handler, submethods=""):
        self.answers = handler("", "", [("Password: ", False), ("Token: ", False)])
        self.authenticated = self.answers[0] == "secret"
        if not self.authenticated:
            raise paramiko.AuthenticationException("Authentication failed.")
        return []

    def is_authenticated(self) -> bool:
        return self.authenticated

    def open_session(self, timeout=None):
        channel = self.channel
        transport = self

        class ShellChannel:
            def get_pty(self, term, width, height) -> None:
                transport.pty = term

            def invoke_shell(self) -> None:
                pass

            def __getattr__(self, name):
                return getattr(channel, name)

        return ShellChannel()

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_transport(monkeypatch: pytest.MonkeyPatch) -> List[FakeTransport]:
    FakeTransport.instances = []
    monkeypatch.setattr(paramiko, "Transport", FakeTransport)
    monkeypatch.setattr(socket, "create_connection", lambda address, timeout=None: address)

    def no_ssh_client():
        raise AssertionError("SSHClient used for keyboard-interactive login")

    monkeypatch.setattr(paramiko, "SSHClient", no_ssh_client)
    return FakeTransport.instances


def test_keyboard_interactive_login(fake_transport: List[FakeTransport]) -> None:
    cred = Credential(name="radius", username="ops", password="secret",
                      auth_method=AuthMethod.KEYBOARD_INTERACTIVE, port=2200)

    session = SSHConnectionClient(legacy_mode=True, prompt_timeout=1.0).connect(
        "10.0.0.1", cred, timeout=5
    )

    assert isinstance(session, Session)
    assert session.hostname == "rtr1"
    transport = fake_transport[0]
    assert transport.sock == ("10.0.0.1", 2200)
    assert transport.answers == ["secret", "secret"]
    assert transport.pty == "vt100"
    assert "rsa-sha2-512" in transport.disabled_algorithms["pubkeys"]


def test_keyboard_interactive_rejected(fake_transport: List[FakeTransport]) -> None:
    cred = Credential(name="radius", username="ops", password="wrong",
                      auth_method=AuthMethod.KEYBOARD_INTERACTIVE)

    outcome = SSHConnectionClient().connect("10.0.0.1", cred, timeout=5)

    assert isinstance(outcome, ConnectFailure)
    assert outcome.status is ConnectStatus.AUTH_FAILURE
    assert fake_transport[0].closed



# =============================================================================
# Commands
# =============================================================================

def test_execute_strips_echo_and_prompt(monkeypatch: pytest.MonkeyPatch,
                                        credential: Credential) -> None:
    body = "Device ID: sw2\r\nInterface: Gi0/1,  Port ID (outgoing port): Gi0/2"
    client, session, _ = open_session(
        monkeypatch, credential, {CDP: [f"{CDP}\r\n{body}\r\n{PROMPT}"]}
    )

    outcome = client.execute_command(session, CDP, timeout=2)

    assert isinstance(outcome, CommandOutput)
    assert outcome.text == body.replace("\r\n", "\n")
    assert not outcome.protocol_disabled


def test_execute_pages_through_more_prompts(monkeypatch: pytest.MonkeyPatch,
                                            credential: Credential) -> None:
    client, session, channel = open_session(monkeypatch, credential, {
        CDP: [f"{CDP}\r\nDevice ID: a\r\n --More-- ", f"\r\nDevice ID: b\r\n{PROMPT}"],
    })

    outcome = client.execute_command(session, CDP, timeout=2)

    assert isinstance(outcome, CommandOutput)
    assert "Device ID: a" in outcome.text
    assert "Device ID: b" in outcome.text
    assert "More" not in outcome.text
    assert " " in channel.sent


def test_execute_timeout(monkeypatch: pytest.MonkeyPatch, credential: Credential) -> None:
    client, session, _ = open_session(
        monkeypatch, credential, {CDP: [f"{CDP}\r\nDevice ID: a\r\nstill going"]}
    )

    outcome = client.execute_command(session, CDP, timeout=0.2)

    assert isinstance(outcome, CommandFailure)
    assert outcome.kind is ErrorKind.COMMAND_TIMEOUT
    assert "Device ID: a" in outcome.partial_output


def test_execute_rejected_command(monkeypatch: pytest.MonkeyPatch, credential: Credential) -> None:
    command = "show lldp neighbors detail"
    client, session, _ = open_session(monkeypatch, credential, {
        command: [f"{command}\r\n      ^\r\n% Invalid input detected at '^' marker.\r\n{PROMPT}"],
    })

    outcome = client.execute_command(session, command, timeout=2)

    assert isinstance(outcome, CommandFailure)
    assert outcome.kind is ErrorKind.COMMAND_ERROR


def test_execute_protocol_disabled(monkeypatch: pytest.MonkeyPatch, credential: Credential) -> None:
    client, session, _ = open_session(monkeypatch, credential, {
        CDP: [f"{CDP}\r\n% CDP is not enabled\r\n{PROMPT}"],
    })

    outcome = client.execute_command(session, CDP, timeout=2)

    assert isinstance(outcome, CommandOutput)
    assert outcome.protocol_disabled


def test_neighbor_text_mentioning_disabled_is_kept(monkeypatch: pytest.MonkeyPatch,
                                                   credential: Credential) -> None:
    body = ("Device ID: sw2\r\n"
            "Interface: Gi0/1,  Port ID (outgoing port): Gi0/2\r\n"
            "Version :\r\n"
            "Cisco IOS Software, feature set: Telnet is disabled, VTP not configured")
    client, session, _ = open_session(
        monkeypatch, credential, {CDP: [f"{CDP}\r\n{body}\r\n{PROMPT}"]}
    )

    outcome = client.execute_command(session, CDP, timeout=2)

    assert isinstance(outcome, CommandOutput)
    assert not outcome.protocol_disabled
    assert "Device ID: sw2" in outcome.text


@pytest.mark.parametrize(
    ("output", "disabled"),
    [
        ("% CDP is not enabled", True),
        ("LLDP is not running", True),
        ("\n% LLDP is disabled globally\n\nextra\nlines", True),
        ("Device ID: a\nPlatform: x\nDescription: port is disabled", False),
        ("", False),
    ],
)
def test_detect_protocol_disabled(output: str, disabled: bool) -> None:
    assert detect_protocol_disabled(output) is disabled




def test_disconnect_is_idempotent(monkeypatch: pytest.MonkeyPatch, credential: Credential) -> None:
    client, session, channel = open_session(monkeypatch, credential)

    client.disconnect(session)
    client.disconnect(session)

    assert session.closed
    assert channel.close_calls == 1
    outcome = client.execute_command(session, CDP, timeout=1)
    assert isinstance(outcome, CommandFailure)
    assert outcome.kind is ErrorKind.COMMAND_ERROR


@pytest.mark.parametrize(
    ("prompt", "hostname"),
    [
        ("rtr1#", "rtr1"),
        ("sw1>", "sw1"),
        ("sw1(config)#", "sw1"),
        ("admin@mx1>", "mx1"),
        ("[admin@fw1]$", "fw1"),
        ("", None),
        (None, None),
    ],
)
def test_hostname_from_prompt(prompt: Optional[str], hostname: Optional[str]) -> None:
    assert hostname_from_prompt(prompt) == hostname
