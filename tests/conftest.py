from __future__ import annotations

import pytest

from sccrawl.creds import Credential, CredentialStore
from sccrawl.parsing import OutputParser


@pytest.fixture(scope="session")
def parser() -> OutputParser:
    return OutputParser()


@pytest.fixture
def credentials() -> CredentialStore:
    return CredentialStore([Credential(name="primary", username="admin", password="secret")])
