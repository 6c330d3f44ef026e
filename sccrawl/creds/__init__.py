"""
SC Crawl - Credentials.

Quick Start:
    from sccrawl.creds import Credential, CredentialStore

    store = CredentialStore([
        Credential(name="lab", username="admin", password="secret", priority=10),
        Credential(name="fallback", username="backup", password="other", priority=20),
    ])

    # or
    store = CredentialStore.from_yaml("credentials.yaml")
"""

from .models import AuthMethod, Credential
from .store import CredentialStore

__all__ = [
    'AuthMethod',
    'Credential',
    'CredentialStore',
]
