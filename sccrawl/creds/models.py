"""
SC Crawl - Credential Data Models.

Design principles:
- Immutable dataclasses for credential data
- Secrets kept out of repr()
- Priority ordering decides trial order
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List


class AuthMethod(str, Enum):
    """SSH authentication methods."""
    PASSWORD = "password"
    PUBLICKEY = "publickey"
    KEYBOARD_INTERACTIVE = "keyboard-interactive"


@dataclass(frozen=True)
class Credential:
    """
    SSH login credential.

    Supports password auth, key auth, or both (for key passphrase).
    Immutable to prevent accidental modification of secrets.
    """
    name: str
    username: str
    password: Optional[str] = field(default=None, repr=False)
    key_content: Optional[str] = field(default=None, repr=False)  # PEM private key content
    key_file: Optional[str] = None
    key_passphrase: Optional[str] = field(default=None, repr=False)
    auth_method: AuthMethod = AuthMethod.PASSWORD
    priority: int = 100

    # Connection hint, overrides the crawl's port when set
    port: Optional[int] = None

    @property
    def has_key(self) -> bool:
        """Check if SSH key is available."""
        return bool(self.key_content or self.key_file)

    @property
    def has_password(self) -> bool:
        """Check if password is available."""
        return self.password is not None

    @property
    def auth_methods(self) -> List[str]:
        """List available authentication methods."""
        methods = []
        if self.has_key:
            methods.append(AuthMethod.PUBLICKEY.value)
        if self.has_password:
            methods.append(AuthMethod.PASSWORD.value)
        return methods
