"""SSH credential helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class SSHCredentials:
    """Normalized key-based login for the provisioned instance."""

    host: str
    username: str
    port: int = 22
    key_path: Optional[str] = None
    passphrase: Optional[str] = None
    timeout: int = 20

    def validate(self) -> None:
        if not self.host:
            raise ValueError("SSH host is required")
        if not self.key_path:
            raise ValueError("Key authentication selected but no key_path provided")

    @property
    def expanded_key_path(self) -> Optional[str]:
        if self.key_path is None:
            return None
        return os.path.expanduser(self.key_path)

    @property
    def target(self) -> str:
        return f"{self.username}@{self.host}"
