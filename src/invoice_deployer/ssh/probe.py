"""SSH reachability checks shared by readiness polling and verification."""

from __future__ import annotations

import logging
from typing import Callable, Optional

import paramiko

from .credentials import SSHCredentials
from .session import SSHConnectionError, SSHSession

logger = logging.getLogger(__name__)

SessionFactory = Callable[[SSHCredentials], SSHSession]


class ReachabilityProbe:
    """Opens a short-lived session and runs a trivial command."""

    def __init__(
        self,
        username: str,
        key_path: Optional[str],
        *,
        port: int = 22,
        timeout: int = 5,
        session_factory: Optional[SessionFactory] = None,
    ) -> None:
        self.username = username
        self.key_path = key_path
        self.port = port
        self.timeout = timeout
        self._session_factory = session_factory or SSHSession

    def check(self, host: str, command: str = "echo 'Instance ready'") -> bool:
        credentials = SSHCredentials(
            host=host,
            username=self.username,
            port=self.port,
            key_path=self.key_path,
            timeout=self.timeout,
        )
        session = self._session_factory(credentials)
        try:
            result = session.run(command, timeout=self.timeout)
            return result.ok
        except (SSHConnectionError, paramiko.SSHException, OSError) as exc:
            logger.debug("SSH probe to %s failed: %s", host, exc)
            return False
        finally:
            session.close()
