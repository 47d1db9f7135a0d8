"""SSH utilities for invoice-deployer."""

from .credentials import SSHCredentials
from .executor import CommandResult, RemoteExecutor
from .session import SSHConnectionError, SSHSession
from .probe import ReachabilityProbe

__all__ = [
    "SSHCredentials",
    "CommandResult",
    "RemoteExecutor",
    "SSHConnectionError",
    "SSHSession",
    "ReachabilityProbe",
]
