"""The remote execution capability the pipeline stages depend on."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass
class CommandResult:
    command: str
    stdout: str
    stderr: str
    exit_status: int

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class RemoteExecutor(Protocol):
    """Runs shell commands and transfers files on one remote host."""

    def run(self, command: str, *, timeout: Optional[int] = None) -> CommandResult:
        ...

    def copy(self, local_path: str, remote_path: str) -> None:
        ...

    def upload_text(self, content: str, remote_path: str) -> None:
        ...
