"""Checked remote command execution for pipeline stages."""

from __future__ import annotations

import posixpath
import shlex
from datetime import datetime
from typing import Callable, Optional

from ..errors import RemoteStageFailed
from ..ssh.executor import CommandResult, RemoteExecutor
from ..utils.logging import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def quote(value: str) -> str:
    return shlex.quote(value)


def mysql_command(
    user: str,
    password: str,
    sql: str,
    *,
    database: Optional[str] = None,
    sudo: bool = False,
    batch: bool = False,
) -> str:
    """Build a `mysql -e` invocation that passes the password via MYSQL_PWD."""
    parts = []
    if sudo:
        parts.append("sudo")
    parts.append(f"MYSQL_PWD={quote(password)}")
    parts.extend(["mysql", "-u", quote(user)])
    if database:
        parts.extend(["-D", quote(database)])
    if batch:
        parts.extend(["-N", "-B"])
    parts.extend(["-e", quote(sql)])
    return " ".join(parts)


def sql_literal(value: str) -> str:
    """Quote a value as a MariaDB string literal."""
    return "'" + value.replace("\\", "\\\\").replace("'", "''") + "'"


class RemoteShell:
    """Runs commands through a RemoteExecutor and fails fast on non-zero exit."""

    def __init__(self, executor: RemoteExecutor, stage: str) -> None:
        self.executor = executor
        self.stage = stage

    def run(
        self,
        command: str,
        description: Optional[str] = None,
        *,
        check: bool = True,
    ) -> CommandResult:
        if description:
            logger.info("%s...", description)
        result = self.executor.run(command)
        if not result.ok:
            if check:
                raise RemoteStageFailed(
                    command,
                    result.exit_status,
                    result.stderr,
                    description=description,
                    stage=self.stage,
                )
            logger.debug("Ignoring exit status %s from: %s", result.exit_status, command)
        return result

    def succeeds(self, command: str) -> bool:
        """Run a test command; a non-zero exit means false, not failure."""
        return self.executor.run(command).ok

    def output(self, command: str, description: Optional[str] = None) -> str:
        return self.run(command, description).stdout

    def install_file(
        self,
        content: str,
        destination: str,
        *,
        mode: str = "644",
        owner: str = "root",
        description: Optional[str] = None,
    ) -> None:
        """Upload `content` to a staging path and move it into place with sudo."""
        staging = f"/tmp/invoice-deployer-{posixpath.basename(destination)}"
        if description:
            logger.info("%s...", description)
        self.executor.upload_text(content, staging)
        self.run(
            f"sudo install -m {mode} -o {owner} -g {owner} {quote(staging)} {quote(destination)}"
            f" && rm -f {quote(staging)}"
        )
