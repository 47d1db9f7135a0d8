"""SSH session management built on Paramiko."""

from __future__ import annotations

import socket
import sys
import time
from typing import Callable, Optional

import paramiko

from .credentials import SSHCredentials
from .executor import CommandResult


class SSHConnectionError(RuntimeError):
    """Raised when an SSH connection cannot be established."""

    pass


class SSHSession:
    """High-level wrapper around paramiko.SSHClient implementing RemoteExecutor."""

    def __init__(
        self,
        credentials: SSHCredentials,
        *,
        client_factory: Callable[[], paramiko.SSHClient] | None = None,
        stream_output: bool = False,
    ) -> None:
        self.credentials = credentials
        self.stream_output = stream_output
        self._client_factory = client_factory or paramiko.SSHClient
        self._client: Optional[paramiko.SSHClient] = None

    def __enter__(self) -> "SSHSession":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    @property
    def connected(self) -> bool:
        return self._client is not None

    def connect(self) -> None:
        if self._client:
            return
        client = self._client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            connect_kwargs = {
                "hostname": self.credentials.host,
                "port": self.credentials.port,
                "username": self.credentials.username,
                "timeout": self.credentials.timeout,
                "look_for_keys": False,
                "allow_agent": False,
                "key_filename": self.credentials.expanded_key_path,
            }
            if self.credentials.passphrase:
                connect_kwargs["passphrase"] = self.credentials.passphrase
            client.connect(**connect_kwargs)
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            raise SSHConnectionError(str(exc)) from exc
        self._client = client

    def close(self) -> None:
        if self._client:
            self._client.close()
            self._client = None

    def run(
        self,
        command: str,
        *,
        timeout: Optional[int] = None,
        stream_output: Optional[bool] = None,
    ) -> CommandResult:
        """
        Execute a command on the remote server.

        Args:
            command: The command to execute
            timeout: Total timeout in seconds; None waits until the command exits
            stream_output: Echo output to the local terminal while it arrives.
                Defaults to the session setting.

        Returns:
            CommandResult with command output and exit status
        """
        if not self._client:
            self.connect()
        assert self._client is not None

        stream = self.stream_output if stream_output is None else stream_output
        stdin, stdout, stderr = self._client.exec_command(command, timeout=timeout)

        if stream:
            return self._collect_streaming(command, stdout, stderr, timeout)

        if timeout is not None:
            stdout.channel.settimeout(float(timeout))
        try:
            # Drain both streams first; a full channel window blocks the exit status
            stdout_text = stdout.read().decode("utf-8", errors="replace")
            stderr_text = stderr.read().decode("utf-8", errors="replace")
            exit_status = stdout.channel.recv_exit_status()
        except socket.timeout:
            stdout.channel.close()
            return CommandResult(
                command=command,
                stdout="",
                stderr=f"TIMEOUT: Command did not complete within {timeout} seconds.",
                exit_status=-1,
            )

        return CommandResult(
            command=command,
            stdout=stdout_text.strip(),
            stderr=stderr_text.strip(),
            exit_status=exit_status,
        )

    def _collect_streaming(self, command, stdout, stderr, timeout) -> CommandResult:
        stdout_chunks: list[str] = []
        stderr_chunks: list[str] = []
        channel = stdout.channel
        channel.setblocking(0)
        start_time = time.time()

        def drain() -> None:
            while channel.recv_ready():
                chunk = channel.recv(4096).decode("utf-8", errors="replace")
                stdout_chunks.append(chunk)
                sys.stdout.write(chunk)
                sys.stdout.flush()
            while channel.recv_stderr_ready():
                chunk = channel.recv_stderr(4096).decode("utf-8", errors="replace")
                stderr_chunks.append(chunk)
                sys.stderr.write(chunk)
                sys.stderr.flush()

        while not channel.exit_status_ready():
            drain()
            if timeout is not None and time.time() - start_time > timeout:
                channel.close()
                return CommandResult(
                    command=command,
                    stdout="".join(stdout_chunks).strip(),
                    stderr=f"TIMEOUT: Command exceeded {timeout} seconds.",
                    exit_status=-2,
                )
            time.sleep(0.1)

        drain()
        exit_status = channel.recv_exit_status()
        return CommandResult(
            command=command,
            stdout="".join(stdout_chunks).strip(),
            stderr="".join(stderr_chunks).strip(),
            exit_status=exit_status,
        )

    def copy(self, local_path: str, remote_path: str) -> None:
        """Upload a local file over SFTP."""
        if not self._client:
            self.connect()
        assert self._client is not None
        with self._client.open_sftp() as sftp:
            sftp.put(local_path, remote_path)

    def upload_text(self, content: str, remote_path: str) -> None:
        """Write `content` to `remote_path` over SFTP."""
        if not self._client:
            self.connect()
        assert self._client is not None
        with self._client.open_sftp() as sftp:
            with sftp.open(remote_path, "w") as handle:
                handle.write(content)
