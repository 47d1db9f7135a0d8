"""Verify stage: post-deploy checks that only ever warn."""

from __future__ import annotations

from typing import Callable, List, Optional

import paramiko
import requests

from ..errors import VerificationWarning
from ..ssh.executor import RemoteExecutor
from ..utils.logging import get_logger
from .bootstrap import MONITOR_HELPER_PATH
from .readiness import Probe

logger = get_logger(__name__)

HttpGet = Callable[..., requests.Response]


class Verifier:
    """Runs the HTTP, SSH and status-helper checks and collects failures."""

    def __init__(
        self,
        executor: RemoteExecutor,
        probe: Probe,
        *,
        http_get: Optional[HttpGet] = None,
        http_timeout: int = 10,
    ) -> None:
        self.executor = executor
        self.probe = probe
        self._http_get = http_get or requests.get
        self.http_timeout = http_timeout

    def run(self, address: str) -> List[VerificationWarning]:
        warnings: List[VerificationWarning] = []
        for check in (self.check_http, self.check_ssh, self.check_status):
            try:
                check(address)
            except VerificationWarning as warning:
                logger.warning("%s", warning)
                warnings.append(warning)
        if not warnings:
            logger.info("✓ All verification checks passed")
        return warnings

    def check_http(self, address: str) -> None:
        url = f"http://{address}"
        logger.info("Testing HTTP response from %s...", url)
        try:
            response = self._http_get(
                url, timeout=self.http_timeout, allow_redirects=False
            )
        except requests.RequestException as exc:
            raise VerificationWarning("http", f"{url} unreachable: {exc}") from exc
        if response.status_code != 200:
            raise VerificationWarning(
                "http", f"{url} returned HTTP {response.status_code}"
            )
        logger.info("✓ Application is responding (HTTP 200)")

    def check_ssh(self, address: str) -> None:
        logger.info("Testing SSH connection...")
        if not self.probe.check(address, "echo 'SSH working'"):
            raise VerificationWarning("ssh", f"SSH round trip to {address} failed")
        logger.info("✓ SSH connection working")

    def check_status(self, address: str) -> None:
        logger.info("Checking service status on %s...", address)
        try:
            result = self.executor.run(f"sudo {MONITOR_HELPER_PATH}")
        except (paramiko.SSHException, OSError, RuntimeError) as exc:
            raise VerificationWarning("status", f"status helper unavailable: {exc}") from exc
        if not result.ok:
            raise VerificationWarning(
                "status",
                f"status helper exited with {result.exit_status}: {result.stderr}",
            )
        for line in result.stdout.splitlines():
            logger.info("  %s", line)
