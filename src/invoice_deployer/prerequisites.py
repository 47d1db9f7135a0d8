"""Local prerequisite checks run before any stage."""

from __future__ import annotations

import os
import platform
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Optional

import paramiko

from .errors import PrerequisiteMissing
from .utils.logging import get_logger

logger = get_logger(__name__)

SUPPORTED_SYSTEMS = ("Linux", "Darwin")
KEY_COMMENT = "invoiceninja-deployment"
KEY_BITS = 4096


def generate_key_pair(private_path: Path, *, bits: int = KEY_BITS) -> Path:
    """Write an unencrypted RSA key pair; returns the public key path."""
    private_path.parent.mkdir(parents=True, exist_ok=True)
    key = paramiko.RSAKey.generate(bits)
    key.write_private_key_file(str(private_path))
    os.chmod(private_path, 0o600)
    public_path = private_path.with_name(private_path.name + ".pub")
    public_path.write_text(
        f"{key.get_name()} {key.get_base64()} {KEY_COMMENT}\n", encoding="utf-8"
    )
    return public_path


class PrerequisiteChecker:
    """Verifies the operator workstation can run a deployment."""

    def __init__(
        self,
        key_path: str,
        *,
        system: Callable[[], str] = platform.system,
        which: Callable[[str], Optional[str]] = shutil.which,
        run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        key_generator: Callable[[Path], Path] = generate_key_pair,
    ) -> None:
        self.key_path = Path(os.path.expanduser(key_path))
        self._system = system
        self._which = which
        self._run = run
        self._generate_key = key_generator

    def check(self, *, provisioning: bool) -> None:
        """Raise PrerequisiteMissing on the first unmet requirement.

        `provisioning` adds the AWS CLI and credential checks needed by
        modes that run Terraform apply.
        """
        self.check_platform()
        self.require_tool("terraform")
        if provisioning:
            self.require_tool("aws")
            self.check_aws_credentials()
        self.ensure_ssh_key()

    def check_platform(self) -> None:
        system = self._system()
        if system not in SUPPORTED_SYSTEMS:
            raise PrerequisiteMissing(
                f"Unsupported operating system {system!r}; Linux or macOS is required"
            )

    def require_tool(self, name: str) -> None:
        if not self._which(name):
            raise PrerequisiteMissing(f"{name} is required but not installed")
        logger.info("✓ %s is available", name)

    def check_aws_credentials(self) -> None:
        try:
            result = self._run(
                ["aws", "sts", "get-caller-identity"],
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise PrerequisiteMissing("aws is required but not installed") from exc
        if result.returncode != 0:
            raise PrerequisiteMissing(
                "AWS credentials not configured. Run 'aws configure' first"
            )
        logger.info("✓ AWS credentials configured")

    def ensure_ssh_key(self) -> None:
        public_path = self.key_path.with_name(self.key_path.name + ".pub")
        if self.key_path.is_file() and public_path.is_file():
            logger.info("✓ SSH key pair exists")
            return
        if self.key_path.is_file():
            raise PrerequisiteMissing(
                f"SSH public key not found at {public_path} for existing key {self.key_path}"
            )
        logger.warning("SSH key not found at %s, generating a new key pair...", self.key_path)
        try:
            self._generate_key(self.key_path)
        except (OSError, paramiko.SSHException) as exc:
            raise PrerequisiteMissing(f"Could not generate SSH key pair: {exc}") from exc
        logger.info("✓ SSH key pair generated")
