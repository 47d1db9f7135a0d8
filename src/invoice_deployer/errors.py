"""Error taxonomy for deployment runs.

Every fatal condition is a ``DeployerError``. The CLI catches the base class,
logs it and exits non-zero; nothing below it retries except the readiness
poller.
"""

from __future__ import annotations

from typing import Optional


class DeployerError(RuntimeError):
    """Base class for fatal deployment errors."""

    def __init__(self, message: str, *, stage: Optional[str] = None) -> None:
        self.message = message
        self.stage = stage
        super().__init__(message)

    def with_stage(self, stage: str) -> "DeployerError":
        if self.stage is None:
            self.stage = stage
        return self

    def __str__(self) -> str:
        if self.stage:
            return f"[{self.stage}] {self.message}"
        return self.message


class ConfigurationMissing(DeployerError):
    """A required file, template or value is absent."""


class PrerequisiteMissing(DeployerError):
    """A required local tool, credential or key is absent."""


class UserAborted(DeployerError):
    """The operator declined a confirmation gate."""


class ProvisioningFailed(DeployerError):
    """Terraform exited with a non-zero status."""

    def __init__(self, command: list[str], exit_code: int, stderr: str = "") -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        detail = f": {stderr}" if stderr else ""
        super().__init__(
            f"Command {' '.join(command)} failed with code {exit_code}{detail}"
        )


class ReadinessTimeout(DeployerError):
    """The host never accepted SSH commands within the polling budget."""

    def __init__(self, address: str, attempts: int) -> None:
        self.address = address
        self.attempts = attempts
        super().__init__(
            f"Instance {address} did not become ready after {attempts} attempts"
        )


class RemoteStageFailed(DeployerError):
    """A remote command returned a non-zero exit status."""

    def __init__(
        self,
        command: str,
        exit_status: int,
        stderr: str = "",
        *,
        description: Optional[str] = None,
        stage: Optional[str] = None,
    ) -> None:
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr
        self.description = description
        what = description or command
        detail = f": {stderr}" if stderr else ""
        super().__init__(
            f"Remote step '{what}' failed with exit status {exit_status}{detail}",
            stage=stage,
        )


class VerificationWarning(Exception):
    """Non-fatal post-deploy check failure.

    Raised inside a single probe and collected by the verifier; it never
    escapes a pipeline run.
    """

    def __init__(self, check: str, detail: str) -> None:
        self.check = check
        self.detail = detail
        super().__init__(f"{check}: {detail}")
