"""Thin wrapper over the `terraform` CLI."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional

from ..errors import ProvisioningFailed


class TerraformRunner:
    """Wraps `terraform` commands run inside one configuration directory.

    init/plan/apply inherit the terminal so the operator sees Terraform's own
    progress output; `output` is captured.
    """

    def __init__(self, working_dir: Path, binary: str = "terraform") -> None:
        self.working_dir = Path(working_dir)
        self.binary = binary

    def init(self) -> None:
        self._run(["init", "-input=false"])

    def plan(self, plan_file: str) -> None:
        self._run(["plan", "-input=false", f"-out={plan_file}"])

    def apply(self, plan_file: str) -> None:
        self._run(["apply", "-input=false", plan_file])

    def output(self, key: str) -> str:
        return self._run(["output", "-raw", key], capture=True).strip()

    def optional_output(self, key: str) -> Optional[str]:
        """Return an output value, or None when Terraform does not define it."""
        try:
            value = self.output(key)
        except ProvisioningFailed:
            return None
        return value or None

    def _run(self, args: list[str], *, capture: bool = False) -> str:
        command = [self.binary] + args
        try:
            process = subprocess.run(
                command,
                cwd=str(self.working_dir),
                capture_output=capture,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise ProvisioningFailed(command, 127, str(exc)) from exc
        if process.returncode != 0:
            stderr = (process.stderr or "").strip() if capture else ""
            raise ProvisioningFailed(command, process.returncode, stderr)
        return process.stdout if capture else ""
