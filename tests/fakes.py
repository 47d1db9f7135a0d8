"""In-memory stand-ins for SSH, Terraform and HTTP used across the tests."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from invoice_deployer.errors import ProvisioningFailed
from invoice_deployer.provisioning import TerraformRunner
from invoice_deployer.ssh.executor import CommandResult

FIXED_NOW = datetime(2024, 3, 5, 14, 30, 15)


def fixed_clock() -> datetime:
    return FIXED_NOW


class FakeExecutor:
    """Scripted RemoteExecutor: every command succeeds unless told otherwise.

    Responses registered later take precedence over earlier ones.
    """

    def __init__(self) -> None:
        self._responses: List[Tuple[str, bool, CommandResult]] = []
        self.commands: List[str] = []
        self.uploads: Dict[str, str] = {}
        self.copies: List[Tuple[str, str]] = []
        self.connected = False
        self.closed = False

    def on(
        self,
        fragment: str,
        *,
        stdout: str = "",
        stderr: str = "",
        exit_status: int = 0,
        exact: bool = False,
    ) -> "FakeExecutor":
        self._responses.insert(
            0, (fragment, exact, CommandResult(fragment, stdout, stderr, exit_status))
        )
        return self

    def run(self, command: str, *, timeout: Optional[int] = None) -> CommandResult:
        self.commands.append(command)
        for fragment, exact, canned in self._responses:
            if (command == fragment) if exact else (fragment in command):
                return CommandResult(command, canned.stdout, canned.stderr, canned.exit_status)
        return CommandResult(command, "", "", 0)

    def copy(self, local_path: str, remote_path: str) -> None:
        self.copies.append((local_path, remote_path))

    def upload_text(self, content: str, remote_path: str) -> None:
        self.uploads[remote_path] = content

    def connect(self) -> None:
        self.connected = True

    def close(self) -> None:
        self.closed = True

    def ran(self, fragment: str) -> List[str]:
        return [command for command in self.commands if fragment in command]


class FakeTerraform(TerraformRunner):
    """TerraformRunner that records subcommands instead of spawning terraform."""

    def __init__(
        self,
        working_dir: Path,
        outputs: Optional[Dict[str, str]] = None,
        fail_on: Iterable[str] = (),
    ) -> None:
        super().__init__(working_dir)
        self.outputs = dict(outputs or {})
        self.fail_on = set(fail_on)
        self.calls: List[List[str]] = []

    @property
    def subcommands(self) -> List[str]:
        return [args[0] for args in self.calls]

    def _run(self, args: list[str], *, capture: bool = False) -> str:
        self.calls.append(list(args))
        command = [self.binary] + args
        if args[0] in self.fail_on:
            raise ProvisioningFailed(command, 1, "simulated failure")
        if args[0] == "plan":
            plan_file = args[-1].split("=", 1)[1]
            (self.working_dir / plan_file).write_text("plan", encoding="utf-8")
        if args[0] == "output":
            key = args[-1]
            if key not in self.outputs:
                raise ProvisioningFailed(command, 1, f"Output {key!r} not found")
            return self.outputs[key]
        return ""


class FakeProbe:
    """Reachability probe answering from a fixed script, then `default`."""

    def __init__(self, results: Iterable[bool] = (), default: bool = True) -> None:
        self.results = list(results)
        self.default = default
        self.calls: List[Tuple[str, str]] = []

    def check(self, host: str, command: str = "echo 'Instance ready'") -> bool:
        self.calls.append((host, command))
        if self.results:
            return self.results.pop(0)
        return self.default


class FakeResponse:
    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code


class FakeHttp:
    def __init__(self, status_code: int = 200, error: Optional[Exception] = None) -> None:
        self.status_code = status_code
        self.error = error
        self.calls: List[Tuple[str, dict]] = []

    def __call__(self, url: str, **kwargs) -> FakeResponse:
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return FakeResponse(self.status_code)


class StubPrerequisites:
    def __init__(self) -> None:
        self.calls: List[bool] = []

    def check(self, *, provisioning: bool) -> None:
        self.calls.append(provisioning)


def write_terraform_dir(path: Path, *, tfvars: bool = True) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    (path / "main.tf").write_text("# test\n", encoding="utf-8")
    if tfvars:
        (path / "terraform.tfvars").write_text('region = "us-east-1"\n', encoding="utf-8")
    return path
