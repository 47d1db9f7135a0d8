"""Data models for the deployment pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..record import DeploymentParameters, DeploymentRecord


class Stage(str, Enum):
    """One ordered phase of the pipeline."""
    PROVISION_INFRA = "ProvisionInfra"
    WAIT_READY = "WaitReady"
    HOST_BOOTSTRAP = "HostBootstrap"
    APPLICATION_DEPLOY = "ApplicationDeploy"
    VERIFY = "Verify"


class DeployMode(str, Enum):
    """Selects which stages a run executes."""
    FULL = "full"
    INFRA_ONLY = "infra-only"
    APP_ONLY = "app-only"

    @property
    def stages(self) -> Tuple[Stage, ...]:
        return MODE_STAGES[self]

    @property
    def requires_record(self) -> bool:
        """App-only runs read an existing record instead of creating one."""
        return Stage.PROVISION_INFRA not in self.stages


MODE_STAGES: Dict[DeployMode, Tuple[Stage, ...]] = {
    DeployMode.FULL: (
        Stage.PROVISION_INFRA,
        Stage.WAIT_READY,
        Stage.HOST_BOOTSTRAP,
        Stage.APPLICATION_DEPLOY,
        Stage.VERIFY,
    ),
    DeployMode.INFRA_ONLY: (Stage.PROVISION_INFRA,),
    DeployMode.APP_ONLY: (
        Stage.WAIT_READY,
        Stage.HOST_BOOTSTRAP,
        Stage.APPLICATION_DEPLOY,
        Stage.VERIFY,
    ),
}


class StageStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class StageResult:
    stage: Stage
    status: StageStatus = StageStatus.PENDING
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    error: Optional[str] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if not (self.started_at and self.finished_at):
            return None
        start = datetime.fromisoformat(self.started_at)
        end = datetime.fromisoformat(self.finished_at)
        return (end - start).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "status": self.status.value,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "duration_seconds": self.duration_seconds,
            "error": self.error,
        }


@dataclass
class DeployContext:
    """State handed from stage to stage within one run."""

    mode: DeployMode
    branch: str
    record: Optional[DeploymentRecord] = None
    parameters: Optional[DeploymentParameters] = None
    warnings: List[str] = field(default_factory=list)
    backups: List[str] = field(default_factory=list)
    seeded: Optional[bool] = None


@dataclass
class PipelineReport:
    mode: DeployMode
    branch: str
    results: List[StageResult] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    record: Optional[DeploymentRecord] = None
    app_url: Optional[str] = None
    started_at: str = field(default_factory=lambda: datetime.now().isoformat())
    finished_at: Optional[str] = None
    log_file: Optional[str] = None

    @property
    def success(self) -> bool:
        return all(r.status == StageStatus.SUCCESS for r in self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "branch": self.branch,
            "status": "success" if self.success else "failed",
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "stages": [r.to_dict() for r in self.results],
            "warnings": list(self.warnings),
            "instance_ip": self.record.instance_ip if self.record else None,
            "instance_id": self.record.instance_id if self.record else None,
            "app_url": self.app_url,
        }
