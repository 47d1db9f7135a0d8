"""Deployment pipeline: stage models, remote stages and the runner."""

from .app_deploy import ApplicationDeploy, needs_seed
from .bootstrap import HostBootstrap
from .models import (
    MODE_STAGES,
    DeployContext,
    DeployMode,
    PipelineReport,
    Stage,
    StageResult,
    StageStatus,
)
from .pipeline import PipelineRunner
from .readiness import ReadinessPoller
from .remote import RemoteShell
from .verify import Verifier

__all__ = [
    "ApplicationDeploy",
    "needs_seed",
    "HostBootstrap",
    "MODE_STAGES",
    "DeployContext",
    "DeployMode",
    "PipelineReport",
    "Stage",
    "StageResult",
    "StageStatus",
    "PipelineRunner",
    "ReadinessPoller",
    "RemoteShell",
    "Verifier",
]
