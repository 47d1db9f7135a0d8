"""Pipeline runner: executes the stages a deployment mode selects."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

import paramiko

from ..errors import DeployerError, RemoteStageFailed
from ..ssh.session import SSHConnectionError
from ..utils.logging import log_header
from .models import DeployContext, PipelineReport, Stage, StageResult, StageStatus

logger = logging.getLogger(__name__)

StageAction = Callable[[DeployContext], None]
Finalizer = Callable[[], None]


class PipelineRunner:
    """
    Runs the stage list for a mode in order.

    The first fatal error stops the run, is tagged with the failing stage and
    propagates to the caller. Finalizers run after every run, successful or
    not. Each run is logged as JSON under `log_dir`.
    """

    def __init__(
        self,
        actions: Mapping[Stage, StageAction],
        *,
        finalizers: Sequence[Finalizer] = (),
        log_dir: Optional[Path] = None,
    ) -> None:
        self.actions = dict(actions)
        self.finalizers = list(finalizers)
        self.log_dir = Path(log_dir) if log_dir else Path.cwd() / "deploy_logs"
        self.deployment_log: Dict[str, Any] = {}
        self.current_log_file: Optional[Path] = None

    def run(self, ctx: DeployContext) -> PipelineReport:
        stages = ctx.mode.stages
        missing = [stage.value for stage in stages if stage not in self.actions]
        if missing:
            raise ValueError(f"No action registered for stages: {', '.join(missing)}")

        report = PipelineReport(mode=ctx.mode, branch=ctx.branch)
        report.results = [StageResult(stage=stage) for stage in stages]
        self._init_log(ctx)
        report.log_file = str(self.current_log_file)

        try:
            for index, result in enumerate(report.results, 1):
                log_header(logger, f"Stage {index}/{len(stages)}: {result.stage.value}")
                result.status = StageStatus.RUNNING
                result.started_at = datetime.now().isoformat()
                try:
                    self._invoke(result.stage, ctx)
                except DeployerError as exc:
                    exc.with_stage(result.stage.value)
                    result.status = StageStatus.FAILED
                    result.error = str(exc)
                    raise
                finally:
                    result.finished_at = datetime.now().isoformat()
                    self._sync(report, ctx)
                result.status = StageStatus.SUCCESS
                self._sync(report, ctx)
        except DeployerError:
            self._finalize(report, ctx, "failed")
            raise
        except BaseException:
            self._finalize(report, ctx, "aborted")
            raise
        self._finalize(report, ctx, "success")
        return report

    def _invoke(self, stage: Stage, ctx: DeployContext) -> None:
        try:
            self.actions[stage](ctx)
        except SSHConnectionError as exc:
            raise RemoteStageFailed(
                "ssh connect",
                -1,
                str(exc),
                description="Opening SSH connection",
                stage=stage.value,
            ) from exc
        except (paramiko.SSHException, OSError) as exc:
            raise RemoteStageFailed(
                "ssh session",
                -1,
                f"{type(exc).__name__}: {exc}",
                description="Talking to the remote host",
                stage=stage.value,
            ) from exc

    def _finalize(self, report: PipelineReport, ctx: DeployContext, status: str) -> None:
        for finalizer in self.finalizers:
            try:
                finalizer()
            except OSError as exc:
                logger.warning("Cleanup step failed: %s", exc)
        report.finished_at = datetime.now().isoformat()
        self._sync(report, ctx)
        self._finalize_log(report, status)

    def _sync(self, report: PipelineReport, ctx: DeployContext) -> None:
        report.warnings = list(ctx.warnings)
        report.record = ctx.record
        if ctx.parameters and ctx.parameters.app_url:
            report.app_url = ctx.parameters.app_url
        elif ctx.record:
            report.app_url = f"http://{ctx.record.instance_ip}"
        payload = report.to_dict()
        # Run status is owned by _finalize_log
        payload.pop("status")
        self.deployment_log.update(payload)
        self.deployment_log["backups"] = list(ctx.backups)
        self.deployment_log["seeded"] = ctx.seeded
        self._save_log()

    def _init_log(self, ctx: DeployContext) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.current_log_file = self.log_dir / f"deploy_{ctx.mode.value}_{timestamp}.json"
        self.deployment_log = {
            "version": "1.0",
            "mode": ctx.mode.value,
            "branch": ctx.branch,
            "start_time": datetime.now().isoformat(),
            "end_time": None,
            "status": "running",
            "stages": [],
        }
        logger.info("📝 Logging to: %s", self.current_log_file)
        self._save_log()

    def _finalize_log(self, report: PipelineReport, status: str) -> None:
        self.deployment_log["end_time"] = report.finished_at
        self.deployment_log["status"] = status
        self.deployment_log["duration_seconds"] = self._calculate_duration()
        self._save_log()
        logger.info("📄 Log saved to: %s", self.current_log_file)

    def _calculate_duration(self) -> float:
        start = datetime.fromisoformat(self.deployment_log["start_time"])
        end = datetime.fromisoformat(self.deployment_log["end_time"])
        return (end - start).total_seconds()

    def _save_log(self) -> None:
        if self.current_log_file:
            with open(self.current_log_file, "w", encoding="utf-8") as f:
                json.dump(self.deployment_log, f, indent=2, ensure_ascii=False)
