"""High-level workflow orchestration."""

from __future__ import annotations

import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Optional

from .config import AppConfig
from .errors import ConfigurationMissing
from .interaction import CLIInteractionHandler, UserInteractionHandler
from .maintenance import BackupResult, BackupRoutine, SSLSetup
from .orchestrator import (
    ApplicationDeploy,
    DeployContext,
    DeployMode,
    HostBootstrap,
    PipelineReport,
    PipelineRunner,
    ReadinessPoller,
    Stage,
    Verifier,
)
from .orchestrator.pipeline import StageAction
from .orchestrator.remote import Clock
from .orchestrator.verify import HttpGet
from .paths import get_logs_dir
from .prerequisites import PrerequisiteChecker
from .provisioning import Provisioner, TerraformRunner
from .record import DeploymentParameters, DeploymentRecord, RecordStore
from .ssh import ReachabilityProbe, SSHCredentials, SSHSession
from .utils.logging import get_logger, log_header

logger = get_logger(__name__)

SessionFactory = Callable[[SSHCredentials], SSHSession]


def _default_session_factory(credentials: SSHCredentials) -> SSHSession:
    return SSHSession(credentials, stream_output=True)


class DeploymentWorkflow:
    """Wires configuration, Terraform, SSH and the stages for one invocation.

    Every external dependency can be injected so the workflow runs against
    fakes in tests.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        interaction_handler: Optional[UserInteractionHandler] = None,
        terraform: Optional[TerraformRunner] = None,
        session_factory: Optional[SessionFactory] = None,
        probe: Optional[ReachabilityProbe] = None,
        prerequisites: Optional[PrerequisiteChecker] = None,
        http_get: Optional[HttpGet] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Clock = datetime.now,
        log_dir: Optional[Path] = None,
    ) -> None:
        self.config = config
        self.interaction_handler = interaction_handler or CLIInteractionHandler()
        self.terraform = terraform or TerraformRunner(
            Path(config.terraform.directory), binary=config.terraform.binary
        )
        self.record_store = RecordStore(Path(config.terraform.record_path))
        self._session_factory = session_factory or _default_session_factory
        self.probe = probe or ReachabilityProbe(
            config.ssh.username,
            config.ssh.key_path,
            port=config.ssh.port,
            timeout=config.ssh.probe_timeout,
        )
        self.prerequisites = prerequisites or PrerequisiteChecker(config.ssh.key_path)
        self._http_get = http_get
        self._sleep = sleep
        self._clock = clock
        self.log_dir = log_dir
        self._session: Optional[SSHSession] = None

    # ------------------------------------------------------------------
    # Deployment pipeline
    # ------------------------------------------------------------------

    def run_deploy(
        self,
        mode: DeployMode,
        branch: str,
        *,
        skip_confirmation: bool = False,
    ) -> PipelineReport:
        log_header(logger, "INVOICE NINJA AWS DEPLOYMENT")
        logger.info("Deployment mode: %s", mode.value)
        logger.info("Branch: %s", branch)
        logger.info("Skip confirmation: %s", skip_confirmation)

        self.prerequisites.check(provisioning=not mode.requires_record)

        provisioner = Provisioner(
            self.terraform,
            self.record_store,
            self.interaction_handler,
            plan_file=self.config.terraform.plan_file,
            skip_confirmation=skip_confirmation,
        )
        ctx = DeployContext(mode=mode, branch=branch)
        if mode.requires_record:
            # Fail on a missing record or password before any SSH traffic
            ctx.record = self.record_store.load()
            ctx.parameters = provisioner.deployment_parameters(branch, ctx.record)
            logger.info("Using instance %s from %s", ctx.record.instance_ip, self.record_store.path)

        runner = PipelineRunner(
            self._stage_actions(provisioner),
            finalizers=[provisioner.cleanup, self._close_session],
            log_dir=self.log_dir or get_logs_dir(),
        )
        report = runner.run(ctx)
        self.display_summary(report)
        return report

    def _stage_actions(self, provisioner: Provisioner) -> Dict[Stage, StageAction]:
        def provision(ctx: DeployContext) -> None:
            ctx.record = provisioner.plan_and_apply()
            if ctx.mode is not DeployMode.INFRA_ONLY:
                ctx.parameters = provisioner.deployment_parameters(ctx.branch, ctx.record)

        def wait_ready(ctx: DeployContext) -> None:
            poller = ReadinessPoller(
                self.probe,
                max_attempts=self.config.readiness.max_attempts,
                interval=self.config.readiness.interval,
                sleep=self._sleep,
            )
            poller.wait_until_ready(self._record(ctx).instance_ip)

        def bootstrap(ctx: DeployContext) -> None:
            HostBootstrap(
                self._executor(ctx),
                self.config.application,
                self._parameters(ctx),
                login_user=self.config.ssh.username,
            ).run()

        def deploy_app(ctx: DeployContext) -> None:
            step = ApplicationDeploy(
                self._executor(ctx),
                self.config.application,
                self._parameters(ctx),
                login_user=self.config.ssh.username,
                clock=self._clock,
            )
            try:
                step.run()
            finally:
                ctx.backups.extend(step.backups)
                ctx.seeded = step.seeded

        def verify(ctx: DeployContext) -> None:
            verifier = Verifier(
                self._executor(ctx),
                self.probe,
                http_get=self._http_get,
                http_timeout=self.config.application.http_timeout,
            )
            for warning in verifier.run(self._record(ctx).instance_ip):
                ctx.warnings.append(str(warning))

        return {
            Stage.PROVISION_INFRA: provision,
            Stage.WAIT_READY: wait_ready,
            Stage.HOST_BOOTSTRAP: bootstrap,
            Stage.APPLICATION_DEPLOY: deploy_app,
            Stage.VERIFY: verify,
        }

    @staticmethod
    def _record(ctx: DeployContext) -> DeploymentRecord:
        if ctx.record is None:
            raise ConfigurationMissing("Instance IP not found. Please deploy infrastructure first.")
        return ctx.record

    @staticmethod
    def _parameters(ctx: DeployContext) -> DeploymentParameters:
        if ctx.parameters is None:
            raise ConfigurationMissing("Deployment parameters were not resolved")
        return ctx.parameters

    def _credentials(self, host: str) -> SSHCredentials:
        credentials = SSHCredentials(
            host=host,
            username=self.config.ssh.username,
            port=self.config.ssh.port,
            key_path=self.config.ssh.key_path,
            timeout=self.config.ssh.connect_timeout,
        )
        try:
            credentials.validate()
        except ValueError as exc:
            raise ConfigurationMissing(str(exc)) from exc
        return credentials

    def _executor(self, ctx: DeployContext) -> SSHSession:
        if self._session is None:
            self._session = self._session_factory(
                self._credentials(self._record(ctx).instance_ip)
            )
            self._session.connect()
        return self._session

    def _close_session(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    def display_summary(self, report: PipelineReport) -> None:
        log_header(logger, "DEPLOYMENT SUMMARY")
        record = report.record
        ip = record.instance_ip if record else "your-instance-ip"
        user = self.config.ssh.username
        logger.info("=== DEPLOYMENT COMPLETED ===")
        logger.info("Application: %s", self.config.application.name)
        logger.info("Mode: %s", report.mode.value)
        logger.info("Branch: %s", report.branch)
        logger.info("Instance IP: %s", record.instance_ip if record else "Not available")
        logger.info("Instance ID: %s", (record.instance_id if record else "") or "Not available")
        logger.info(
            "Deployment Time: %s", (record.deployment_time if record else "") or "Not available"
        )
        if report.mode is DeployMode.INFRA_ONLY:
            logger.info("Next: run with --mode app-only to deploy the application")
        else:
            logger.info("Application URL: %s", report.app_url or f"http://{ip}")
        for warning in report.warnings:
            logger.warning("Verification warning: %s", warning)

        logger.info("=== USEFUL COMMANDS ===")
        logger.info("SSH to instance: ssh %s@%s", user, ip)
        logger.info(
            "View logs: ssh %s@%s 'tail -f %s/storage/logs/laravel.log'",
            user,
            ip,
            self.config.application.app_dir,
        )
        logger.info("Monitor system: ssh %s@%s 'sudo /usr/local/bin/monitor-invoiceninja.sh'", user, ip)
        logger.info("Redeploy app: ssh %s@%s 'sudo /usr/local/bin/deploy-invoiceninja.sh'", user, ip)
        if report.log_file:
            logger.info("Run log: %s", report.log_file)

    # ------------------------------------------------------------------
    # Maintenance routines
    # ------------------------------------------------------------------

    def _open_session(self, record: DeploymentRecord) -> SSHSession:
        session = self._session_factory(self._credentials(record.instance_ip))
        session.connect()
        return session

    def run_backup(self, db_password: Optional[str] = None) -> BackupResult:
        record = self.record_store.load()
        password = db_password or self.terraform.optional_output("db_password")
        if not password:
            raise ConfigurationMissing(
                "Database password is required (--db-password or Terraform output db_password)"
            )
        session = self._open_session(record)
        try:
            return BackupRoutine(
                session,
                self.config.application,
                self.config.backup,
                server_ip=record.instance_ip,
                login_user=self.config.ssh.username,
                clock=self._clock,
            ).run(password)
        finally:
            session.close()

    def run_ssl(self, domain: str, email: str) -> list[str]:
        record = self.record_store.load()
        session = self._open_session(record)
        try:
            return SSLSetup(
                session,
                self.config.application,
                server_ip=record.instance_ip,
                http_get=self._http_get,
            ).run(domain, email)
        finally:
            session.close()
