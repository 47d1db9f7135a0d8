"""Remote backup of the database, application tree and configuration."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ..config import ApplicationConfig, BackupConfig
from ..errors import ConfigurationMissing
from ..orchestrator.bootstrap import MARIADB_TUNING_PATH, NGINX_SITE_PATH, PHP_FPM_POOL_PATH
from ..orchestrator.remote import Clock, RemoteShell, quote
from ..ssh.executor import RemoteExecutor
from ..templating import BackupManifest, TemplateRenderer
from ..utils.logging import get_logger, log_header

logger = get_logger(__name__)

STAGE = "Backup"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
APP_EXCLUDES = (
    "storage/logs/*",
    "storage/framework/cache/*",
    "storage/framework/sessions/*",
    "storage/framework/views/*",
    "node_modules",
    ".git",
)
PRUNE_PATTERNS = ("*.gz", "*.txt")


@dataclass
class BackupResult:
    database: str
    application: str
    configuration: str
    manifest: str
    total_size: str = ""
    missing_configs: List[str] = field(default_factory=list)


class BackupRoutine:
    """Creates one timestamped backup set and prunes sets past retention."""

    def __init__(
        self,
        executor: RemoteExecutor,
        application: ApplicationConfig,
        backup: BackupConfig,
        *,
        server_ip: str = "Unknown",
        login_user: str = "ec2-user",
        renderer: Optional[TemplateRenderer] = None,
        clock: Clock = datetime.now,
    ) -> None:
        self.shell = RemoteShell(executor, STAGE)
        self.executor = executor
        self.application = application
        self.backup = backup
        self.server_ip = server_ip
        self.login_user = login_user
        self.renderer = renderer or TemplateRenderer()
        self._clock = clock

    def _path(self, name: str) -> str:
        return posixpath.join(self.backup.backup_dir, name)

    def run(self, db_password: str) -> BackupResult:
        if not db_password:
            raise ConfigurationMissing("Database password is required", stage=STAGE)

        log_header(logger, "INVOICE NINJA BACKUP")
        now = self._clock()
        timestamp = now.strftime(TIMESTAMP_FORMAT)
        backup_dir = quote(self.backup.backup_dir)
        owner = f"{self.login_user}:{self.login_user}"
        self.shell.run(
            f"sudo mkdir -p {backup_dir} && sudo chown {owner} {backup_dir}",
            "Preparing backup directory",
        )

        database = self.dump_database(db_password, timestamp)
        application = self.archive_application(timestamp)
        configuration, missing = self.archive_configuration(timestamp)
        manifest = self.write_manifest(now, timestamp, database, application, configuration)
        self.prune()

        result = BackupResult(
            database=database,
            application=application,
            configuration=configuration,
            manifest=manifest,
            total_size=self._size(self.backup.backup_dir, directory=True),
            missing_configs=missing,
        )
        logger.info("=== BACKUP SUMMARY ===")
        logger.info("Database backup: %s", result.database)
        logger.info("Application backup: %s", result.application)
        logger.info("Configuration backup: %s", result.configuration)
        logger.info("Manifest: %s", result.manifest)
        logger.info("Total backup size: %s", result.total_size)
        return result

    def dump_database(self, db_password: str, timestamp: str) -> str:
        target = self._path(f"database_backup_{timestamp}.sql.gz")
        self.shell.run(
            f"set -o pipefail; MYSQL_PWD={quote(db_password)} mysqldump"
            f" -u {quote(self.application.db_user)} {quote(self.application.db_name)}"
            f" | gzip > {quote(target)}",
            "Creating database backup",
        )
        return target

    def archive_application(self, timestamp: str) -> str:
        target = self._path(f"app_backup_{timestamp}.tar.gz")
        parent, name = posixpath.split(self.application.app_dir.rstrip("/"))
        excludes = " ".join(
            f"--exclude={quote(posixpath.join(name, pattern))}" for pattern in APP_EXCLUDES
        )
        self.shell.run(
            f"sudo tar -czf {quote(target)} {excludes} -C {quote(parent or '/')} {quote(name)}",
            "Creating application files backup",
        )
        return target

    def archive_configuration(self, timestamp: str) -> tuple[str, List[str]]:
        target = self._path(f"config_backup_{timestamp}.tar.gz")
        candidates = [
            NGINX_SITE_PATH,
            PHP_FPM_POOL_PATH,
            MARIADB_TUNING_PATH,
            posixpath.join(self.application.app_dir, ".env"),
        ]
        present = [path for path in candidates if self.shell.succeeds(f"sudo test -f {quote(path)}")]
        missing = [path for path in candidates if path not in present]
        for path in missing:
            logger.warning("Configuration file not found, skipping: %s", path)
        if not present:
            logger.warning("No configuration files found; configuration backup skipped")
            return "", missing
        files = " ".join(quote(path) for path in present)
        self.shell.run(
            f"sudo tar -czf {quote(target)} {files}",
            "Creating configuration backup",
        )
        return target, missing

    def write_manifest(
        self,
        now: datetime,
        timestamp: str,
        database: str,
        application: str,
        configuration: str,
    ) -> str:
        target = self._path(f"backup_manifest_{timestamp}.txt")
        manifest = BackupManifest(
            generated=now.strftime("%Y-%m-%d %H:%M:%S"),
            hostname=self.shell.output("hostname") or "Unknown",
            server_ip=self.server_ip,
            database_backup=database,
            application_backup=application,
            configuration_backup=configuration or "not created",
            database_size=self._size(database),
            application_size=self._size(application),
            configuration_size=self._size(configuration) if configuration else "0",
            total_size=self._size(self.backup.backup_dir, directory=True),
        )
        logger.info("Creating backup manifest...")
        self.executor.upload_text(self.renderer.render("backup-manifest.txt.j2", manifest), target)
        return target

    def prune(self) -> None:
        logger.info(
            "Cleaning up old backups (older than %d days)...", self.backup.retention_days
        )
        for pattern in PRUNE_PATTERNS:
            self.shell.run(
                f"sudo find {quote(self.backup.backup_dir)} -name {quote(pattern)}"
                f" -mtime +{int(self.backup.retention_days)} -delete"
            )

    def _size(self, path: str, *, directory: bool = False) -> str:
        flags = "-sh" if directory else "-h"
        result = self.shell.run(f"du {flags} {quote(path)} | cut -f1", check=False)
        return result.stdout.strip() or "unknown"
