"""Application Deploy stage: checkout, environment, dependencies and migrations."""

from __future__ import annotations

import posixpath
from datetime import datetime
from typing import Dict, List, Optional

from ..config import ApplicationConfig
from ..errors import ConfigurationMissing
from ..record import DeploymentParameters
from ..ssh.executor import RemoteExecutor
from ..utils.logging import get_logger
from . import envfile
from .models import Stage
from .remote import Clock, RemoteShell, mysql_command, quote

logger = get_logger(__name__)

BACKUP_TIMESTAMP = "%Y%m%d-%H%M%S"
WRITABLE_DIRS = ("storage", "bootstrap/cache")
STORAGE_DIRS = (
    "storage/app/public",
    "storage/framework/cache",
    "storage/framework/sessions",
    "storage/framework/views",
    "storage/logs",
    "bootstrap/cache",
)
CACHE_CLEAR = ("config:clear", "route:clear", "view:clear", "cache:clear")
CACHE_BUILD = ("config:cache", "route:cache", "view:cache")


def needs_seed(table_listing: str) -> bool:
    """Fresh-install guess: seed when the database lists at most one table.

    `table_listing` is the output of ``mysql -N -B -e 'SHOW TABLES;'``, one
    table name per line with no header.
    """
    tables = [line for line in table_listing.splitlines() if line.strip()]
    return len(tables) <= 1


def environment_overrides(
    application: ApplicationConfig, parameters: DeploymentParameters
) -> Dict[str, str]:
    overrides = {
        "APP_ENV": "production",
        "APP_DEBUG": "false",
        "DB_CONNECTION": "mysql",
        "DB_HOST": "127.0.0.1",
        "DB_PORT": "3306",
        "DB_DATABASE": application.db_name,
        "DB_USERNAME": application.db_user,
        "DB_PASSWORD": parameters.db_password,
        "CACHE_DRIVER": "file",
        "SESSION_DRIVER": "file",
        "QUEUE_CONNECTION": "sync",
    }
    if parameters.app_url:
        overrides["APP_URL"] = parameters.app_url
    if parameters.app_key:
        overrides["APP_KEY"] = parameters.app_key
    return overrides


class ApplicationDeploy:
    """Brings the checkout at `app_dir` to the requested branch and boots it."""

    def __init__(
        self,
        executor: RemoteExecutor,
        application: ApplicationConfig,
        parameters: DeploymentParameters,
        *,
        login_user: str = "ec2-user",
        clock: Clock = datetime.now,
    ) -> None:
        self.shell = RemoteShell(executor, Stage.APPLICATION_DEPLOY.value)
        self.executor = executor
        self.application = application
        self.parameters = parameters
        self.login_user = login_user
        self._clock = clock
        self.backups: List[str] = []
        self.seeded: Optional[bool] = None

    @property
    def app_dir(self) -> str:
        return self.application.app_dir

    def _in_app(self, command: str) -> str:
        return f"cd {quote(self.app_dir)} && {command}"

    def _timestamp(self) -> str:
        return self._clock().strftime(BACKUP_TIMESTAMP)

    def run(self) -> None:
        self.shell.run(
            f"mkdir -p {quote(self.application.backup_dir)}",
            "Creating backup directory",
        )
        if self.has_checkout():
            self.backup_checkout()
            self.update_checkout()
        else:
            self.relocate_existing()
            self.clone()
        self.configure_environment()
        self.prepare_storage()
        self.install_dependencies()
        self.generate_key()
        self.link_storage()
        self.migrate()
        self.seed_if_fresh()
        self.rebuild_caches()
        self.fix_permissions()
        self.restart_services()
        self.check_artisan()
        logger.info("✓ Application deployed (branch %s)", self.parameters.branch)

    def has_checkout(self) -> bool:
        return self.shell.succeeds(f"test -d {quote(posixpath.join(self.app_dir, '.git'))}")

    def backup_checkout(self) -> Optional[str]:
        """Archive the current tree; a failed archive is logged and skipped."""
        archive = posixpath.join(
            self.application.backup_dir,
            f"invoiceninja-backup-{self._timestamp()}.tar.gz",
        )
        parent, name = posixpath.split(self.app_dir.rstrip("/"))
        result = self.shell.run(
            f"tar -czf {quote(archive)} -C {quote(parent or '/')} {quote(name)}",
            "Backing up current installation",
            check=False,
        )
        if not result.ok:
            logger.warning("Backup creation failed: %s", result.stderr or result.exit_status)
            return None
        self.backups.append(archive)
        logger.info("Backup written to %s", archive)
        return archive

    def update_checkout(self) -> None:
        branch = quote(self.parameters.branch)
        self.shell.run(
            self._in_app(
                f"git fetch origin && git checkout {branch} && git pull origin {branch}"
            ),
            f"Updating existing installation to branch {self.parameters.branch}",
        )

    def relocate_existing(self) -> Optional[str]:
        """Move a non-empty directory without a checkout out of the way."""
        app_dir = quote(self.app_dir)
        if not self.shell.succeeds(f'test -d {app_dir} && [ -n "$(ls -A {app_dir})" ]'):
            return None
        target = posixpath.join(
            self.application.backup_dir, f"old-html-{self._timestamp()}"
        )
        owner = f"{self.login_user}:{self.login_user}"
        self.shell.run(
            f"sudo mv {app_dir} {quote(target)} && sudo mkdir -p {app_dir}"
            f" && sudo chown {owner} {app_dir}",
            "Moving existing directory contents to backup",
        )
        self.backups.append(target)
        return target

    def clone(self) -> None:
        self.shell.run(
            f"git clone --branch {quote(self.parameters.branch)}"
            f" {quote(self.application.repo_url)} {quote(self.app_dir)}",
            f"Cloning Invoice Ninja repository (branch {self.parameters.branch})",
        )

    def configure_environment(self) -> None:
        env_path = posixpath.join(self.app_dir, ".env")
        if not self.shell.succeeds(f"test -f {quote(env_path)}"):
            example = posixpath.join(self.app_dir, ".env.example")
            if not self.shell.succeeds(f"test -f {quote(example)}"):
                raise ConfigurationMissing(
                    f".env.example not found in {self.app_dir}",
                    stage=Stage.APPLICATION_DEPLOY.value,
                )
            self.shell.run(
                f"cp {quote(example)} {quote(env_path)}",
                "Creating .env from .env.example",
            )

        current = self.shell.output(f"cat {quote(env_path)}")
        updated = envfile.rewrite(
            current, environment_overrides(self.application, self.parameters)
        )
        logger.info("Configuring environment...")
        self.executor.upload_text(updated, env_path)

    def generate_key(self) -> None:
        """Generate APP_KEY once vendor/ exists; artisan needs the autoloader."""
        if not self.parameters.app_key:
            self.shell.run(
                self._in_app("php artisan key:generate --force"),
                "Generating application key",
            )

    def prepare_storage(self) -> None:
        dirs = " ".join(quote(d) for d in STORAGE_DIRS)
        self.shell.run(self._in_app(f"mkdir -p {dirs}"), "Preparing storage directories")
        self.fix_permissions()

    def fix_permissions(self) -> None:
        app_dir = quote(self.app_dir)
        owner = f"{self.login_user}:{self.login_user}"
        writable = " ".join(quote(posixpath.join(self.app_dir, d)) for d in WRITABLE_DIRS)
        self.shell.run(
            f"sudo chown -R {owner} {app_dir} && sudo chmod -R 755 {app_dir}"
            f" && sudo chmod -R 775 {writable}",
            "Setting file permissions",
        )

    def install_dependencies(self) -> None:
        self.shell.run(
            self._in_app(
                "composer install --no-dev --optimize-autoloader --no-interaction"
            ),
            "Installing PHP dependencies",
        )

    def link_storage(self) -> None:
        link = quote(posixpath.join(self.app_dir, "public", "storage"))
        if self.shell.succeeds(f"test -L {link}"):
            return
        self.shell.run(self._in_app("php artisan storage:link"), "Creating storage link")

    def migrate(self) -> None:
        self.shell.run(self._in_app("php artisan migrate --force"), "Running database migrations")

    def seed_if_fresh(self) -> bool:
        listing = self.shell.output(
            mysql_command(
                self.application.db_user,
                self.parameters.db_password,
                "SHOW TABLES;",
                database=self.application.db_name,
                batch=True,
            ),
            "Checking for an existing installation",
        )
        self.seeded = needs_seed(listing)
        if self.seeded:
            self.shell.run(
                self._in_app("php artisan db:seed --force"),
                "Fresh installation detected, running database seeder",
            )
        else:
            logger.info("Existing data found, skipping seeder")
        return self.seeded

    def rebuild_caches(self) -> None:
        logger.info("Clearing and rebuilding caches...")
        for command in CACHE_CLEAR + CACHE_BUILD:
            self.shell.run(self._in_app(f"php artisan {command}"))

    def restart_services(self) -> None:
        self.shell.run(
            "sudo systemctl restart php-fpm && sudo systemctl restart nginx",
            "Restarting services",
        )

    def check_artisan(self) -> None:
        version = self.shell.output(
            self._in_app("php artisan --version"), "Verifying application"
        )
        logger.info("✓ %s", version or "Application is responding")
