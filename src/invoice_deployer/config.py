"""Configuration loading utilities for invoice-deployer."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .errors import ConfigurationMissing
from .paths import DEFAULT_CONFIG_FILE, RECORD_FILE

# Load .env file if it exists
load_dotenv()


@dataclass
class TerraformConfig:
    """Where the infrastructure description lives and how to drive it."""

    directory: str = "terraform"
    binary: str = "terraform"
    plan_file: str = "tfplan"
    record_path: str = str(RECORD_FILE)


@dataclass
class SSHConfig:
    """Login identity used for every remote command."""

    username: str = "ec2-user"
    port: int = 22
    key_path: str = "~/.ssh/id_rsa"
    connect_timeout: int = 20
    probe_timeout: int = 5


@dataclass
class ReadinessConfig:
    max_attempts: int = 30
    interval: int = 30


@dataclass
class ApplicationConfig:
    """Remote layout of the Invoice Ninja installation."""

    name: str = "Invoice Ninja"
    repo_url: str = "https://github.com/Intuitive-Solution/invoiceninja-backend"
    app_dir: str = "/var/www/html"
    backup_dir: str = "/home/ec2-user/backups/invoiceninja"
    db_name: str = "invoiceninja"
    db_user: str = "invoiceninja"
    php_fpm_socket: str = "/run/php-fpm/www.sock"
    http_timeout: int = 10


@dataclass
class BackupConfig:
    backup_dir: str = "/var/backups/invoiceninja"
    retention_days: int = 30


@dataclass
class AppConfig:
    """Top-level configuration."""

    terraform: TerraformConfig = field(default_factory=TerraformConfig)
    ssh: SSHConfig = field(default_factory=SSHConfig)
    readiness: ReadinessConfig = field(default_factory=ReadinessConfig)
    application: ApplicationConfig = field(default_factory=ApplicationConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        def section(name: str) -> Dict[str, Any]:
            data = payload.get(name, {}) or {}
            if not isinstance(data, dict):
                raise TypeError(f"section '{name}' must be an object")
            # Keys starting with an underscore are comments
            return {k: v for k, v in data.items() if not k.startswith("_")}

        return cls(
            terraform=TerraformConfig(
                **{**TerraformConfig().__dict__, **section("terraform")}
            ),
            ssh=SSHConfig(**{**SSHConfig().__dict__, **section("ssh")}),
            readiness=ReadinessConfig(
                **{**ReadinessConfig().__dict__, **section("readiness")}
            ),
            application=ApplicationConfig(
                **{**ApplicationConfig().__dict__, **section("application")}
            ),
            backup=BackupConfig(**{**BackupConfig().__dict__, **section("backup")}),
        )


def load_config(path: Optional[str] = None) -> AppConfig:
    """Load configuration from `path`, the default location, or built-in defaults.

    An explicit `path` that does not exist is an error; a missing default
    file is not.

    Environment variables (higher priority than the config file):
    - INVOICE_DEPLOYER_TERRAFORM_DIR: Terraform configuration directory
    - INVOICE_DEPLOYER_RECORD_PATH: Deployment Record location
    - INVOICE_DEPLOYER_SSH_USERNAME: Remote login user
    - INVOICE_DEPLOYER_SSH_KEY_PATH: Path to SSH private key
    - INVOICE_DEPLOYER_REPO_URL: Application git repository
    """

    if path:
        candidate = Path(path)
        if not candidate.is_file():
            raise ConfigurationMissing(f"Configuration file not found: {candidate}")
    else:
        candidate = DEFAULT_CONFIG_FILE

    if candidate.is_file():
        try:
            with candidate.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
            if not isinstance(data, dict):
                raise TypeError("top level must be an object")
            config = AppConfig.from_dict(data)
        except (json.JSONDecodeError, TypeError) as exc:
            raise ConfigurationMissing(f"Invalid configuration file {candidate}: {exc}") from exc
    else:
        config = AppConfig()

    env_terraform_dir = os.getenv("INVOICE_DEPLOYER_TERRAFORM_DIR")
    if env_terraform_dir:
        config.terraform.directory = env_terraform_dir

    env_record = os.getenv("INVOICE_DEPLOYER_RECORD_PATH")
    if env_record:
        config.terraform.record_path = env_record

    env_username = os.getenv("INVOICE_DEPLOYER_SSH_USERNAME")
    if env_username:
        config.ssh.username = env_username

    env_key_path = os.getenv("INVOICE_DEPLOYER_SSH_KEY_PATH")
    if env_key_path:
        config.ssh.key_path = env_key_path

    env_repo = os.getenv("INVOICE_DEPLOYER_REPO_URL")
    if env_repo:
        config.application.repo_url = env_repo

    return config
