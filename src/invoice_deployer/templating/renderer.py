"""Jinja2 rendering of remote configuration files and helper scripts."""

from __future__ import annotations

from dataclasses import asdict, dataclass, is_dataclass
from typing import Any, Dict, Optional

from jinja2 import Environment, PackageLoader, StrictUndefined


@dataclass
class NginxSite:
    app_dir: str
    php_fpm_socket: str
    server_name: str = "_"


@dataclass
class NginxTLSSite:
    domain: str
    app_dir: str
    php_fpm_socket: str


@dataclass
class PhpFpmPool:
    user: str
    group: str
    listen_socket: str


@dataclass
class LogrotateRule:
    app_dir: str
    user: str


@dataclass
class RedeployHelper:
    repo_url: str
    app_dir: str
    backup_dir: str
    user: str
    default_branch: str = "master"


@dataclass
class MonitorHelper:
    app_dir: str
    db_name: str
    db_user: str


@dataclass
class BackupManifest:
    generated: str
    hostname: str
    server_ip: str
    database_backup: str
    application_backup: str
    configuration_backup: str
    database_size: str
    application_size: str
    configuration_size: str
    total_size: str


class TemplateRenderer:
    """Renders the packaged templates with undefined-variable checking."""

    def __init__(self, environment: Optional[Environment] = None) -> None:
        self.environment = environment or Environment(
            loader=PackageLoader("invoice_deployer", "templating/templates"),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            autoescape=False,
        )

    def render(self, template_name: str, context: Any = None, **extra: Any) -> str:
        values: Dict[str, Any] = {}
        if context is not None:
            values.update(asdict(context) if is_dataclass(context) else dict(context))
        values.update(extra)
        return self.environment.get_template(template_name).render(**values)
