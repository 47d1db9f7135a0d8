"""Templates for files written onto the remote host."""

from .renderer import (
    BackupManifest,
    LogrotateRule,
    MonitorHelper,
    NginxSite,
    NginxTLSSite,
    PhpFpmPool,
    RedeployHelper,
    TemplateRenderer,
)

__all__ = [
    "BackupManifest",
    "LogrotateRule",
    "MonitorHelper",
    "NginxSite",
    "NginxTLSSite",
    "PhpFpmPool",
    "RedeployHelper",
    "TemplateRenderer",
]
