"""Maintenance routines that run outside the deployment pipeline."""

from .backup import BackupResult, BackupRoutine
from .ssl import SSLSetup, add_cron_entry

__all__ = ["BackupResult", "BackupRoutine", "SSLSetup", "add_cron_entry"]
