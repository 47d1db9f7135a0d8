"""Deployment Record persistence and the per-run parameter set."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from .errors import ConfigurationMissing

SCHEMA_VERSION = 1
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class DeploymentRecord:
    """Provisioning outputs handed from the infra stage to every later stage."""

    instance_ip: str
    instance_id: str
    deployment_time: str
    schema_version: int = SCHEMA_VERSION

    @classmethod
    def create(cls, instance_ip: str, instance_id: str) -> "DeploymentRecord":
        return cls(
            instance_ip=instance_ip,
            instance_id=instance_id,
            deployment_time=datetime.now().strftime(TIMESTAMP_FORMAT),
        )

    def to_lines(self) -> str:
        return (
            f"SCHEMA_VERSION={self.schema_version}\n"
            f"INSTANCE_IP={self.instance_ip}\n"
            f"INSTANCE_ID={self.instance_id}\n"
            f'DEPLOYMENT_TIME="{self.deployment_time}"\n'
        )

    @classmethod
    def from_mapping(cls, values: Dict[str, str]) -> "DeploymentRecord":
        raw_version = values.get("SCHEMA_VERSION", str(SCHEMA_VERSION))
        try:
            version = int(raw_version)
        except ValueError:
            raise ConfigurationMissing(
                f"Deployment record has an invalid schema version: {raw_version!r}"
            ) from None
        if version != SCHEMA_VERSION:
            raise ConfigurationMissing(
                f"Unsupported deployment record schema version {version} "
                f"(expected {SCHEMA_VERSION})"
            )

        instance_ip = values.get("INSTANCE_IP", "").strip()
        if not instance_ip:
            raise ConfigurationMissing(
                "Instance IP not found. Please deploy infrastructure first."
            )
        return cls(
            instance_ip=instance_ip,
            instance_id=values.get("INSTANCE_ID", "").strip(),
            deployment_time=values.get("DEPLOYMENT_TIME", "").strip(),
            schema_version=version,
        )


def parse_key_values(text: str) -> Dict[str, str]:
    """Parse ``KEY=value`` lines, ignoring blanks and comments."""
    values: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]
        values[key.strip()] = value
    return values


class RecordStore:
    """Reads and overwrites the record file at a fixed path."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> DeploymentRecord:
        if not self.path.is_file():
            raise ConfigurationMissing(
                f"Deployment record not found at {self.path}. "
                "Please deploy infrastructure first."
            )
        text = self.path.read_text(encoding="utf-8")
        return DeploymentRecord.from_mapping(parse_key_values(text))

    def save(self, record: DeploymentRecord) -> Path:
        # Write a sibling file and rename it so readers never see a partial record
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(record.to_lines(), encoding="utf-8")
        os.replace(tmp_path, self.path)
        return self.path


@dataclass
class DeploymentParameters:
    """Per-invocation values passed to the remote stages. Never persisted."""

    branch: str
    db_password: str
    app_key: Optional[str] = None
    app_url: Optional[str] = None

    def __repr__(self) -> str:
        return (
            f"DeploymentParameters(branch={self.branch!r}, db_password='***', "
            f"app_key={'***' if self.app_key else None}, app_url={self.app_url!r})"
        )
