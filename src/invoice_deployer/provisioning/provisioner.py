"""Applies the Terraform configuration and publishes the Deployment Record."""

from __future__ import annotations

from pathlib import Path

from ..errors import ConfigurationMissing, UserAborted
from ..interaction import UserInteractionHandler
from ..record import DeploymentParameters, DeploymentRecord, RecordStore
from ..utils.logging import get_logger
from .terraform import TerraformRunner

logger = get_logger(__name__)

REQUIRED_FILES = ("main.tf", "terraform.tfvars")


class Provisioner:
    """Drives init/plan/apply for the instance and records its outputs."""

    def __init__(
        self,
        terraform: TerraformRunner,
        record_store: RecordStore,
        interaction_handler: UserInteractionHandler,
        *,
        plan_file: str = "tfplan",
        skip_confirmation: bool = False,
    ) -> None:
        self.terraform = terraform
        self.record_store = record_store
        self.interaction_handler = interaction_handler
        self.plan_file = plan_file
        self.skip_confirmation = skip_confirmation

    @property
    def plan_path(self) -> Path:
        return self.terraform.working_dir / self.plan_file

    def check_configuration(self) -> None:
        directory = self.terraform.working_dir
        if not (directory / "main.tf").is_file():
            raise ConfigurationMissing(
                f"Terraform configuration not found at {directory / 'main.tf'}"
            )
        if not (directory / "terraform.tfvars").is_file():
            example = directory / "terraform.tfvars.example"
            hint = f" (copy {example} and edit it)" if example.is_file() else ""
            raise ConfigurationMissing(
                f"terraform.tfvars is required for deployment{hint}"
            )

    def plan_and_apply(self) -> DeploymentRecord:
        self.check_configuration()

        logger.info("Initializing Terraform...")
        self.terraform.init()

        logger.info("Planning infrastructure deployment...")
        self.terraform.plan(self.plan_file)

        if not self.skip_confirmation:
            if not self.interaction_handler.confirm(
                "Do you want to proceed with infrastructure deployment?",
                context=f"Plan saved to {self.plan_path}",
            ):
                raise UserAborted("Infrastructure deployment cancelled")

        logger.info("Applying infrastructure deployment...")
        self.terraform.apply(self.plan_file)

        logger.info("Retrieving infrastructure information...")
        instance_ip = self.terraform.output("instance_public_ip")
        instance_id = self.terraform.output("instance_id")
        if not instance_ip:
            raise ConfigurationMissing("Terraform output instance_public_ip is empty")

        record = DeploymentRecord.create(instance_ip=instance_ip, instance_id=instance_id)
        self.record_store.save(record)

        logger.info("✓ Infrastructure deployed successfully")
        logger.info("Instance IP: %s", record.instance_ip)
        logger.info("Instance ID: %s", record.instance_id)
        return record

    def deployment_parameters(
        self, branch: str, record: DeploymentRecord
    ) -> DeploymentParameters:
        """Assemble the parameter set the remote stages need."""
        db_password = self.terraform.optional_output("db_password")
        if not db_password:
            raise ConfigurationMissing("Database password not found in Terraform outputs")
        app_key = self.terraform.optional_output("app_key")
        app_url = self.terraform.optional_output("app_url") or f"http://{record.instance_ip}"
        return DeploymentParameters(
            branch=branch,
            db_password=db_password,
            app_key=app_key,
            app_url=app_url,
        )

    def cleanup(self) -> None:
        """Remove the cached execution plan."""
        plan_path = self.plan_path
        if plan_path.exists():
            plan_path.unlink()
            logger.info("Removed cached plan %s", plan_path)
