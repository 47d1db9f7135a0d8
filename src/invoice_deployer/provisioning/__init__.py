"""Infrastructure provisioning through Terraform."""

from .terraform import TerraformRunner
from .provisioner import Provisioner

__all__ = ["TerraformRunner", "Provisioner"]
