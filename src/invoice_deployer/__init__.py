"""Terraform + SSH deployer for Invoice Ninja on AWS EC2."""

__version__ = "0.1.0"
