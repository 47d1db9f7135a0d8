"""Command-line interface for invoice-deployer."""

from __future__ import annotations

import argparse
from typing import Callable, Optional

from .config import AppConfig, load_config
from .errors import DeployerError
from .interaction import AutoResponseHandler, CLIInteractionHandler
from .orchestrator import DeployMode
from .utils.logging import get_logger
from .workflow import DeploymentWorkflow

logger = get_logger(__name__)

WorkflowFactory = Callable[..., DeploymentWorkflow]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="invoice-deployer",
        description="Provision an EC2 host with Terraform and deploy Invoice Ninja to it.",
    )
    parser.add_argument(
        "--mode",
        choices=[mode.value for mode in DeployMode],
        default=DeployMode.FULL.value,
        help="Deployment mode: full, infra-only, app-only (default: full)",
    )
    parser.add_argument(
        "--branch",
        default="master",
        help="Git branch to deploy (default: master)",
    )
    parser.add_argument(
        "--skip-confirmation",
        action="store_true",
        help="Skip confirmation prompts",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON config file overriding defaults.",
    )
    return parser


def build_backup_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="invoice-deployer-backup",
        description="Back up the Invoice Ninja database, files and configuration.",
    )
    parser.add_argument(
        "--db-password",
        default=None,
        help="Database password (default: Terraform output db_password)",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to a JSON config file.")
    return parser


def build_ssl_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="invoice-deployer-ssl",
        description="Issue a Let's Encrypt certificate and enable HTTPS.",
    )
    parser.add_argument("--domain", required=True, help="Domain name pointing at the instance")
    parser.add_argument("--email", required=True, help="Contact email for Let's Encrypt")
    parser.add_argument("--config", type=str, default=None, help="Path to a JSON config file.")
    return parser


def _guarded(action: Callable[[], None]) -> int:
    try:
        action()
    except DeployerError as exc:
        logger.error("ERROR: %s", exc)
        return 1
    except KeyboardInterrupt:
        logger.error("Interrupted")
        return 130
    return 0


def run_cli(
    argv: Optional[list[str]] = None,
    *,
    workflow_factory: WorkflowFactory = DeploymentWorkflow,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    mode = DeployMode(args.mode)

    def deploy() -> None:
        config: AppConfig = load_config(args.config)
        handler = (
            AutoResponseHandler(always_confirm=True)
            if args.skip_confirmation
            else CLIInteractionHandler()
        )
        workflow = workflow_factory(config, interaction_handler=handler)
        workflow.run_deploy(mode, args.branch, skip_confirmation=args.skip_confirmation)
        logger.info("Deployment completed successfully!")

    return _guarded(deploy)


def run_backup_cli(
    argv: Optional[list[str]] = None,
    *,
    workflow_factory: WorkflowFactory = DeploymentWorkflow,
) -> int:
    args = build_backup_parser().parse_args(argv)

    def backup() -> None:
        workflow = workflow_factory(load_config(args.config))
        workflow.run_backup(args.db_password)
        logger.info("Backup completed successfully!")

    return _guarded(backup)


def run_ssl_cli(
    argv: Optional[list[str]] = None,
    *,
    workflow_factory: WorkflowFactory = DeploymentWorkflow,
) -> int:
    args = build_ssl_parser().parse_args(argv)

    def ssl() -> None:
        workflow = workflow_factory(load_config(args.config))
        workflow.run_ssl(args.domain, args.email)
        logger.info("SSL setup completed successfully!")

    return _guarded(ssl)
