"""Entry points for the invoice-deployer CLIs."""

from __future__ import annotations

import sys

from .cli import run_backup_cli, run_cli, run_ssl_cli


def app_main() -> None:
    exit_code = run_cli()
    sys.exit(exit_code)


def backup_main() -> None:
    sys.exit(run_backup_cli())


def ssl_main() -> None:
    sys.exit(run_ssl_cli())


if __name__ == "__main__":  # pragma: no cover
    app_main()
