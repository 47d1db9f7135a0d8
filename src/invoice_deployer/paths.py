"""Path constants for invoice-deployer.

Everything is resolved relative to the invocation directory:
- .deployment-info       # Deployment Record written after provisioning
- deploy_logs/           # JSON run logs, one per pipeline run
- config/                # Optional JSON configuration
"""

from pathlib import Path

RECORD_FILE = Path(".deployment-info")
LOGS_DIR = Path("deploy_logs")
CONFIG_DIR = Path("config")
DEFAULT_CONFIG_FILE = CONFIG_DIR / "default_config.json"


def get_logs_dir() -> Path:
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
    return LOGS_DIR
