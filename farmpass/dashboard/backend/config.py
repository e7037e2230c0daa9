"""Dashboard configuration from args/dashboard.yaml."""

from pathlib import Path

import yaml

from farmpass.push import CONFIG_PATH as ARGS_PATH


CONFIG_PATH = ARGS_PATH / "dashboard.yaml"


def load_config(path: Path | None = None) -> dict:
    """Load dashboard configuration from YAML."""
    path = path or CONFIG_PATH
    if path.exists():
        with open(path) as f:
            return yaml.safe_load(f) or {}
    return {}


config = load_config()
dashboard_config = config.get("dashboard", {})
security_config = dashboard_config.setdefault("security", {})
