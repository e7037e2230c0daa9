"""
Push configuration loader.

Values come from args/push.yaml and are overridden by environment
variables (VAPID_PUBLIC_KEY, VAPID_PRIVATE_KEY, VAPID_SUBJECT,
FARMPASS_CLEANUP_DAYS, FARMPASS_FAIL_COUNT_THRESHOLD).

Usage:
    from farmpass.push.config import load_push_config
    config = load_push_config()
    config.cleanup.cleanup_days
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from farmpass.push import CONFIG_PATH


logger = logging.getLogger(__name__)

CONFIG_FILE = CONFIG_PATH / "push.yaml"


@dataclass
class VapidConfig:
    public_key: str = ""
    private_key: str = ""
    subject: str = "mailto:admin@farmpass.app"


@dataclass
class CleanupConfig:
    cleanup_days: int = 30
    fail_count_threshold: int = 5


@dataclass
class WorkerConfig:
    script_url: str = "/push-sw.js"
    scope: str = "/"
    ready_timeout_seconds: float = 10.0
    update_interval_seconds: float = 300.0
    reload_delay_seconds: float = 1.0
    online_update_delay_seconds: float = 2.0


@dataclass
class PushConfig:
    vapid: VapidConfig = field(default_factory=VapidConfig)
    cleanup: CleanupConfig = field(default_factory=CleanupConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)


def _read_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        logger.warning(f"Ignoring unreadable push config {path}: {e}")
        return {}


def load_push_config(path: Path | None = None) -> PushConfig:
    """Load push configuration from YAML, then apply environment overrides."""
    raw = _read_yaml(path or CONFIG_FILE)

    vapid_raw = raw.get("vapid", {}) or {}
    cleanup_raw = raw.get("cleanup", {}) or {}
    worker_raw = raw.get("worker", {}) or {}

    vapid = VapidConfig(
        public_key=os.environ.get("VAPID_PUBLIC_KEY") or vapid_raw.get("public_key", ""),
        private_key=os.environ.get("VAPID_PRIVATE_KEY") or vapid_raw.get("private_key", ""),
        subject=os.environ.get("VAPID_SUBJECT") or vapid_raw.get("subject", VapidConfig.subject),
    )

    cleanup = CleanupConfig(
        cleanup_days=int(
            os.environ.get("FARMPASS_CLEANUP_DAYS")
            or cleanup_raw.get("cleanup_days", CleanupConfig.cleanup_days)
        ),
        fail_count_threshold=int(
            os.environ.get("FARMPASS_FAIL_COUNT_THRESHOLD")
            or cleanup_raw.get("fail_count_threshold", CleanupConfig.fail_count_threshold)
        ),
    )

    worker = WorkerConfig(
        script_url=worker_raw.get("script_url", WorkerConfig.script_url),
        scope=worker_raw.get("scope", WorkerConfig.scope),
        ready_timeout_seconds=float(
            worker_raw.get("ready_timeout_seconds", WorkerConfig.ready_timeout_seconds)
        ),
        update_interval_seconds=float(
            worker_raw.get("update_interval_seconds", WorkerConfig.update_interval_seconds)
        ),
        reload_delay_seconds=float(
            worker_raw.get("reload_delay_seconds", WorkerConfig.reload_delay_seconds)
        ),
        online_update_delay_seconds=float(
            worker_raw.get("online_update_delay_seconds", WorkerConfig.online_update_delay_seconds)
        ),
    )

    return PushConfig(vapid=vapid, cleanup=cleanup, worker=worker)
