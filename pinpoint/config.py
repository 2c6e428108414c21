"""
pinpoint/config.py
Config with defaults. Persists to pinpoint_config.json in the project root.
Broker address and credentials are build/deploy-time settings.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "db_path": "pinpoint.db",
    "device_id": None,
    "broker_host": "localhost",
    "broker_port": 8883,
    "broker_username": "",
    "broker_password": "",
    "broker_tls": True,
    "keep_alive_sec": 60,
    "auto_reconnect": False,
    "heartbeat_interval_sec": 5.0,
    "reconnect_window_sec": 10.0,
    "location_log_interval_sec": 2.5,
    "auto_request_location": True,
    "motion_detection": True,
    "api_host": "127.0.0.1",
    "api_port": 8765,
}

# Keys that must be strictly positive numbers
_POSITIVE_KEYS = ("heartbeat_interval_sec", "reconnect_window_sec", "broker_port", "keep_alive_sec")


def _config_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path.cwd()
    return root / "pinpoint_config.json"


def load_config(project_root: Optional[Path] = None) -> Dict[str, Any]:
    """Load config from pinpoint_config.json. Returns defaults if missing."""
    path = _config_path(project_root)
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return {**DEFAULT_CONFIG, **data}
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Config load failed: {e}")
    return dict(DEFAULT_CONFIG)


def save_config(config: Dict[str, Any], project_root: Optional[Path] = None) -> Path:
    """Persist config to pinpoint_config.json."""
    path = _config_path(project_root)
    path.write_text(json.dumps(config, indent=2), encoding="utf-8")
    return path


def validate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Raise ValueError on unusable timing or port values. Returns config."""
    for key in _POSITIVE_KEYS:
        value = config.get(key)
        if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
            raise ValueError(f"{key} must be a positive number, got {value!r}")
    log_interval = config.get("location_log_interval_sec")
    if not isinstance(log_interval, (int, float)) or log_interval < 0:
        raise ValueError(f"location_log_interval_sec must be >= 0, got {log_interval!r}")
    if not config.get("broker_host"):
        raise ValueError("broker_host is required")
    return config


def ensure_config(project_root: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load or create config, resolve db_path against the project root.
    Returns merged, validated config.
    """
    root = project_root or Path.cwd()
    path = _config_path(root)
    config = load_config(root)
    if not path.exists():
        save_config(config, root)
        logger.info(f"Wrote default config: {path}")
    db_path = Path(config["db_path"])
    if not db_path.is_absolute():
        config["db_path"] = str(root / db_path)
    return validate_config(config)
