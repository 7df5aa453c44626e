"""
Paths, logging setup, config load/save, safe_print.
"""

import os
import json
import sys
import socket
import logging
from pathlib import Path

from .constants import (
    AGENT_VERSION, POLL_INTERVAL_SEC, HEARTBEAT_EVERY_CYCLES, MAX_BATCH_SIZE,
)
from .errors import ConfigError


# ─── Paths ───────────────────────────────────────────────────────
# One config/state/log folder per machine.
_FOLDER_NAME = "AttendanceAgent"


def agent_home():
    """Directory holding config.json, agent.log and agent.db."""
    override = os.environ.get("ATTENDANCE_AGENT_HOME")
    if override:
        return Path(override)
    if sys.platform == "win32":
        return Path(os.environ.get("PROGRAMDATA", "C:\\ProgramData")) / _FOLDER_NAME
    return Path.home() / ".attendance-agent"


def config_file():
    return agent_home() / "config.json"


def log_file():
    return agent_home() / "agent.log"


# ─── Safe print (no crash when running as a service) ─────────────

def safe_print(*args, **kwargs):
    try:
        print(*args, **kwargs)
    except Exception:
        pass


# ─── Logging ─────────────────────────────────────────────────────

log = logging.getLogger("agent")

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level="INFO"):
    """File + console logging for the agent logger. Safe to call twice."""
    path = log_file()
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        if path.exists() and path.stat().st_size > 1_000_000:
            path.write_text("")
    except OSError:
        pass

    log.setLevel(level)
    for handler in list(log.handlers):
        log.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATEFMT)

    file_handler = logging.FileHandler(str(path), encoding="utf-8")
    file_handler.setFormatter(formatter)
    log.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    log.addHandler(console_handler)
    return log


# ─── Config Management ──────────────────────────────────────────

def default_config():
    return {
        "serverUrl": "",
        "agentName": socket.gethostname(),
        "agentId": None,
        "apiKey": None,
        "secretKey": "",
        "version": AGENT_VERSION,
        "pollIntervalSec": POLL_INTERVAL_SEC,
        "heartbeatEveryCycles": HEARTBEAT_EVERY_CYCLES,
        "maxBatchSize": MAX_BATCH_SIZE,
        "databasePath": str(agent_home() / "agent.db"),
        "logLevel": "INFO",
    }


def load_config(path=None):
    """Load config from disk merged over defaults. Raises ConfigError."""
    path = Path(path) if path else config_file()
    config = default_config()

    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            stored = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        raise ConfigError(f"Config file unreadable: {path}: {e}") from e
    if not isinstance(stored, dict):
        raise ConfigError(f"Config file must hold a JSON object: {path}")

    config.update({k: v for k, v in stored.items() if v is not None})
    config["serverUrl"] = (config.get("serverUrl") or "").rstrip("/")
    if not config["serverUrl"]:
        raise ConfigError("serverUrl is required")
    if not config.get("secretKey"):
        raise ConfigError("secretKey is required")
    if int(config["maxBatchSize"]) < 1:
        raise ConfigError("maxBatchSize must be at least 1")
    if int(config["heartbeatEveryCycles"]) < 1:
        raise ConfigError("heartbeatEveryCycles must be at least 1")
    return config


def save_config(config, path=None):
    """Save config dict to disk."""
    path = Path(path) if path else config_file()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2)
    log.info("Config saved to %s", path)
