"""Runtime configuration read from the environment."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

import structlog

logger = structlog.get_logger()

STATE_DIR = Path.home() / ".mobile-db-agent"
STAGING_SUBDIR = "mobile-db-agent-temp"

DEFAULT_COMMAND_TIMEOUT = 60.0
DEFAULT_TRANSFER_TIMEOUT = 180.0
DEFAULT_DEVICE_TMP_DIR = "/data/local/tmp"

ENV_TOOLS_DIR = "MOBILE_DB_AGENT_TOOLS_DIR"
ENV_STAGING_DIR = "MOBILE_DB_AGENT_STAGING_DIR"
ENV_COMMAND_TIMEOUT = "MOBILE_DB_AGENT_COMMAND_TIMEOUT"
ENV_TRANSFER_TIMEOUT = "MOBILE_DB_AGENT_TRANSFER_TIMEOUT"
ENV_DEVICE_TMP_DIR = "MOBILE_DB_AGENT_DEVICE_TMP_DIR"


def default_staging_dir() -> Path:
    return Path(tempfile.gettempdir()) / STAGING_SUBDIR


@dataclass(frozen=True)
class AgentConfig:
    """Settings shared by the engine, transports and daemon."""

    tools_dir: Path | None = None
    staging_dir: Path = field(default_factory=default_staging_dir)
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT
    transfer_timeout: float = DEFAULT_TRANSFER_TIMEOUT
    device_tmp_dir: str = DEFAULT_DEVICE_TMP_DIR

    @classmethod
    def from_env(cls) -> AgentConfig:
        """Build config from MOBILE_DB_AGENT_* variables, defaulting anything unset."""
        tools_dir = os.environ.get(ENV_TOOLS_DIR)
        staging_dir = os.environ.get(ENV_STAGING_DIR)
        return cls(
            tools_dir=Path(tools_dir).expanduser() if tools_dir else None,
            staging_dir=Path(staging_dir).expanduser() if staging_dir else default_staging_dir(),
            command_timeout=_env_seconds(ENV_COMMAND_TIMEOUT, DEFAULT_COMMAND_TIMEOUT),
            transfer_timeout=_env_seconds(ENV_TRANSFER_TIMEOUT, DEFAULT_TRANSFER_TIMEOUT),
            device_tmp_dir=(
                os.environ.get(ENV_DEVICE_TMP_DIR, DEFAULT_DEVICE_TMP_DIR).rstrip("/")
                or DEFAULT_DEVICE_TMP_DIR
            ),
        )


def _env_seconds(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("config_invalid_value", name=name, value=raw, default=default)
        return default
    if value <= 0:
        logger.warning("config_invalid_value", name=name, value=raw, default=default)
        return default
    return value
