"""Tests for environment configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from mobile_db_agent.config import (
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_DEVICE_TMP_DIR,
    DEFAULT_TRANSFER_TIMEOUT,
    STAGING_SUBDIR,
    AgentConfig,
)


class TestAgentConfig:
    """Tests for AgentConfig.from_env."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should fall back to defaults when nothing is set."""
        for name in (
            "MOBILE_DB_AGENT_TOOLS_DIR",
            "MOBILE_DB_AGENT_STAGING_DIR",
            "MOBILE_DB_AGENT_COMMAND_TIMEOUT",
            "MOBILE_DB_AGENT_TRANSFER_TIMEOUT",
            "MOBILE_DB_AGENT_DEVICE_TMP_DIR",
        ):
            monkeypatch.delenv(name, raising=False)

        config = AgentConfig.from_env()

        assert config.tools_dir is None
        assert config.staging_dir.name == STAGING_SUBDIR
        assert config.command_timeout == DEFAULT_COMMAND_TIMEOUT
        assert config.transfer_timeout == DEFAULT_TRANSFER_TIMEOUT
        assert config.device_tmp_dir == DEFAULT_DEVICE_TMP_DIR

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Should read every MOBILE_DB_AGENT_* variable."""
        monkeypatch.setenv("MOBILE_DB_AGENT_TOOLS_DIR", str(tmp_path / "bin"))
        monkeypatch.setenv("MOBILE_DB_AGENT_STAGING_DIR", str(tmp_path / "stage"))
        monkeypatch.setenv("MOBILE_DB_AGENT_COMMAND_TIMEOUT", "5")
        monkeypatch.setenv("MOBILE_DB_AGENT_TRANSFER_TIMEOUT", "30.5")
        monkeypatch.setenv("MOBILE_DB_AGENT_DEVICE_TMP_DIR", "/sdcard/tmp/")

        config = AgentConfig.from_env()

        assert config.tools_dir == tmp_path / "bin"
        assert config.staging_dir == tmp_path / "stage"
        assert config.command_timeout == 5.0
        assert config.transfer_timeout == 30.5
        assert config.device_tmp_dir == "/sdcard/tmp"

    @pytest.mark.parametrize("raw", ["soon", "0", "-3"])
    def test_invalid_timeout_falls_back(self, monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
        """Should ignore unparseable or non-positive timeouts."""
        monkeypatch.setenv("MOBILE_DB_AGENT_COMMAND_TIMEOUT", raw)

        assert AgentConfig.from_env().command_timeout == DEFAULT_COMMAND_TIMEOUT
