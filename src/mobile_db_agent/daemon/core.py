"""Daemon core - owns the sync engine, session store and their lifecycle."""

from __future__ import annotations

import asyncio

import structlog

from mobile_db_agent.config import AgentConfig
from mobile_db_agent.db.models import Database
from mobile_db_agent.sync.engine import SyncEngine
from mobile_db_agent.sync.session import SessionManager
from mobile_db_agent.tools.locator import ToolLocator
from mobile_db_agent.tools.runner import CommandRunner

logger = structlog.get_logger()


class DaemonCore:
    """One engine and one session store per daemon process."""

    def __init__(self, config: AgentConfig | None = None) -> None:
        self.config = config or AgentConfig.from_env()
        self.locator = ToolLocator(self.config.tools_dir)
        self.runner = CommandRunner(self.config.command_timeout)
        self.engine = SyncEngine(self.config, runner=self.runner, locator=self.locator)
        self.database = Database()
        self.session_manager = SessionManager(self.database, self.engine)
        self._running = False

    async def start(self) -> None:
        """Open the session store and report which platform tools are usable."""
        logger.info("daemon_core_starting", staging_dir=str(self.config.staging_dir))
        await asyncio.to_thread(self.config.staging_dir.mkdir, parents=True, exist_ok=True)
        await self.database.connect()
        await self.session_manager.start()

        missing = sorted(tool for tool, path in self.locator.check().items() if path is None)
        if missing:
            # Categories whose tools are missing simply report no devices
            logger.warning("platform_tools_missing", tools=missing)
        self._running = True
        logger.info("daemon_core_started")

    async def stop(self) -> None:
        """Close the session store; sessions stay persisted for the next start."""
        logger.info("daemon_core_stopping")
        self._running = False
        await self.session_manager.stop()
        await self.database.disconnect()
        logger.info("daemon_core_stopped")

    @property
    def is_running(self) -> bool:
        return self._running
