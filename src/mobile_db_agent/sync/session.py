"""Session manager - explicit per-caller sync sessions with persisted addressing."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from mobile_db_agent.db.models import Database
from mobile_db_agent.errors import session_not_found_error, staged_file_not_in_session_error
from mobile_db_agent.models import (
    ApplicationRef,
    DatabaseFileDescriptor,
    DeviceCategory,
    DeviceHandle,
    Envelope,
)
from mobile_db_agent.sync.engine import SyncEngine

logger = structlog.get_logger()


@dataclass
class SyncSession:
    """One discovery run for a device and app, and the files it staged."""

    session_id: str
    device: DeviceHandle
    application: ApplicationRef
    files: list[DatabaseFileDescriptor] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)

    def find_file(self, local_path: str | Path) -> DatabaseFileDescriptor | None:
        wanted = str(Path(local_path).expanduser())
        for descriptor in self.files:
            if descriptor.local_path == wanted:
                return descriptor
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "device_id": self.device.id,
            "device_category": self.device.category.value,
            "package": self.application.bundle_id,
            "app_name": self.application.name,
            "created_at": self.created_at.isoformat(),
            "files": [descriptor.to_dict() for descriptor in self.files],
        }


class SessionManager:
    """Manages sync session lifecycle and persistence."""

    def __init__(self, database: Database, engine: SyncEngine) -> None:
        self._sessions: dict[str, SyncSession] = {}
        self._db = database
        self._engine = engine

    async def start(self) -> None:
        """Start session manager and restore persisted sessions."""
        logger.info("session_manager_starting")
        for row in await self._db.list_sessions():
            try:
                category = DeviceCategory(row["device_category"])
            except ValueError:
                logger.warning("session_restore_skipped", session_id=row["session_id"])
                continue
            files = [
                DatabaseFileDescriptor.from_dict(data)
                for data in await self._db.get_staged_files(row["session_id"])
            ]
            session = SyncSession(
                session_id=row["session_id"],
                device=DeviceHandle(id=row["device_id"], category=category),
                application=ApplicationRef(bundle_id=row["bundle_id"], name=row["app_name"]),
                files=files,
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            self._sessions[session.session_id] = session
        logger.info("session_manager_started", count=len(self._sessions))

    async def stop(self) -> None:
        """Stop session manager; persisted sessions survive a restart."""
        logger.info("session_manager_stopping")
        self._sessions.clear()
        logger.info("session_manager_stopped")

    async def create_session(
        self, device: DeviceHandle, application: ApplicationRef
    ) -> tuple[SyncSession | None, Envelope]:
        """Run discovery and open a session over the staged files.

        Returns no session when discovery itself failed.
        """
        envelope, staged = await self._engine.discover_descriptors(device, application)
        if not envelope.success:
            return None, envelope

        session_id = f"s-{uuid.uuid4().hex[:8]}"
        session = SyncSession(
            session_id=session_id, device=device, application=application, files=staged
        )
        self._sessions[session_id] = session
        await self._db.save_session(
            session_id,
            device.id,
            device.category.value,
            application.bundle_id,
            application.name,
            created_at=session.created_at.isoformat(),
        )
        await self._db.replace_staged_files(session_id, [f.to_dict() for f in staged])
        logger.info(
            "session_created",
            session_id=session_id,
            device=device.id,
            package=application.bundle_id,
            files=len(staged),
        )
        return session, envelope

    async def get_session(self, session_id: str) -> SyncSession | None:
        """Get session by ID."""
        return self._sessions.get(session_id)

    async def list_sessions(self) -> list[SyncSession]:
        """List active sessions."""
        return list(self._sessions.values())

    async def close_session(self, session_id: str) -> bool:
        """Close and remove a session."""
        if session_id in self._sessions:
            del self._sessions[session_id]
            await self._db.delete_session(session_id)
            logger.info("session_closed", session_id=session_id)
            return True
        return False

    async def push(self, session_id: str, local_path: str) -> Envelope:
        """Push one of the session's staged files back to its device.

        Raises:
            AgentError: If the session is unknown or never staged ``local_path``
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise session_not_found_error(session_id)
        descriptor = session.find_file(local_path)
        if descriptor is None:
            raise staged_file_not_in_session_error(session_id, local_path)
        await self._db.touch_session(session.session_id)
        return await self._engine.push(
            descriptor.local_path, session.device, session.application, descriptor.remote_path
        )
