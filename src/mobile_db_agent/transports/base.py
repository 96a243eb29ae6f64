"""Transport contract shared by every device category."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import ClassVar

from mobile_db_agent.models import (
    ApplicationRef,
    DatabaseFileDescriptor,
    DeviceCategory,
    DeviceHandle,
)

DATABASE_EXTENSIONS = ("db", "sqlite", "sqlite3", "sqlitedb", "db3")
_DATABASE_SUFFIXES = tuple(f".{ext}" for ext in DATABASE_EXTENSIONS)


def is_database_file(name: str) -> bool:
    """True when ``name`` carries one of the SQLite file extensions."""
    return name.endswith(_DATABASE_SUFFIXES)


class DeviceFileTransport(ABC):
    """List apps, find databases and move files for one device category.

    Implementations raise ``AgentError``; the sync engine turns those into
    result envelopes.
    """

    category: ClassVar[DeviceCategory]
    # Whether the engine may stage several files from one device at once
    concurrent_transfers: ClassVar[bool] = False

    @abstractmethod
    async def list_applications(self, device: DeviceHandle) -> list[ApplicationRef]:
        """List user-installed applications."""

    @abstractmethod
    async def locate_database_files(
        self, device: DeviceHandle, application: ApplicationRef
    ) -> list[DatabaseFileDescriptor]:
        """Find database files in the app sandbox, in declared location order."""

    @abstractmethod
    async def pull(self, descriptor: DatabaseFileDescriptor, dest: Path) -> None:
        """Copy the remote file to ``dest``."""

    @abstractmethod
    async def push(
        self,
        local_path: Path,
        device_id: str,
        application: ApplicationRef,
        remote_path: str,
    ) -> str:
        """Write ``local_path`` back to ``remote_path``; returns a status message."""

    async def check_app_existence(self, device: DeviceHandle, application: ApplicationRef) -> bool:
        """True when ``application`` is installed on ``device``."""
        apps = await self.list_applications(device)
        return any(app.bundle_id == application.bundle_id for app in apps)
