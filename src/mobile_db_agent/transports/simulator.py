"""iOS simulator transport - simctl container lookup and host file copies."""

from __future__ import annotations

import asyncio
import json
import os
import shutil
from pathlib import Path
from typing import Any

import structlog

from mobile_db_agent.config import AgentConfig
from mobile_db_agent.errors import (
    app_container_error,
    file_not_found_error,
    tool_command_error,
    transfer_failed_error,
)
from mobile_db_agent.models import (
    ApplicationRef,
    DatabaseFileDescriptor,
    DeviceCategory,
    DeviceHandle,
    SandboxLocation,
)
from mobile_db_agent.tools.locator import PLUTIL, XCRUN, ToolLocator
from mobile_db_agent.tools.runner import CommandRunner
from mobile_db_agent.transports.base import DeviceFileTransport, is_database_file
from mobile_db_agent.validation import validate_device_id, validate_package

logger = structlog.get_logger()

# Most specific first, so the longest matching prefix wins
IOS_LOCATIONS = (
    SandboxLocation.LIBRARY_CACHES,
    SandboxLocation.LIBRARY_PREFERENCES,
    SandboxLocation.DOCUMENTS,
    SandboxLocation.LIBRARY,
)


def parse_simctl_apps(data: dict[str, Any]) -> list[ApplicationRef]:
    """Turn the JSON form of ``simctl listapps`` into sorted user apps."""
    apps = []
    for bundle_id, info in data.items():
        if not isinstance(info, dict):
            info = {}
        if info.get("ApplicationType") == "System":
            continue
        name = info.get("CFBundleDisplayName") or info.get("CFBundleName") or bundle_id
        apps.append(ApplicationRef(bundle_id=bundle_id, name=str(name)))
    return sorted(apps, key=lambda app: app.bundle_id)


def classify_container_path(relative: str) -> tuple[SandboxLocation, str]:
    """Map a container-relative path to its sandbox location and location-relative path."""
    for location in IOS_LOCATIONS:
        prefix = location.value + "/"
        if relative.startswith(prefix):
            return location, relative[len(prefix) :]
    return SandboxLocation.CONTAINER, relative


def walk_database_files(container: Path) -> list[Path]:
    """Recursively collect database files under ``container``, skipping unreadable dirs."""
    found: list[Path] = []

    def _on_error(exc: OSError) -> None:
        logger.warning("location_unreachable", path=exc.filename, reason=exc.strerror)

    for dirpath, dirnames, filenames in os.walk(container, onerror=_on_error):
        dirnames.sort()
        for name in sorted(filenames):
            if is_database_file(name):
                found.append(Path(dirpath) / name)
    return found


class SimulatorSource(DeviceFileTransport):
    """Booted iOS simulators, whose containers live on the host filesystem."""

    category = DeviceCategory.IOS_SIMULATOR

    def __init__(
        self,
        runner: CommandRunner,
        locator: ToolLocator,
        config: AgentConfig | None = None,
    ) -> None:
        self.runner = runner
        self.locator = locator
        self.config = config or AgentConfig()

    async def list_applications(self, device: DeviceHandle) -> list[ApplicationRef]:
        validate_device_id(device.id)
        listing = await self.runner.run_checked(
            [self.locator.path_for(XCRUN), "simctl", "listapps", device.id]
        )
        # listapps prints an old-style plist; plutil converts it to JSON
        converted = await self.runner.run_checked(
            [self.locator.path_for(PLUTIL), "-convert", "json", "-o", "-", "-"],
            input_text=listing.stdout,
        )
        try:
            data = json.loads(converted.stdout)
        except json.JSONDecodeError as exc:
            raise tool_command_error("plutil -convert json", str(exc)) from exc
        if not isinstance(data, dict):
            return []
        return parse_simctl_apps(data)

    async def app_container(self, device_id: str, bundle_id: str) -> Path:
        """Resolve the host path of the app's data container."""
        validate_device_id(device_id)
        validate_package(bundle_id)
        result = await self.runner.run(
            [self.locator.path_for(XCRUN), "simctl", "get_app_container", device_id, bundle_id, "data"]
        )
        path = result.stdout.strip()
        if not result.ok or not path:
            raise app_container_error(device_id, bundle_id, result.reason)
        return Path(path)

    async def locate_database_files(
        self, device: DeviceHandle, application: ApplicationRef
    ) -> list[DatabaseFileDescriptor]:
        container = await self.app_container(device.id, application.bundle_id)
        files = await asyncio.to_thread(walk_database_files, container)

        descriptors = []
        for path in files:
            location, relative = classify_container_path(path.relative_to(container).as_posix())
            descriptors.append(
                DatabaseFileDescriptor(
                    device_id=device.id,
                    device_category=self.category,
                    application=application,
                    location=location,
                    remote_path=str(path),
                    relative_path=relative,
                )
            )
        logger.debug(
            "simulator_container_scanned",
            udid=device.id,
            bundle_id=application.bundle_id,
            count=len(descriptors),
        )
        return descriptors

    async def pull(self, descriptor: DatabaseFileDescriptor, dest: Path) -> None:
        source = Path(descriptor.remote_path)

        def _copy() -> None:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, dest)

        try:
            await asyncio.to_thread(_copy)
        except OSError as exc:
            raise transfer_failed_error(descriptor.remote_path, str(exc)) from exc

    async def push(
        self,
        local_path: Path,
        device_id: str,
        application: ApplicationRef,
        remote_path: str,
    ) -> str:
        if not local_path.is_file():
            raise file_not_found_error(str(local_path))
        target = Path(remote_path)
        if not target.parent.is_dir():
            raise transfer_failed_error(remote_path, "remote directory does not exist")

        temp = target.with_name(f".{target.name}.mobile-db-agent.tmp")

        def _replace() -> None:
            shutil.copyfile(local_path, temp)
            os.replace(temp, target)

        try:
            await asyncio.to_thread(_replace)
        except OSError as exc:
            temp.unlink(missing_ok=True)
            raise transfer_failed_error(remote_path, str(exc)) from exc

        logger.info("simulator_file_pushed", udid=device_id, local=str(local_path), remote=remote_path)
        return f"Database successfully pushed to {remote_path}"
