"""Physical iOS transport - libimobiledevice binaries and AFC file access."""

from __future__ import annotations

from pathlib import Path

import structlog

from mobile_db_agent.config import AgentConfig
from mobile_db_agent.errors import (
    AgentError,
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
from mobile_db_agent.tools.diagnostics import explain_ios_error
from mobile_db_agent.tools.locator import AFCCLIENT, IDEVICEINSTALLER, ToolLocator
from mobile_db_agent.tools.runner import CommandResult, CommandRunner
from mobile_db_agent.transports.base import DeviceFileTransport, is_database_file
from mobile_db_agent.validation import validate_device_id, validate_package

logger = structlog.get_logger()

AFC_LOCATIONS = (
    SandboxLocation.DOCUMENTS,
    SandboxLocation.LIBRARY,
    SandboxLocation.LIBRARY_CACHES,
    SandboxLocation.LIBRARY_PREFERENCES,
)


def parse_installer_apps(output: str) -> list[ApplicationRef]:
    """Parse ``ideviceinstaller -l -o list_user`` output.

    Rows look like ``com.example.app, "1.0", "Example"``. Rows without enough
    commas fall back to the first token, named after its last dot segment.
    """
    apps = []
    for raw in output.splitlines():
        line = raw.strip()
        if not line or "CFBundleIdentifier" in line:
            continue
        parts = [part.strip().strip('"') for part in line.split(",")]
        if len(parts) >= 3 and parts[0]:
            bundle_id, name = parts[0], parts[2] or parts[0]
        else:
            bundle_id = line.split()[0].strip('"').rstrip(",")
            name = bundle_id.rsplit(".", 1)[-1]
        apps.append(ApplicationRef(bundle_id=bundle_id, name=name))
    return apps


def parse_afc_listing(output: str) -> list[str]:
    """Return database basenames from an ``afcclient ls`` listing."""
    names = []
    for raw in output.splitlines():
        name = raw.strip().rstrip("/").rsplit("/", 1)[-1]
        if name and is_database_file(name):
            names.append(name)
    return names


class PhysicalIOSSource(DeviceFileTransport):
    """USB-attached iPhones and iPads, reached through the app's AFC documents service."""

    category = DeviceCategory.IOS_DEVICE

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
        result = await self.runner.run(
            [self.locator.path_for(IDEVICEINSTALLER), "-u", device.id, "-l", "-o", "list_user"]
        )
        if not result.ok:
            raise tool_command_error(
                "ideviceinstaller -l -o list_user", result.reason, explain_ios_error(result.reason)
            )
        return parse_installer_apps(result.stdout)

    async def check_app_existence(self, device: DeviceHandle, application: ApplicationRef) -> bool:
        """True when the app is installed and exposes its Documents folder."""
        result = await self._afc(device.id, application.bundle_id, "ls", "/Documents")
        if not result.ok:
            logger.info(
                "ios_app_not_accessible",
                udid=device.id,
                bundle_id=application.bundle_id,
                hint=explain_ios_error(result.reason),
            )
        return result.ok

    async def locate_database_files(
        self, device: DeviceHandle, application: ApplicationRef
    ) -> list[DatabaseFileDescriptor]:
        descriptors = []
        for location in AFC_LOCATIONS:
            remote_dir = f"/{location.value}"
            try:
                result = await self._afc(device.id, application.bundle_id, "ls", remote_dir)
            except AgentError as exc:
                if exc.code == "ERR_TOOL_NOT_FOUND":
                    raise
                logger.warning(
                    "location_unreachable",
                    udid=device.id,
                    bundle_id=application.bundle_id,
                    location=location.value,
                    reason=exc.message,
                )
                continue
            if not result.ok:
                logger.warning(
                    "location_unreachable",
                    udid=device.id,
                    bundle_id=application.bundle_id,
                    location=location.value,
                    reason=result.reason,
                )
                continue
            for name in parse_afc_listing(result.stdout):
                descriptors.append(
                    DatabaseFileDescriptor(
                        device_id=device.id,
                        device_category=self.category,
                        application=application,
                        location=location,
                        remote_path=f"{remote_dir}/{name}",
                        relative_path=name,
                    )
                )
        return descriptors

    async def pull(self, descriptor: DatabaseFileDescriptor, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        result = await self._afc(
            descriptor.device_id,
            descriptor.application.bundle_id,
            "get",
            descriptor.remote_path,
            str(dest),
            timeout=self.config.transfer_timeout,
        )
        if not result.ok:
            raise transfer_failed_error(
                descriptor.remote_path, f"{result.reason} ({explain_ios_error(result.reason)})"
            )

    async def push(
        self,
        local_path: Path,
        device_id: str,
        application: ApplicationRef,
        remote_path: str,
    ) -> str:
        if not local_path.is_file():
            raise file_not_found_error(str(local_path))

        # AFC put may rename instead of overwrite, so delete the old file first
        removed = await self._afc(device_id, application.bundle_id, "rm", remote_path)
        if not removed.ok:
            logger.info(
                "ios_remote_delete_skipped",
                udid=device_id,
                remote=remote_path,
                reason=removed.reason,
            )

        result = await self._afc(
            device_id,
            application.bundle_id,
            "put",
            str(local_path),
            remote_path,
            timeout=self.config.transfer_timeout,
        )
        if not result.ok:
            raise transfer_failed_error(
                remote_path, f"{result.reason} ({explain_ios_error(result.reason)})"
            )
        logger.info("ios_file_pushed", udid=device_id, local=str(local_path), remote=remote_path)
        return f"Database successfully pushed to {remote_path}"

    async def _afc(
        self,
        device_id: str,
        bundle_id: str,
        *command: str,
        timeout: float | None = None,
    ) -> CommandResult:
        validate_device_id(device_id)
        validate_package(bundle_id)
        args = [
            self.locator.path_for(AFCCLIENT),
            "--documents",
            bundle_id,
            "-u",
            device_id,
            *command,
        ]
        return await self.runner.run(args, timeout=timeout)
