"""Sync engine - uniform entry points over every device transport.

Every public coroutine returns an ``Envelope``. Transport errors are logged
and converted here; nothing raised below this layer reaches the caller.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import structlog

from mobile_db_agent.config import AgentConfig
from mobile_db_agent.device.enumerator import DeviceEnumerator
from mobile_db_agent.device.virtual import VirtualDeviceManager
from mobile_db_agent.errors import (
    AgentError,
    device_not_found_error,
    file_not_found_error,
    unsupported_category_error,
)
from mobile_db_agent.models import (
    ApplicationRef,
    DatabaseFileDescriptor,
    DeviceCategory,
    DeviceHandle,
    Envelope,
    ProvenanceRecord,
)
from mobile_db_agent.staging.manager import StagingArea, infer_category
from mobile_db_agent.tools.locator import ToolLocator
from mobile_db_agent.tools.runner import CommandRunner
from mobile_db_agent.transports.android import AndroidSource
from mobile_db_agent.transports.base import DeviceFileTransport
from mobile_db_agent.transports.ios_device import PhysicalIOSSource
from mobile_db_agent.transports.simulator import SimulatorSource

logger = structlog.get_logger()


def parse_category(value: str | DeviceCategory) -> DeviceCategory:
    if isinstance(value, DeviceCategory):
        return value
    try:
        return DeviceCategory(value)
    except ValueError as exc:
        raise unsupported_category_error(str(value)) from exc


def _failure(operation: str, exc: Exception, **payload: Any) -> Envelope:
    if isinstance(exc, AgentError):
        logger.error(operation + "_failed", code=exc.code, error=exc.message)
        if "instructions" in exc.context:
            payload.setdefault("instructions", exc.context["instructions"])
        return Envelope.fail(str(exc), exc.code, **payload)
    logger.error(operation + "_failed", error=str(exc))
    return Envelope.fail(str(exc), "ERR_IO", **payload)


class SyncEngine:
    """Discovery, staging and sync-back for Android and iOS apps."""

    def __init__(
        self,
        config: AgentConfig | None = None,
        *,
        runner: CommandRunner | None = None,
        locator: ToolLocator | None = None,
        transports: dict[DeviceCategory, DeviceFileTransport] | None = None,
        enumerator: DeviceEnumerator | None = None,
        virtual_devices: VirtualDeviceManager | None = None,
        staging: StagingArea | None = None,
    ) -> None:
        self.config = config or AgentConfig.from_env()
        self.locator = locator or ToolLocator(self.config.tools_dir)
        self.runner = runner or CommandRunner(self.config.command_timeout)
        self.transports = transports or {
            source.category: source
            for source in (
                AndroidSource(self.runner, self.locator, self.config),
                SimulatorSource(self.runner, self.locator, self.config),
                PhysicalIOSSource(self.runner, self.locator, self.config),
            )
        }
        self.enumerator = enumerator or DeviceEnumerator(self.runner, self.locator)
        self.virtual_devices = virtual_devices or VirtualDeviceManager(self.runner, self.locator)
        self.staging = staging or StagingArea(self.config.staging_dir)

    def transport_for(self, category: str | DeviceCategory) -> DeviceFileTransport:
        resolved = parse_category(category)
        transport = self.transports.get(resolved)
        if transport is None:
            raise unsupported_category_error(resolved.value)
        return transport

    async def resolve_device(
        self, device_id: str, category: str | DeviceCategory | None = None
    ) -> DeviceHandle:
        """Build a handle from an explicit category, or find the device by id."""
        if category is not None:
            return DeviceHandle(id=device_id, category=parse_category(category))
        for device in await self.enumerator.list_devices():
            if device.id == device_id:
                return device
        raise device_not_found_error(device_id)

    # Enumeration

    async def list_devices(self) -> Envelope:
        try:
            devices = await self.enumerator.list_devices()
        except (AgentError, OSError) as exc:
            return _failure("list_devices", exc, devices=[])
        return Envelope.ok(devices=[device.to_dict() for device in devices])

    async def list_applications(self, device: DeviceHandle) -> Envelope:
        """List user apps; a failing query yields an empty list, not an error."""
        try:
            apps = await self.transport_for(device.category).list_applications(device)
        except AgentError as exc:
            if exc.code == "ERR_UNSUPPORTED_CATEGORY":
                return _failure("list_applications", exc, apps=[])
            logger.warning(
                "app_listing_failed", device=device.id, category=device.category.value, error=str(exc)
            )
            return Envelope.ok(apps=[])
        return Envelope.ok(apps=[app.to_dict() for app in apps])

    async def check_app_existence(self, device: DeviceHandle, application: ApplicationRef) -> Envelope:
        try:
            exists = await self.transport_for(device.category).check_app_existence(
                device, application
            )
        except (AgentError, OSError) as exc:
            return _failure("check_app_existence", exc, exists=False)
        return Envelope.ok(exists=exists)

    def check_tools(self) -> Envelope:
        return Envelope.ok(tools=self.locator.check())

    # Locating

    async def locate_database_files(
        self, device: DeviceHandle, application: ApplicationRef
    ) -> Envelope:
        try:
            files = await self._locate(device, application)
        except (AgentError, OSError) as exc:
            return _failure("locate_database_files", exc, files=[])
        return Envelope.ok(files=[descriptor.to_dict() for descriptor in files])

    async def locate_android_database_files(self, device_id: str, package: str) -> Envelope:
        return await self.locate_database_files(
            DeviceHandle(id=device_id, category=DeviceCategory.ANDROID),
            ApplicationRef(bundle_id=package, name=package),
        )

    async def locate_simulator_database_files(self, device_id: str, bundle_id: str) -> Envelope:
        return await self.locate_database_files(
            DeviceHandle(id=device_id, category=DeviceCategory.IOS_SIMULATOR),
            ApplicationRef(bundle_id=bundle_id, name=bundle_id),
        )

    async def locate_ios_device_database_files(self, device_id: str, bundle_id: str) -> Envelope:
        return await self.locate_database_files(
            DeviceHandle(id=device_id, category=DeviceCategory.IOS_DEVICE),
            ApplicationRef(bundle_id=bundle_id, name=bundle_id),
        )

    # Staging

    async def stage(self, descriptor: DatabaseFileDescriptor) -> Envelope:
        """Stage one file; failure affects only this descriptor."""
        try:
            staged = await self._stage_one(descriptor)
        except (AgentError, OSError) as exc:
            return _failure("stage", exc, remote_path=descriptor.remote_path)
        return Envelope.ok(file=staged.to_dict())

    async def discover(self, device: DeviceHandle, application: ApplicationRef) -> Envelope:
        """Reset staging, locate every database file and stage each one."""
        envelope, _ = await self.discover_descriptors(device, application)
        return envelope

    async def discover_descriptors(
        self, device: DeviceHandle, application: ApplicationRef
    ) -> tuple[Envelope, list[DatabaseFileDescriptor]]:
        """Like ``discover`` but also returns the staged descriptors for session bookkeeping."""
        try:
            transport = self.transport_for(device.category)
            await asyncio.to_thread(self.staging.reset)
            located = await transport.locate_database_files(device, application)
        except (AgentError, OSError) as exc:
            return _failure("discover", exc, files=[], failures=[]), []

        if transport.concurrent_transfers:
            outcomes = await asyncio.gather(
                *(self._stage_outcome(descriptor) for descriptor in located)
            )
        else:
            outcomes = [await self._stage_outcome(descriptor) for descriptor in located]

        staged: list[DatabaseFileDescriptor] = []
        failures: list[dict[str, str]] = []
        for descriptor, outcome in zip(located, outcomes, strict=True):
            if isinstance(outcome, DatabaseFileDescriptor):
                staged.append(outcome)
            else:
                failures.append({"remote_path": descriptor.remote_path, "error": outcome})

        logger.info(
            "discovery_finished",
            device=device.id,
            package=application.bundle_id,
            staged=len(staged),
            failed=len(failures),
        )
        envelope = Envelope.ok(
            files=[descriptor.to_dict() for descriptor in staged], failures=failures
        )
        return envelope, staged

    # Sync-back

    async def push(
        self,
        local_path: str | Path,
        device: DeviceHandle,
        application: ApplicationRef,
        remote_path: str,
    ) -> Envelope:
        local = Path(local_path).expanduser()
        try:
            if not local.is_file():
                raise file_not_found_error(str(local))
            message = await self.transport_for(device.category).push(
                local, device.id, application, remote_path
            )
        except (AgentError, OSError) as exc:
            return _failure("push", exc)
        return Envelope.ok(message=message)

    async def push_staged(self, local_path: str | Path) -> Envelope:
        """Push a staged file back using the addressing in its sidecar."""
        local = Path(local_path).expanduser()
        try:
            record = await asyncio.to_thread(self.staging.read_provenance, local)
            category = infer_category(record.remote_path)
        except AgentError as exc:
            return _failure("push_staged", exc)
        device = DeviceHandle(id=record.device_id, category=category)
        application = ApplicationRef(bundle_id=record.package_name, name=record.package_name)
        return await self.push(local, device, application, record.remote_path)

    # Virtual devices

    async def list_virtual_devices(self) -> Envelope:
        try:
            devices = await self.virtual_devices.list_virtual_devices()
        except (AgentError, OSError) as exc:
            return _failure("list_virtual_devices", exc, devices=[])
        return Envelope.ok(devices=[device.to_dict() for device in devices])

    async def launch_virtual_device(self, platform: str, device_id: str) -> Envelope:
        try:
            message = await self.virtual_devices.launch(platform, device_id)
        except (AgentError, OSError) as exc:
            return _failure("launch_virtual_device", exc)
        return Envelope.ok(message=message)

    async def _locate(
        self, device: DeviceHandle, application: ApplicationRef
    ) -> list[DatabaseFileDescriptor]:
        files = await self.transport_for(device.category).locate_database_files(device, application)
        logger.info(
            "database_files_located",
            device=device.id,
            package=application.bundle_id,
            count=len(files),
        )
        return files

    async def _stage_one(self, descriptor: DatabaseFileDescriptor) -> DatabaseFileDescriptor:
        transport = self.transport_for(descriptor.device_category)
        local = self.staging.path_for(descriptor)
        local.parent.mkdir(parents=True, exist_ok=True)
        await transport.pull(descriptor, local)
        record = ProvenanceRecord(
            device_id=descriptor.device_id,
            package_name=descriptor.application.bundle_id,
            remote_path=descriptor.remote_path,
        )
        await asyncio.to_thread(self.staging.write_provenance, local, record)
        logger.info(
            "file_staged",
            device=descriptor.device_id,
            remote=descriptor.remote_path,
            local=str(local),
        )
        return descriptor.with_local_path(str(local))

    async def _stage_outcome(self, descriptor: DatabaseFileDescriptor) -> DatabaseFileDescriptor | str:
        try:
            return await self._stage_one(descriptor)
        except (AgentError, OSError) as exc:
            logger.error("stage_failed", remote=descriptor.remote_path, error=str(exc))
            return str(exc)
