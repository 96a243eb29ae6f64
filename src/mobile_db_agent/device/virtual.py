"""Virtual device control - Android AVDs and iOS simulators."""

from __future__ import annotations

import asyncio
import subprocess
from dataclasses import dataclass
from typing import Any

import structlog

from mobile_db_agent.device.enumerator import load_simctl_devices, parse_adb_devices
from mobile_db_agent.errors import (
    AgentError,
    device_not_found_error,
    invalid_platform_error,
    tool_command_error,
    tool_not_found_error,
)
from mobile_db_agent.tools.locator import ADB, EMULATOR, XCRUN, ToolLocator
from mobile_db_agent.tools.runner import CommandRunner
from mobile_db_agent.validation import validate_device_id

logger = structlog.get_logger()

ANDROID = "android"
IOS = "ios"
PLATFORMS = (ANDROID, IOS)


@dataclass(frozen=True)
class VirtualDevice:
    """An emulator or simulator that can be launched."""

    id: str
    name: str
    platform: str
    running: bool
    os_version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "platform": self.platform,
            "running": self.running,
        }
        if self.os_version is not None:
            data["os_version"] = self.os_version
        return data


def parse_avd_names(output: str) -> list[str]:
    # emulator prints INFO/WARNING lines before the names on some hosts
    return [
        line.strip()
        for line in output.splitlines()
        if line.strip() and not line.startswith(("INFO", "WARNING", "ERROR"))
    ]


class VirtualDeviceManager:
    """List and launch emulators and simulators."""

    def __init__(self, runner: CommandRunner, locator: ToolLocator) -> None:
        self.runner = runner
        self.locator = locator

    async def list_virtual_devices(self) -> list[VirtualDevice]:
        results = await asyncio.gather(
            self.list_avds(), self.list_simulators(), return_exceptions=True
        )
        devices: list[VirtualDevice] = []
        for platform, result in zip(PLATFORMS, results, strict=True):
            if isinstance(result, BaseException):
                if not isinstance(result, (AgentError, OSError, ValueError)):
                    raise result
                logger.warning("virtual_device_source_failed", platform=platform, error=str(result))
                continue
            devices.extend(result)
        return devices

    async def list_avds(self) -> list[VirtualDevice]:
        result = await self.runner.run_checked([self.locator.path_for(EMULATOR), "-list-avds"])
        names = parse_avd_names(result.stdout)
        running = await self._running_avds()
        return [
            VirtualDevice(id=name, name=name, platform=ANDROID, running=name in running)
            for name in names
        ]

    async def list_simulators(self) -> list[VirtualDevice]:
        result = await self.runner.run_checked(
            [self.locator.path_for(XCRUN), "simctl", "list", "devices", "available", "--json"]
        )
        entries = load_simctl_devices(
            result.stdout, "xcrun simctl list devices available --json", booted_only=False
        )
        return [
            VirtualDevice(
                id=entry["udid"],
                name=entry.get("name") or entry["udid"],
                platform=IOS,
                running=entry.get("state") == "Booted",
                os_version=entry["os_version"],
            )
            for entry in entries
            if entry.get("udid")
        ]

    async def launch(self, platform: str, device_id: str) -> str:
        """Start an AVD or boot a simulator; returns a status message."""
        if platform == ANDROID:
            return await self._launch_avd(device_id)
        if platform == IOS:
            return await self._boot_simulator(device_id)
        raise invalid_platform_error(platform)

    async def _running_avds(self) -> set[str]:
        """Map connected emulator serials to their AVD names."""
        adb = self.locator.path_for(ADB)
        try:
            devices = await self.runner.run_checked([adb, "devices", "-l"])
        except AgentError as exc:
            logger.warning("running_avd_lookup_failed", error=exc.message)
            return set()

        running: set[str] = set()
        for device in parse_adb_devices(devices.stdout):
            if not device.id.startswith("emulator-"):
                continue
            result = await self.runner.run([adb, "-s", device.id, "emu", "avd", "name"])
            if result.ok:
                # Output is the name followed by an "OK" line
                lines = [line.strip() for line in result.stdout.splitlines() if line.strip()]
                if lines:
                    running.add(lines[0])
        return running

    async def _launch_avd(self, avd_name: str) -> str:
        names = parse_avd_names(
            (await self.runner.run_checked([self.locator.path_for(EMULATOR), "-list-avds"])).stdout
        )
        if avd_name not in names:
            raise device_not_found_error(avd_name)

        args = [self.locator.path_for(EMULATOR), "-avd", avd_name]

        def _spawn() -> int:
            proc = subprocess.Popen(
                args,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
            return proc.pid

        try:
            pid = await asyncio.to_thread(_spawn)
        except (FileNotFoundError, PermissionError) as exc:
            raise tool_not_found_error(EMULATOR) from exc
        logger.info("emulator_launched", avd=avd_name, pid=pid)
        return f"Emulator {avd_name} is starting"

    async def _boot_simulator(self, udid: str) -> str:
        validate_device_id(udid)
        result = await self.runner.run([self.locator.path_for(XCRUN), "simctl", "boot", udid])
        # simctl refuses to boot an already booted device; that is fine here
        if not result.ok and "Booted" not in result.reason:
            raise tool_command_error(
                f"xcrun simctl boot {udid}",
                result.reason,
                "Check the simulator id with 'emulator list'.",
            )
        # The device is booted either way; the Simulator window is optional
        try:
            opened = await self.runner.run(["open", "-a", "Simulator"])
        except AgentError as exc:
            logger.warning("simulator_app_open_failed", reason=exc.message)
        else:
            if not opened.ok:
                logger.warning("simulator_app_open_failed", reason=opened.reason)
        logger.info("simulator_booted", udid=udid)
        return f"Simulator {udid} booted"
