"""Device enumerator - adb, simctl and libimobiledevice merged into one list."""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any

import structlog

from mobile_db_agent.errors import AgentError, tool_command_error
from mobile_db_agent.models import DeviceCategory, DeviceHandle
from mobile_db_agent.tools.diagnostics import explain_ios_error
from mobile_db_agent.tools.locator import ADB, IDEVICE_ID, IDEVICEINFO, XCRUN, ToolLocator
from mobile_db_agent.tools.runner import CommandRunner

logger = structlog.get_logger()

RUNTIME_PATTERN = re.compile(r"^com\.apple\.CoreSimulator\.SimRuntime\.[A-Za-z]+-(.+)$")


def parse_adb_devices(output: str) -> list[DeviceHandle]:
    """Parse ``adb devices -l`` rows into Android handles.

    Rows in any state other than ``device`` (unauthorized, offline) are skipped.
    """
    devices = []
    for line in output.splitlines()[1:]:
        tokens = line.split()
        if len(tokens) < 2 or tokens[1] != "device":
            continue
        model = "Unknown"
        name = "Android Device"
        for token in tokens[2:]:
            if token.startswith("model:"):
                model = token.removeprefix("model:") or model
            elif token.startswith("device:"):
                name = token.removeprefix("device:") or name
        devices.append(
            DeviceHandle(id=tokens[0], category=DeviceCategory.ANDROID, display_name=name, model=model)
        )
    return devices


def runtime_version(runtime: str) -> str:
    """``com.apple.CoreSimulator.SimRuntime.iOS-17-2`` -> ``17.2``."""
    match = RUNTIME_PATTERN.match(runtime)
    if not match:
        return "Unknown"
    return match.group(1).replace("-", ".")


def parse_simctl_devices(data: Any, booted_only: bool = True) -> list[dict[str, Any]]:
    """Flatten ``simctl list devices --json`` into dicts with the runtime version attached.

    Raises:
        ValueError: If the payload is not a ``{"devices": {runtime: [entry]}}`` map
    """
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    runtimes = data.get("devices") or {}
    if not isinstance(runtimes, dict):
        raise ValueError("expected 'devices' to map runtimes to device lists")
    flat = []
    for runtime, entries in runtimes.items():
        if not isinstance(entries, list):
            continue
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            if booted_only and entry.get("state") != "Booted":
                continue
            flat.append({**entry, "os_version": runtime_version(runtime)})
    return flat


def load_simctl_devices(
    stdout: str, command: str, booted_only: bool = True
) -> list[dict[str, Any]]:
    """Decode simctl JSON output, reporting malformed output as a command error."""
    try:
        return parse_simctl_devices(json.loads(stdout), booted_only=booted_only)
    except ValueError as exc:
        # JSONDecodeError is a ValueError
        raise tool_command_error(command, str(exc)) from exc


def parse_ideviceinfo(output: str) -> dict[str, str]:
    """Split ``key: value`` lines on the first colon."""
    info: dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.partition(":")
        if sep and key.strip():
            info[key.strip()] = value.strip()
    return info


class DeviceEnumerator:
    """Lists Android devices, booted simulators and physical iOS devices.

    Each source is queried concurrently and isolated: a failing tool
    contributes an empty list and never aborts the others.
    """

    def __init__(self, runner: CommandRunner, locator: ToolLocator) -> None:
        self.runner = runner
        self.locator = locator

    async def list_devices(self) -> list[DeviceHandle]:
        sources = (
            ("android", self.list_android_devices()),
            ("ios-simulator", self.list_simulators()),
            ("ios-device", self.list_ios_devices()),
        )
        results = await asyncio.gather(*(coro for _, coro in sources), return_exceptions=True)

        devices: list[DeviceHandle] = []
        for (source, _), result in zip(sources, results, strict=True):
            if isinstance(result, BaseException):
                if not isinstance(result, (AgentError, OSError, ValueError)):
                    raise result
                logger.warning("device_source_failed", source=source, error=str(result))
                continue
            devices.extend(result)
        logger.info("devices_enumerated", count=len(devices))
        return devices

    async def list_android_devices(self) -> list[DeviceHandle]:
        result = await self.runner.run_checked([self.locator.path_for(ADB), "devices", "-l"])
        return parse_adb_devices(result.stdout)

    async def list_simulators(self) -> list[DeviceHandle]:
        result = await self.runner.run_checked(
            [self.locator.path_for(XCRUN), "simctl", "list", "devices", "--json"]
        )
        entries = load_simctl_devices(result.stdout, "xcrun simctl list devices --json")
        return [
            DeviceHandle(
                id=entry["udid"],
                category=DeviceCategory.IOS_SIMULATOR,
                display_name=entry.get("name") or "Unknown",
                model=(entry.get("deviceTypeIdentifier") or "").rsplit(".", 1)[-1] or "Simulator",
                os_version=entry["os_version"],
            )
            for entry in entries
            if entry.get("udid")
        ]

    async def list_ios_devices(self) -> list[DeviceHandle]:
        result = await self.runner.run_checked([self.locator.path_for(IDEVICE_ID), "-l"])
        udids = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        return list(await asyncio.gather(*(self._describe_ios_device(udid) for udid in udids)))

    async def _describe_ios_device(self, udid: str) -> DeviceHandle:
        try:
            result = await self.runner.run_checked(
                [self.locator.path_for(IDEVICEINFO), "-u", udid]
            )
        except AgentError as exc:
            reason = str(exc.context.get("reason") or exc.message)
            hint = explain_ios_error(reason)
            logger.warning("device_info_failed", udid=udid, reason=reason)
            return DeviceHandle(id=udid, category=DeviceCategory.IOS_DEVICE, error=hint)

        info = parse_ideviceinfo(result.stdout)
        return DeviceHandle(
            id=udid,
            category=DeviceCategory.IOS_DEVICE,
            display_name=info.get("DeviceName") or info.get("Model") or "Unknown",
            model=info.get("ProductType") or info.get("Model") or "Unknown",
            os_version=info.get("ProductVersion"),
        )
