"""Tests for emulator and simulator control."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from conftest import BareLocator, FakeRunner, failed, ok

from mobile_db_agent.device import virtual as virtual_module
from mobile_db_agent.device.virtual import VirtualDeviceManager, parse_avd_names
from mobile_db_agent.errors import AgentError

SIMCTL_JSON = json.dumps(
    {
        "devices": {
            "com.apple.CoreSimulator.SimRuntime.iOS-17-2": [
                {"udid": "SIM-1", "name": "iPhone 15", "state": "Booted"},
                {"udid": "SIM-2", "name": "iPad Air", "state": "Shutdown"},
            ]
        }
    }
)


def _manager(runner: FakeRunner) -> VirtualDeviceManager:
    return VirtualDeviceManager(runner, BareLocator())  # type: ignore[arg-type]


class TestParseAvdNames:
    """Tests for parse_avd_names."""

    def test_skips_log_lines(self) -> None:
        """Should ignore emulator log noise."""
        output = "INFO    | Storing crashdata\nPixel_8_API_34\n\nTablet_API_33\n"

        assert parse_avd_names(output) == ["Pixel_8_API_34", "Tablet_API_33"]


class TestVirtualDeviceManager:
    """Tests for VirtualDeviceManager."""

    @pytest.mark.asyncio
    async def test_lists_avds_and_simulators(self) -> None:
        """Should mark running AVDs and booted simulators."""
        runner = FakeRunner(
            {
                ("emulator", "-list-avds"): ok("Pixel_8\nTablet\n"),
                ("adb", "devices", "-l"): ok(
                    "List of devices attached\n"
                    "emulator-5554 device product:sdk model:Pixel_8\n"
                    "emulator-5556 offline\n"
                ),
                ("adb", "-s", "emulator-5554", "emu", "avd", "name"): ok("Pixel_8\nOK\n"),
                ("xcrun", "simctl", "list", "devices", "available"): ok(SIMCTL_JSON),
            }
        )

        devices = {d.id: d for d in await _manager(runner).list_virtual_devices()}

        assert devices["Pixel_8"].running
        assert not devices["Tablet"].running
        assert devices["SIM-1"].running
        assert devices["SIM-1"].os_version == "17.2"
        assert devices["SIM-2"].to_dict()["platform"] == "ios"
        assert ["adb", "-s", "emulator-5556", "emu", "avd", "name"] not in runner.calls

    @pytest.mark.asyncio
    async def test_missing_emulator_still_lists_simulators(self) -> None:
        """Should isolate a failing source."""
        runner = FakeRunner({("xcrun", "simctl", "list"): ok(SIMCTL_JSON)})

        devices = await _manager(runner).list_virtual_devices()

        assert [d.platform for d in devices] == ["ios", "ios"]

    @pytest.mark.asyncio
    async def test_launch_avd_spawns_detached(self) -> None:
        """Should start the emulator in its own session."""
        runner = FakeRunner({("emulator", "-list-avds"): ok("Pixel_8\n")})
        popen = MagicMock(return_value=MagicMock(pid=4321))

        with patch.object(virtual_module.subprocess, "Popen", popen):
            message = await _manager(runner).launch("android", "Pixel_8")

        assert "Pixel_8" in message
        args, kwargs = popen.call_args
        assert args[0] == ["emulator", "-avd", "Pixel_8"]
        assert kwargs["start_new_session"] is True

    @pytest.mark.asyncio
    async def test_launch_unknown_avd(self) -> None:
        """Should refuse names the emulator does not know."""
        runner = FakeRunner({("emulator", "-list-avds"): ok("Pixel_8\n")})

        with pytest.raises(AgentError) as exc_info:
            await _manager(runner).launch("android", "Nexus_One")

        assert exc_info.value.code == "ERR_DEVICE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_boot_already_booted_simulator(self) -> None:
        """Should treat an already booted simulator as success."""
        runner = FakeRunner(
            {
                ("xcrun", "simctl", "boot"): failed(
                    "Unable to boot device in current state: Booted"
                ),
                ("open", "-a", "Simulator"): ok(),
            }
        )

        message = await _manager(runner).launch("ios", "SIM-1")

        assert message == "Simulator SIM-1 booted"
        assert runner.calls[-1] == ["open", "-a", "Simulator"]

    @pytest.mark.asyncio
    async def test_boot_without_open_command(self) -> None:
        """Should report the boot as done when the Simulator app cannot be opened."""
        runner = FakeRunner({("xcrun", "simctl", "boot"): ok()})

        message = await _manager(runner).launch("ios", "SIM-1")

        assert message == "Simulator SIM-1 booted"
        assert runner.calls[-1] == ["open", "-a", "Simulator"]

    @pytest.mark.asyncio
    async def test_boot_failure(self) -> None:
        """Should raise when simctl cannot boot the device."""
        runner = FakeRunner({("xcrun", "simctl", "boot"): failed("Invalid device: SIM-9")})

        with pytest.raises(AgentError) as exc_info:
            await _manager(runner).launch("ios", "SIM-9")

        assert exc_info.value.code == "ERR_TOOL_COMMAND"

    @pytest.mark.asyncio
    async def test_invalid_platform(self) -> None:
        """Should reject unknown platforms."""
        with pytest.raises(AgentError) as exc_info:
            await _manager(FakeRunner()).launch("windows", "x")

        assert exc_info.value.code == "ERR_INVALID_PLATFORM"
