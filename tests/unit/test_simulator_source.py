"""Tests for the iOS simulator transport."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from conftest import BareLocator, FakeRunner, failed, ok

from mobile_db_agent.config import AgentConfig
from mobile_db_agent.errors import AgentError
from mobile_db_agent.models import (
    ApplicationRef,
    DatabaseFileDescriptor,
    DeviceCategory,
    DeviceHandle,
    SandboxLocation,
)
from mobile_db_agent.transports.simulator import (
    SimulatorSource,
    classify_container_path,
    parse_simctl_apps,
)

UDID = "5B1E6A3C-7D2F-4E8A-9C1B-2D3E4F5A6B7C"
BUNDLE = "com.example.Notes"
DEVICE = DeviceHandle(id=UDID, category=DeviceCategory.IOS_SIMULATOR)
APP = ApplicationRef(bundle_id=BUNDLE, name="Notes")


def _source(runner: FakeRunner, tmp_path: Path) -> SimulatorSource:
    return SimulatorSource(runner, BareLocator(), AgentConfig(staging_dir=tmp_path / "staging"))


def _container(tmp_path: Path) -> Path:
    container = (
        tmp_path / "CoreSimulator" / "Devices" / UDID / "data" / "Containers" / "Data" / "APP-1"
    )
    (container / "Documents").mkdir(parents=True)
    (container / "Library" / "Caches").mkdir(parents=True)
    (container / "Library" / "Application Support").mkdir(parents=True)
    (container / "Documents" / "notes.sqlite").write_bytes(b"notes")
    (container / "Documents" / "readme.txt").write_text("skip")
    (container / "Library" / "Caches" / "cache.db").write_bytes(b"cache")
    (container / "Library" / "Application Support" / "store.sqlite3").write_bytes(b"store")
    (container / "top.db").write_bytes(b"top")
    return container


class TestHelpers:
    """Tests for simulator parsing helpers."""

    def test_parse_simctl_apps_skips_system(self) -> None:
        """Should drop system apps and prefer display names."""
        apps = parse_simctl_apps(
            {
                "com.zeta.App": {"ApplicationType": "User", "CFBundleName": "Zeta"},
                "com.apple.mobilesafari": {"ApplicationType": "System"},
                "com.alpha.App": {"ApplicationType": "User", "CFBundleDisplayName": "Alpha!"},
                "com.bare.App": {"ApplicationType": "User"},
            }
        )

        assert [(a.bundle_id, a.name) for a in apps] == [
            ("com.alpha.App", "Alpha!"),
            ("com.bare.App", "com.bare.App"),
            ("com.zeta.App", "Zeta"),
        ]

    def test_classify_longest_prefix(self) -> None:
        """Should pick the most specific location."""
        assert classify_container_path("Library/Caches/a.db") == (
            SandboxLocation.LIBRARY_CACHES,
            "a.db",
        )
        assert classify_container_path("Library/Application Support/b.db") == (
            SandboxLocation.LIBRARY,
            "Application Support/b.db",
        )
        assert classify_container_path("Documents/c.db") == (SandboxLocation.DOCUMENTS, "c.db")
        assert classify_container_path("tmp/d.db") == (SandboxLocation.CONTAINER, "tmp/d.db")


class TestSimulatorSource:
    """Tests for SimulatorSource."""

    @pytest.mark.asyncio
    async def test_list_applications_pipes_through_plutil(self, tmp_path: Path) -> None:
        """Should convert listapps output with plutil."""
        apps_json = json.dumps({BUNDLE: {"ApplicationType": "User", "CFBundleName": "Notes"}})
        runner = FakeRunner(
            {
                ("xcrun", "simctl", "listapps", UDID): ok("{ plist }"),
                ("plutil", "-convert", "json"): ok(apps_json),
            }
        )

        apps = await _source(runner, tmp_path).list_applications(DEVICE)

        assert apps == [ApplicationRef(bundle_id=BUNDLE, name="Notes")]
        assert runner.inputs[1] == "{ plist }"

    @pytest.mark.asyncio
    async def test_locate_walks_container(self, tmp_path: Path) -> None:
        """Should find database files and tag them by location."""
        container = _container(tmp_path)
        runner = FakeRunner({("xcrun", "simctl", "get_app_container"): ok(f"{container}\n")})

        files = await _source(runner, tmp_path).locate_database_files(DEVICE, APP)

        by_location = {f.location: f for f in files}
        assert set(by_location) == {
            SandboxLocation.DOCUMENTS,
            SandboxLocation.LIBRARY_CACHES,
            SandboxLocation.LIBRARY,
            SandboxLocation.CONTAINER,
        }
        assert by_location[SandboxLocation.DOCUMENTS].remote_path == str(
            container / "Documents" / "notes.sqlite"
        )
        assert by_location[SandboxLocation.LIBRARY].relative_path == "Application Support/store.sqlite3"
        assert by_location[SandboxLocation.CONTAINER].relative_path == "top.db"
        assert runner.calls[0] == ["xcrun", "simctl", "get_app_container", UDID, BUNDLE, "data"]

    @pytest.mark.asyncio
    async def test_locate_without_container(self, tmp_path: Path) -> None:
        """Should raise when the app container cannot be resolved."""
        runner = FakeRunner({("xcrun", "simctl", "get_app_container"): failed("No such app")})

        with pytest.raises(AgentError) as exc_info:
            await _source(runner, tmp_path).locate_database_files(DEVICE, APP)

        assert exc_info.value.code == "ERR_APP_CONTAINER"

    @pytest.mark.asyncio
    async def test_pull_and_push_round_trip(self, tmp_path: Path) -> None:
        """Should copy out, then atomically replace the remote file."""
        container = _container(tmp_path)
        remote = container / "Documents" / "notes.sqlite"
        descriptor = DatabaseFileDescriptor(
            device_id=UDID,
            device_category=DeviceCategory.IOS_SIMULATOR,
            application=APP,
            location=SandboxLocation.DOCUMENTS,
            remote_path=str(remote),
            relative_path="notes.sqlite",
        )
        source = _source(FakeRunner(), tmp_path)
        local = tmp_path / "staging" / "Documents" / "notes.sqlite"

        await source.pull(descriptor, local)
        assert local.read_bytes() == b"notes"

        local.write_bytes(b"edited")
        message = await source.push(local, UDID, APP, str(remote))

        assert remote.read_bytes() == b"edited"
        assert str(remote) in message
        assert not any(p.name.endswith(".tmp") for p in remote.parent.iterdir())

    @pytest.mark.asyncio
    async def test_push_requires_remote_directory(self, tmp_path: Path) -> None:
        """Should refuse to create directories inside the container."""
        local = tmp_path / "a.db"
        local.write_bytes(b"x")

        with pytest.raises(AgentError) as exc_info:
            await _source(FakeRunner(), tmp_path).push(
                local, UDID, APP, str(tmp_path / "missing" / "a.db")
            )

        assert exc_info.value.code == "ERR_TRANSFER_FAILED"
