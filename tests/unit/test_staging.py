"""Tests for the staging area and provenance sidecars."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from mobile_db_agent.errors import AgentError
from mobile_db_agent.models import (
    ApplicationRef,
    DatabaseFileDescriptor,
    DeviceCategory,
    ProvenanceRecord,
    SandboxLocation,
)
from mobile_db_agent.staging.manager import StagingArea, infer_category, sidecar_path

APP = ApplicationRef(bundle_id="com.example.notes", name="Notes")


def _descriptor(location: SandboxLocation, relative: str, remote: str) -> DatabaseFileDescriptor:
    return DatabaseFileDescriptor(
        device_id="emulator-5554",
        device_category=DeviceCategory.ANDROID,
        application=APP,
        location=location,
        remote_path=remote,
        relative_path=relative,
    )


class TestStagingArea:
    """Tests for StagingArea."""

    def test_reset_clears_previous_run(self, tmp_path: Path) -> None:
        """Should remove files left by an earlier discovery."""
        staging = StagingArea(tmp_path / "stage")
        staging.reset()
        stale = staging.root / "databases" / "old.db"
        stale.parent.mkdir(parents=True)
        stale.write_bytes(b"old")

        staging.reset()

        assert staging.root.is_dir()
        assert staging.staged_files() == []

    def test_same_basename_different_locations(self, tmp_path: Path) -> None:
        """Should namespace copies by sandbox location."""
        staging = StagingArea(tmp_path)
        internal = _descriptor(
            SandboxLocation.DATABASES, "app.db", "/data/data/com.example.notes/databases/app.db"
        )
        external = _descriptor(
            SandboxLocation.EXTERNAL_FILES,
            "app.db",
            "/sdcard/Android/data/com.example.notes/files/app.db",
        )

        first = staging.path_for(internal)
        second = staging.path_for(external)

        assert first != second
        assert first == tmp_path / "databases" / "app.db"
        assert second == tmp_path / "external_files" / "app.db"

    def test_relative_path_cannot_escape(self, tmp_path: Path) -> None:
        """Should drop parent references from relative paths."""
        staging = StagingArea(tmp_path)
        descriptor = _descriptor(SandboxLocation.FILES, "../../etc/evil.db", "/data/x/evil.db")

        assert staging.path_for(descriptor) == tmp_path / "files" / "etc" / "evil.db"

    def test_provenance_round_trip(self, tmp_path: Path) -> None:
        """Should write the camelCase sidecar and read it back."""
        staging = StagingArea(tmp_path)
        local = tmp_path / "databases" / "app.db"
        local.parent.mkdir(parents=True)
        local.write_bytes(b"x")
        record = ProvenanceRecord(
            device_id="emulator-5554",
            package_name="com.example.notes",
            remote_path="/data/data/com.example.notes/databases/app.db",
            timestamp="2024-05-01T10:00:00+00:00",
        )

        path = staging.write_provenance(local, record)

        assert path == sidecar_path(local)
        assert path.name == "app.db.meta.json"
        assert json.loads(path.read_text()) == {
            "deviceId": "emulator-5554",
            "packageName": "com.example.notes",
            "remotePath": "/data/data/com.example.notes/databases/app.db",
            "timestamp": "2024-05-01T10:00:00+00:00",
        }
        assert staging.read_provenance(local) == record
        assert staging.staged_files() == [local]

    def test_missing_provenance(self, tmp_path: Path) -> None:
        """Should raise ERR_PROVENANCE_MISSING without a sidecar."""
        with pytest.raises(AgentError) as exc_info:
            StagingArea(tmp_path).read_provenance(tmp_path / "nope.db")

        assert exc_info.value.code == "ERR_PROVENANCE_MISSING"


class TestInferCategory:
    """Tests for infer_category."""

    def test_android_paths(self) -> None:
        """Should map device paths to android."""
        assert infer_category("/data/data/a.b/databases/x.db") is DeviceCategory.ANDROID
        assert infer_category("/sdcard/Android/data/a.b/files/x.db") is DeviceCategory.ANDROID
        assert infer_category("/storage/emulated/0/x.db") is DeviceCategory.ANDROID

    def test_simulator_path(self) -> None:
        """Should map CoreSimulator container paths to the simulator."""
        remote = "/Users/me/Library/Developer/CoreSimulator/Devices/ABC/data/x.db"
        assert infer_category(remote) is DeviceCategory.IOS_SIMULATOR

    def test_afc_path(self) -> None:
        """Should treat AFC paths as physical iOS."""
        assert infer_category("/Documents/x.db") is DeviceCategory.IOS_DEVICE
