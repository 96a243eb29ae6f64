"""Core data model shared by the enumerator, transports, staging and engine."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class DeviceCategory(str, Enum):
    """Device categories, one transport each."""

    ANDROID = "android"
    IOS_SIMULATOR = "ios-simulator"
    IOS_DEVICE = "ios-device"


class SandboxLocation(str, Enum):
    """Well-known sandbox sub-paths where app databases live."""

    # Android app-private storage (/data/data/<pkg>), read through run-as
    DATABASES = "databases"
    FILES = "files"
    SHARED_PREFS = "shared_prefs"
    APP_DATABASES = "app_databases"
    APP_DB = "app_db"
    ROOT = "root"
    # Android external storage (/sdcard/Android/data/<pkg>)
    EXTERNAL_DATABASES = "external/databases"
    EXTERNAL_FILES = "external/files"
    EXTERNAL_SHARED_PREFS = "external/shared_prefs"
    EXTERNAL_APP_DATABASES = "external/app_databases"
    EXTERNAL_APP_DB = "external/app_db"
    EXTERNAL_ROOT = "external/root"
    # iOS app container
    DOCUMENTS = "Documents"
    LIBRARY = "Library"
    LIBRARY_CACHES = "Library/Caches"
    LIBRARY_PREFERENCES = "Library/Preferences"
    CONTAINER = "container"

    @property
    def slug(self) -> str:
        """Filesystem-safe form used to namespace staged copies."""
        return self.value.replace("/", "_")


@dataclass(frozen=True)
class DeviceHandle:
    """One connected device or running simulator."""

    id: str
    category: DeviceCategory
    display_name: str = "Unknown"
    model: str = "Unknown"
    os_version: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.display_name,
            "model": self.model,
            "category": self.category.value,
        }
        if self.os_version is not None:
            data["os_version"] = self.os_version
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class ApplicationRef:
    """An installed application: Android package or Apple bundle id."""

    bundle_id: str
    name: str

    def to_dict(self) -> dict[str, str]:
        return {"bundle_id": self.bundle_id, "name": self.name}


@dataclass(frozen=True)
class DatabaseFileDescriptor:
    """A database file inside an app sandbox, optionally staged locally."""

    device_id: str
    device_category: DeviceCategory
    application: ApplicationRef
    location: SandboxLocation
    remote_path: str
    relative_path: str
    local_path: str = ""

    @property
    def filename(self) -> str:
        return self.remote_path.rstrip("/").rsplit("/", 1)[-1]

    def with_local_path(self, local_path: str) -> DatabaseFileDescriptor:
        return replace(self, local_path=local_path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "device_id": self.device_id,
            "device_category": self.device_category.value,
            "package": self.application.bundle_id,
            "app_name": self.application.name,
            "location": self.location.value,
            "remote_path": self.remote_path,
            "relative_path": self.relative_path,
            "filename": self.filename,
            "local_path": self.local_path,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DatabaseFileDescriptor:
        package = data["package"]
        return cls(
            device_id=data["device_id"],
            device_category=DeviceCategory(data["device_category"]),
            application=ApplicationRef(bundle_id=package, name=data.get("app_name") or package),
            location=SandboxLocation(data["location"]),
            remote_path=data["remote_path"],
            relative_path=data.get("relative_path") or data["remote_path"].rsplit("/", 1)[-1],
            local_path=data.get("local_path") or "",
        )


@dataclass(frozen=True)
class ProvenanceRecord:
    """Where a staged file came from. Persisted as ``<local>.meta.json``."""

    device_id: str
    package_name: str
    remote_path: str
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_json_dict(self) -> dict[str, str]:
        return {
            "deviceId": self.device_id,
            "packageName": self.package_name,
            "remotePath": self.remote_path,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_json_dict(cls, data: dict[str, Any]) -> ProvenanceRecord:
        return cls(
            device_id=str(data["deviceId"]),
            package_name=str(data["packageName"]),
            remote_path=str(data["remotePath"]),
            timestamp=str(data.get("timestamp", "")),
        )


@dataclass
class Envelope:
    """Uniform result returned by every engine entry point."""

    success: bool
    error: str | None = None
    code: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, **payload: Any) -> Envelope:
        return cls(success=True, payload=payload)

    @classmethod
    def fail(cls, error: str, code: str | None = None, **payload: Any) -> Envelope:
        return cls(success=False, error=error, code=code, payload=payload)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.error is not None:
            data["error"] = self.error
        if self.code is not None:
            data["code"] = self.code
        data.update(self.payload)
        return data
