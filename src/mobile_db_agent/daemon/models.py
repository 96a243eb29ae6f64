"""Pydantic request models for daemon endpoints."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, model_validator

Category = Literal["android", "ios-simulator", "ios-device"]


class DeviceTargetRequest(BaseModel):
    device_id: str
    # Looked up through device enumeration when omitted
    category: Category | None = None


class AppTargetRequest(DeviceTargetRequest):
    package: str
    app_name: str | None = None


class AppListRequest(DeviceTargetRequest):
    pass


class AppExistsRequest(AppTargetRequest):
    pass


class LocateRequest(AppTargetRequest):
    pass


class DiscoverRequest(AppTargetRequest):
    pass


class StageRequest(BaseModel):
    """A descriptor as returned by /databases/locate."""

    file: dict[str, Any]

    @model_validator(mode="after")
    def validate_file(self) -> StageRequest:
        missing = [
            key
            for key in ("device_id", "device_category", "package", "location", "remote_path")
            if not self.file.get(key)
        ]
        if missing:
            raise ValueError(f"file is missing: {', '.join(missing)}")
        return self


class PushRequest(AppTargetRequest):
    local_path: str
    remote_path: str


class PushStagedRequest(BaseModel):
    local_path: str


class VirtualDeviceLaunchRequest(BaseModel):
    platform: Literal["android", "ios"]
    device_id: str


class SessionStartRequest(AppTargetRequest):
    pass


class SessionStopRequest(BaseModel):
    session_id: str


class SessionPushRequest(BaseModel):
    session_id: str
    local_path: str
