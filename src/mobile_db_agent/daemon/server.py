"""FastAPI server running over Unix Domain Socket."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI
from fastapi.responses import JSONResponse, Response

from mobile_db_agent import __version__
from mobile_db_agent.daemon.core import DaemonCore
from mobile_db_agent.daemon.models import (
    AppExistsRequest,
    AppListRequest,
    AppTargetRequest,
    DeviceTargetRequest,
    DiscoverRequest,
    LocateRequest,
    PushRequest,
    PushStagedRequest,
    SessionPushRequest,
    SessionStartRequest,
    SessionStopRequest,
    StageRequest,
    VirtualDeviceLaunchRequest,
)
from mobile_db_agent.errors import AgentError, session_not_found_error
from mobile_db_agent.models import ApplicationRef, DatabaseFileDescriptor, DeviceHandle
from mobile_db_agent.validation import validate_device_id, validate_package

logger = structlog.get_logger()

ResponsePayload = dict[str, Any]
EndpointResponse = Response | ResponsePayload


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage daemon lifecycle."""
    logger.info("daemon_starting")
    app.state.core = DaemonCore()
    await app.state.core.start()
    yield
    logger.info("daemon_stopping")
    await app.state.core.stop()


app = FastAPI(
    title="Mobile DB Agent Daemon",
    version=__version__,
    lifespan=lifespan,
)


def _error_response(error: AgentError, status_code: int = 400) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "error": error.to_dict()},
    )


def _not_found(error: AgentError) -> bool:
    return error.code in ("ERR_DEVICE_NOT_FOUND", "ERR_SESSION_NOT_FOUND")


async def _resolve_device(core: DaemonCore, req: DeviceTargetRequest) -> DeviceHandle | JSONResponse:
    try:
        validate_device_id(req.device_id)
        return await core.engine.resolve_device(req.device_id, req.category)
    except AgentError as exc:
        return _error_response(exc, status_code=404 if _not_found(exc) else 400)


async def _resolve_app_target(
    core: DaemonCore, req: AppTargetRequest
) -> tuple[DeviceHandle, ApplicationRef] | JSONResponse:
    try:
        validate_package(req.package)
    except AgentError as exc:
        return _error_response(exc, status_code=400)
    device = await _resolve_device(core, req)
    if isinstance(device, JSONResponse):
        return device
    return device, ApplicationRef(bundle_id=req.package, name=req.app_name or req.package)


@app.get("/health")
async def health() -> dict[str, Any]:
    """Health check endpoint."""
    core: DaemonCore = app.state.core
    sessions = await core.session_manager.list_sessions()
    return {
        "status": "ok",
        "running": core.is_running,
        "version": __version__,
        "active_sessions": len(sessions),
        "staging_dir": str(core.config.staging_dir),
    }


@app.get("/tools")
async def tools() -> ResponsePayload:
    """Report which platform tools resolve on this host."""
    core: DaemonCore = app.state.core
    return core.engine.check_tools().to_dict()


@app.get("/devices")
async def list_devices() -> ResponsePayload:
    """List connected devices and booted simulators."""
    core: DaemonCore = app.state.core
    return (await core.engine.list_devices()).to_dict()


@app.post("/apps/list", response_model=None)
async def apps_list(req: AppListRequest) -> EndpointResponse:
    """List user-installed applications on a device."""
    core: DaemonCore = app.state.core
    device = await _resolve_device(core, req)
    if isinstance(device, JSONResponse):
        return device
    return (await core.engine.list_applications(device)).to_dict()


@app.post("/apps/exists", response_model=None)
async def apps_exists(req: AppExistsRequest) -> EndpointResponse:
    """Check whether an application is installed and reachable."""
    core: DaemonCore = app.state.core
    resolved = await _resolve_app_target(core, req)
    if isinstance(resolved, JSONResponse):
        return resolved
    device, application = resolved
    return (await core.engine.check_app_existence(device, application)).to_dict()


@app.post("/databases/locate", response_model=None)
async def databases_locate(req: LocateRequest) -> EndpointResponse:
    """Find database files in an app sandbox without staging them."""
    core: DaemonCore = app.state.core
    resolved = await _resolve_app_target(core, req)
    if isinstance(resolved, JSONResponse):
        return resolved
    device, application = resolved
    return (await core.engine.locate_database_files(device, application)).to_dict()


@app.post("/databases/stage", response_model=None)
async def databases_stage(req: StageRequest) -> EndpointResponse:
    """Stage one located database file."""
    core: DaemonCore = app.state.core
    try:
        descriptor = DatabaseFileDescriptor.from_dict(req.file)
        validate_device_id(descriptor.device_id)
        validate_package(descriptor.application.bundle_id)
    except AgentError as exc:
        return _error_response(exc, status_code=400)
    except (KeyError, ValueError) as exc:
        return _error_response(
            AgentError(
                code="ERR_INVALID_DESCRIPTOR",
                message=f"Invalid file descriptor: {exc}",
                context={"file": req.file},
                remediation="Pass a file object exactly as returned by /databases/locate.",
            ),
            status_code=400,
        )
    return (await core.engine.stage(descriptor)).to_dict()


@app.post("/databases/discover", response_model=None)
async def databases_discover(req: DiscoverRequest) -> EndpointResponse:
    """Reset staging, then locate and stage every database file of an app."""
    core: DaemonCore = app.state.core
    resolved = await _resolve_app_target(core, req)
    if isinstance(resolved, JSONResponse):
        return resolved
    device, application = resolved
    return (await core.engine.discover(device, application)).to_dict()


@app.post("/databases/push", response_model=None)
async def databases_push(req: PushRequest) -> EndpointResponse:
    """Write a local file back to an explicit remote path."""
    core: DaemonCore = app.state.core
    resolved = await _resolve_app_target(core, req)
    if isinstance(resolved, JSONResponse):
        return resolved
    device, application = resolved
    envelope = await core.engine.push(req.local_path, device, application, req.remote_path)
    return envelope.to_dict()


@app.post("/databases/push_staged", response_model=None)
async def databases_push_staged(req: PushStagedRequest) -> EndpointResponse:
    """Push a staged file back using its provenance sidecar."""
    core: DaemonCore = app.state.core
    return (await core.engine.push_staged(req.local_path)).to_dict()


@app.get("/virtual-devices")
async def virtual_devices() -> ResponsePayload:
    """List Android AVDs and iOS simulators."""
    core: DaemonCore = app.state.core
    return (await core.engine.list_virtual_devices()).to_dict()


@app.post("/virtual-devices/launch", response_model=None)
async def virtual_devices_launch(req: VirtualDeviceLaunchRequest) -> EndpointResponse:
    """Start an AVD or boot a simulator."""
    core: DaemonCore = app.state.core
    return (await core.engine.launch_virtual_device(req.platform, req.device_id)).to_dict()


@app.post("/sessions/start", response_model=None)
async def session_start(req: SessionStartRequest) -> EndpointResponse:
    """Run discovery and open a sync session over the staged files."""
    core: DaemonCore = app.state.core
    resolved = await _resolve_app_target(core, req)
    if isinstance(resolved, JSONResponse):
        return resolved
    device, application = resolved

    session, envelope = await core.session_manager.create_session(device, application)
    result = envelope.to_dict()
    if session is not None:
        result["session_id"] = session.session_id
    return result


@app.get("/sessions")
async def session_list() -> ResponsePayload:
    """List active sync sessions."""
    core: DaemonCore = app.state.core
    sessions = await core.session_manager.list_sessions()
    return {"success": True, "sessions": [session.to_dict() for session in sessions]}


@app.post("/sessions/push", response_model=None)
async def session_push(req: SessionPushRequest) -> EndpointResponse:
    """Push one of a session's staged files back to the device."""
    core: DaemonCore = app.state.core
    try:
        envelope = await core.session_manager.push(req.session_id, req.local_path)
    except AgentError as exc:
        return _error_response(exc, status_code=404 if _not_found(exc) else 400)
    return envelope.to_dict()


@app.post("/sessions/stop", response_model=None)
async def session_stop(req: SessionStopRequest) -> EndpointResponse:
    """Stop a session."""
    core: DaemonCore = app.state.core
    closed = await core.session_manager.close_session(req.session_id)
    if not closed:
        return _error_response(session_not_found_error(req.session_id), status_code=404)
    return {"success": True, "status": "done"}
