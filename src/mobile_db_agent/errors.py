"""Error model - Actionable errors with remediation hints."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class AgentError(Exception):
    """
    Base error with context and remediation guidance.

    Transports raise these; the sync engine converts them into
    ``{"success": False, "error": ...}`` envelopes at its boundary.
    """

    code: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    remediation: str = ""

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "remediation": self.remediation,
        }


# Specific error constructors for common cases


def tool_not_found_error(tool: str) -> AgentError:
    """Create error for a platform binary that cannot be spawned."""
    return AgentError(
        code="ERR_TOOL_NOT_FOUND",
        message=f"{tool} command not found",
        context={"tool": tool},
        remediation=(
            "Install the tool (Android platform-tools, Xcode command line tools or "
            "libimobiledevice) or set MOBILE_DB_AGENT_TOOLS_DIR to the bundled tools."
        ),
    )


def tool_command_error(command: str, reason: str, hint: str | None = None) -> AgentError:
    """Create error for a tool that exited non-zero."""
    return AgentError(
        code="ERR_TOOL_COMMAND",
        message=f"Command failed: {command}",
        context={"command": command, "reason": reason},
        remediation=hint or "Check the device connection and command arguments, then retry.",
    )


def timeout_error(command: str, timeout_s: float) -> AgentError:
    """Create error for a subprocess that exceeded its time limit."""
    return AgentError(
        code="ERR_TIMEOUT",
        message=f"Command timed out after {timeout_s:g}s: {command}",
        context={"command": command, "timeout_s": timeout_s},
        remediation="Check that the device is responsive or raise MOBILE_DB_AGENT_COMMAND_TIMEOUT.",
    )


def transfer_failed_error(remote_path: str, reason: str) -> AgentError:
    """Create error for a copy that failed in either direction."""
    return AgentError(
        code="ERR_TRANSFER_FAILED",
        message=f"Transfer failed for {remote_path}: {reason}",
        context={"remote_path": remote_path, "reason": reason},
        remediation="Make sure the app is debuggable (Android) or trusted (iOS) and retry.",
    )


def elevated_copy_error(
    package: str, temp_path: str, remote_path: str, reason: str, instructions: str
) -> AgentError:
    """Create error for a failed run-as copy into app-private storage."""
    return AgentError(
        code="ERR_ELEVATED_COPY",
        message=f"run-as copy into {remote_path} failed: {reason}",
        context={
            "package": package,
            "temp_path": temp_path,
            "remote_path": remote_path,
            "reason": reason,
            "instructions": instructions,
        },
        remediation="Run the manual commands from 'instructions' or retry on a debuggable build.",
    )


def provenance_missing_error(local_path: str) -> AgentError:
    """Create error for a staged file without a readable sidecar."""
    return AgentError(
        code="ERR_PROVENANCE_MISSING",
        message=f"No provenance sidecar for {local_path}",
        context={"local_path": local_path},
        remediation="Stage the file again with 'db discover' before pushing it back.",
    )


def file_not_found_error(path: str) -> AgentError:
    """Create error for missing local file."""
    return AgentError(
        code="ERR_FILE_NOT_FOUND",
        message=f"Local file not found: {path}",
        context={"path": path},
        remediation="Verify the local path and try again.",
    )


def invalid_package_error(package: str) -> AgentError:
    """Create error for invalid package or bundle identifier."""
    return AgentError(
        code="ERR_INVALID_PACKAGE",
        message=f"Invalid package name: {package}",
        context={"package": package},
        remediation="Package names and bundle ids must look like 'com.example.app'.",
    )


def invalid_device_id_error(device_id: str) -> AgentError:
    """Create error for a device id that cannot be passed to a tool safely."""
    return AgentError(
        code="ERR_INVALID_DEVICE_ID",
        message=f"Invalid device id: {device_id}",
        context={"device_id": device_id},
        remediation="Use an id reported by 'device list'.",
    )


def unsupported_category_error(category: str) -> AgentError:
    """Create error for a device category with no transport."""
    return AgentError(
        code="ERR_UNSUPPORTED_CATEGORY",
        message=f"Unsupported device category: {category}",
        context={"category": category},
        remediation="Use one of: android, ios-simulator, ios-device.",
    )


def app_container_error(device_id: str, bundle_id: str, reason: str) -> AgentError:
    """Create error for a simulator app whose data container cannot be resolved."""
    return AgentError(
        code="ERR_APP_CONTAINER",
        message=f"Cannot resolve data container for {bundle_id} on {device_id}",
        context={"device_id": device_id, "bundle_id": bundle_id, "reason": reason},
        remediation="Check the app is installed on the booted simulator with 'app list'.",
    )


def device_not_found_error(device_id: str) -> AgentError:
    """Create error for a device that is not connected."""
    return AgentError(
        code="ERR_DEVICE_NOT_FOUND",
        message=f"Device not found: {device_id}",
        context={"device_id": device_id},
        remediation="Check device connection with 'device list' and reconnect.",
    )


def session_not_found_error(session_id: str) -> AgentError:
    """Create error for an unknown or closed sync session."""
    return AgentError(
        code="ERR_SESSION_NOT_FOUND",
        message=f"Session not found: {session_id}",
        context={"session_id": session_id},
        remediation="Start a new session with 'session start'.",
    )


def staged_file_not_in_session_error(session_id: str, local_path: str) -> AgentError:
    """Create error for a push of a file the session never staged."""
    return AgentError(
        code="ERR_NOT_STAGED",
        message=f"{local_path} was not staged by session {session_id}",
        context={"session_id": session_id, "local_path": local_path},
        remediation="Use a local path listed by 'session list'.",
    )


def invalid_platform_error(platform: str) -> AgentError:
    """Create error for a virtual device platform other than android or ios."""
    return AgentError(
        code="ERR_INVALID_PLATFORM",
        message=f"Unknown platform: {platform}",
        context={"platform": platform},
        remediation="Use 'android' or 'ios'.",
    )


def daemon_unavailable_error(socket_path: str, log_file: str) -> AgentError:
    """Create error for a daemon that did not answer after being started."""
    return AgentError(
        code="ERR_DAEMON_UNAVAILABLE",
        message=f"Daemon did not become healthy on {socket_path}",
        context={"socket": socket_path, "log_file": log_file},
        remediation=f"Check {log_file} for startup errors, then run 'daemon start'.",
    )
