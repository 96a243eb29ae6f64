"""Daemon process control and the UDS HTTP client used by CLI commands."""

from __future__ import annotations

import json
import os
import signal
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
import typer

from mobile_db_agent.config import STATE_DIR
from mobile_db_agent.errors import AgentError, daemon_unavailable_error

ENV_SOCKET = "MOBILE_DB_AGENT_SOCKET"
DEFAULT_SOCKET = Path("/tmp/mobile-db-agent.sock")
BASE_URL = "http://mobile-db-agent"
HEALTH_WAIT_S = 5.0
STOP_WAIT_S = 2.0
POLL_INTERVAL_S = 0.1


@dataclass(frozen=True)
class DaemonPaths:
    """Where the daemon listens, records its pid and writes its log."""

    socket: Path
    pid_file: Path
    log_file: Path

    @classmethod
    def from_env(cls) -> DaemonPaths:
        socket = os.environ.get(ENV_SOCKET)
        return cls(
            socket=Path(socket).expanduser() if socket else DEFAULT_SOCKET,
            pid_file=STATE_DIR / "daemon.pid",
            log_file=STATE_DIR / "daemon.log",
        )


def _uds_client(socket_path: Path, timeout: float) -> httpx.Client:
    return httpx.Client(
        transport=httpx.HTTPTransport(uds=str(socket_path)),
        base_url=BASE_URL,
        timeout=timeout,
    )


def _pid_running(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except OSError:
        return False
    return True


class DaemonController:
    """Start/stop/status for the daemon process."""

    def __init__(self, paths: DaemonPaths | None = None) -> None:
        self.paths = paths or DaemonPaths.from_env()
        self.paths.pid_file.parent.mkdir(parents=True, exist_ok=True)

    def read_pid(self) -> int | None:
        try:
            return int(self.paths.pid_file.read_text().strip())
        except (OSError, ValueError):
            return None

    def health(self) -> bool:
        """Return True if the daemon socket responds to /health."""
        if not self.paths.socket.exists():
            return False
        client = _uds_client(self.paths.socket, 1.0)
        try:
            return client.get("/health").status_code == 200
        except httpx.HTTPError:
            return False
        finally:
            client.close()

    def start(self) -> int:
        """Start the daemon; returns PID, or -1 if already running but PID unknown."""
        pid = self.read_pid()
        if pid and _pid_running(pid):
            return pid
        self.paths.pid_file.unlink(missing_ok=True)
        if self.health():
            return -1
        # A socket left by a killed daemon makes uvicorn fail to bind
        self.paths.socket.unlink(missing_ok=True)

        args = [
            sys.executable,
            "-m",
            "uvicorn",
            "mobile_db_agent.daemon.server:app",
            "--uds",
            str(self.paths.socket),
            "--log-level",
            "info",
        ]
        self.paths.log_file.parent.mkdir(parents=True, exist_ok=True)
        with self.paths.log_file.open("a", encoding="utf-8") as log_handle:
            proc = subprocess.Popen(
                args,
                stdout=log_handle,
                stderr=log_handle,
                start_new_session=True,
            )
        self.paths.pid_file.write_text(str(proc.pid))
        return proc.pid

    def stop(self) -> bool:
        """Stop the daemon if running."""
        pid = self.read_pid()
        if not pid:
            return False
        if not _pid_running(pid):
            self.paths.pid_file.unlink(missing_ok=True)
            return False

        os.kill(pid, signal.SIGTERM)
        deadline = time.monotonic() + STOP_WAIT_S
        while time.monotonic() < deadline:
            if not _pid_running(pid):
                self.paths.pid_file.unlink(missing_ok=True)
                # uvicorn leaves the socket file behind on SIGTERM
                self.paths.socket.unlink(missing_ok=True)
                return True
            time.sleep(POLL_INTERVAL_S)
        return False

    def status(self) -> dict[str, Any]:
        """Return daemon status summary."""
        pid = self.read_pid()
        return {
            "pid": pid,
            "pid_running": _pid_running(pid) if pid else False,
            "socket": str(self.paths.socket),
            "socket_exists": self.paths.socket.exists(),
            "log_file": str(self.paths.log_file),
        }


class DaemonClient:
    """HTTP client over the daemon socket, starting the daemon on demand."""

    def __init__(
        self,
        paths: DaemonPaths | None = None,
        *,
        auto_start: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.auto_start = auto_start
        self.controller = DaemonController(paths)
        self._client = _uds_client(self.controller.paths.socket, timeout)

    def close(self) -> None:
        self._client.close()

    def request(
        self, method: str, path: str, json_body: dict[str, Any] | None = None
    ) -> httpx.Response:
        if not self.auto_start:
            return self._client.request(method, path, json=json_body)
        try:
            if not self._healthy():
                self._start_and_wait()
            try:
                return self._client.request(method, path, json=json_body)
            except httpx.TransportError:
                # Daemon went away between the health check and the request
                self._start_and_wait()
                return self._client.request(method, path, json=json_body)
        except AgentError as exc:
            self.close()
            typer.echo(f"{exc.code}: {exc.message}")
            typer.echo(f"Hint: {exc.remediation}")
            raise typer.Exit(code=1) from None

    def _healthy(self) -> bool:
        try:
            return self._client.get("/health").status_code == 200
        except httpx.TransportError:
            return False

    def _start_and_wait(self) -> None:
        """Start the daemon and poll /health until it answers.

        Raises:
            AgentError: If the daemon does not answer within HEALTH_WAIT_S
        """
        self.controller.start()
        deadline = time.monotonic() + HEALTH_WAIT_S
        while time.monotonic() < deadline:
            if self._healthy():
                return
            time.sleep(POLL_INTERVAL_S)
        paths = self.controller.paths
        raise daemon_unavailable_error(str(paths.socket), str(paths.log_file))


def format_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=True)
