"""Daemon lifecycle CLI commands."""

from __future__ import annotations

from typing import Any

import httpx
import typer

from mobile_db_agent.cli.daemon_client import DaemonClient, DaemonController, format_json

app = typer.Typer(help="Daemon lifecycle commands")


@app.command("start")
def daemon_start(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """Start the daemon process."""
    controller = DaemonController()
    status = controller.status()
    if status["pid_running"]:
        _report(json_output, "already_running", status["pid"])
        return
    if controller.health():
        _report(json_output, "already_running", None)
        return
    pid = controller.start()
    if pid == -1:
        _report(json_output, "already_running", None)
        return
    _report(json_output, "started", pid)


@app.command("stop")
def daemon_stop(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """Stop the daemon process."""
    controller = DaemonController()
    stopped = controller.stop()
    if json_output:
        typer.echo(format_json({"stopped": stopped}))
    elif stopped:
        typer.echo("Daemon stopped")
    else:
        typer.echo("Daemon not running")


@app.command("status")
def daemon_status(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """Show daemon status."""
    controller = DaemonController()
    status = controller.status()

    health: dict[str, Any] | None = None
    try:
        client = DaemonClient(auto_start=False)
        resp = client.request("GET", "/health")
        health = resp.json()
        client.close()
    except (httpx.HTTPError, ValueError):
        health = None

    status["health"] = health
    if json_output:
        typer.echo(format_json(status))
        return
    state = "running" if health else "stopped"
    typer.echo(f"Daemon {state} (pid {status['pid'] or 'unknown'})")
    typer.echo(f"socket: {status['socket']}")
    typer.echo(f"log: {status['log_file']}")
    if health:
        typer.echo(f"sessions: {health.get('active_sessions', 0)}")
        typer.echo(f"staging: {health.get('staging_dir')}")


def _report(json_output: bool, state: str, pid: int | None) -> None:
    if json_output:
        typer.echo(format_json({"state": state, "pid": pid}))
        return
    label = "Daemon started" if state == "started" else "Daemon already running"
    typer.echo(f"{label} (pid {pid if pid is not None else 'unknown'})")
