"""Sync session CLI commands."""

from __future__ import annotations

import typer

from mobile_db_agent.cli.daemon_client import DaemonClient, format_json
from mobile_db_agent.cli.utils import (
    DISCOVER_TIMEOUT,
    PUSH_TIMEOUT,
    handle_files_response,
    handle_response,
    render_error,
    require_device,
)

app = typer.Typer(help="Sync session commands")


@app.command("start")
def session_start(
    package: str = typer.Argument(..., help="Package name or bundle id"),
    device: str = typer.Option(..., "--device", "-d", help="Device id from 'device list'"),
    category: str | None = typer.Option(
        None, "--category", "-c", help="android|ios-simulator|ios-device"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Discover an app's databases and open a session over the staged copies."""
    payload = require_device(device, category)
    payload["package"] = package
    client = DaemonClient(timeout=DISCOVER_TIMEOUT)
    resp = client.request("POST", "/sessions/start", json_body=payload)
    client.close()

    data = resp.json()
    if json_output:
        typer.echo(format_json(data))
        return

    render_error(data)
    typer.echo(data.get("session_id"))
    handle_files_response(resp, staged=True)


@app.command("list")
def session_list(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """List active sessions."""
    client = DaemonClient()
    resp = client.request("GET", "/sessions")
    client.close()

    data = resp.json()
    if json_output:
        typer.echo(format_json(data))
        return

    sessions = data.get("sessions", [])
    if not sessions:
        typer.echo("No active sessions")
    for session in sessions:
        typer.echo(
            f"{session['session_id']}  {session['device_category']}:{session['device_id']} "
            f"{session['package']} files={len(session.get('files', []))}"
        )
        for item in session.get("files", []):
            typer.echo(f"    {item.get('local_path')}")


@app.command("push")
def session_push(
    session_id: str = typer.Argument(..., help="Session ID"),
    local_path: str = typer.Argument(..., help="Staged file listed by 'session list'"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Push one of the session's staged files back to the device."""
    client = DaemonClient(timeout=PUSH_TIMEOUT)
    resp = client.request(
        "POST", "/sessions/push", json_body={"session_id": session_id, "local_path": local_path}
    )
    client.close()
    handle_response(resp, json_output=json_output)


@app.command("stop")
def session_stop(
    session_id: str = typer.Argument(..., help="Session ID"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Stop a session."""
    client = DaemonClient()
    resp = client.request("POST", "/sessions/stop", json_body={"session_id": session_id})
    client.close()
    handle_response(resp, json_output=json_output)
