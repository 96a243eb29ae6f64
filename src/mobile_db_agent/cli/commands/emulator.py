"""Emulator and simulator CLI commands."""

from __future__ import annotations

import typer

from mobile_db_agent.cli.daemon_client import DaemonClient, format_json
from mobile_db_agent.cli.utils import (
    DEVICE_LIST_TIMEOUT,
    EMULATOR_LAUNCH_TIMEOUT,
    handle_response,
    render_error,
    render_table,
)

app = typer.Typer(help="Emulator and simulator commands")


@app.command("list")
def emulator_list(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """List Android AVDs and iOS simulators."""
    client = DaemonClient(timeout=DEVICE_LIST_TIMEOUT)
    resp = client.request("GET", "/virtual-devices")
    client.close()

    data = resp.json()
    if json_output:
        typer.echo(format_json(data))
        return

    render_error(data)
    rows = [
        {**device, "state": "running" if device.get("running") else "stopped"}
        for device in data.get("devices", [])
    ]
    render_table(rows, ("platform", "id", "name", "state"))


@app.command("launch")
def emulator_launch(
    device_id: str = typer.Argument(..., help="AVD name or simulator UDID"),
    platform: str = typer.Option(..., "--platform", "-p", help="android|ios"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Start an AVD or boot a simulator."""
    if platform not in ("android", "ios"):
        typer.echo("Error: --platform must be android or ios")
        raise typer.Exit(code=1)
    client = DaemonClient(timeout=EMULATOR_LAUNCH_TIMEOUT)
    resp = client.request(
        "POST",
        "/virtual-devices/launch",
        json_body={"platform": platform, "device_id": device_id},
    )
    client.close()
    handle_response(resp, json_output=json_output)
