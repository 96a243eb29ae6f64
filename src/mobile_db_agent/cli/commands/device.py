"""Device discovery CLI commands."""

from __future__ import annotations

import typer

from mobile_db_agent.cli.daemon_client import DaemonClient, format_json
from mobile_db_agent.cli.utils import DEVICE_LIST_TIMEOUT, render_error, render_table

app = typer.Typer(help="Device discovery commands")


@app.command("list")
def device_list(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """List Android devices, booted simulators and physical iOS devices."""
    client = DaemonClient(timeout=DEVICE_LIST_TIMEOUT)
    resp = client.request("GET", "/devices")
    client.close()

    data = resp.json()
    if json_output:
        typer.echo(format_json(data))
        return

    render_error(data)
    rows = [
        {**device, "os_version": device.get("os_version") or "", "error": device.get("error") or ""}
        for device in data.get("devices", [])
    ]
    render_table(rows, ("id", "category", "name", "model", "os_version", "error"))


@app.command("tools")
def device_tools(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """Show which platform tools were found on this host."""
    client = DaemonClient()
    resp = client.request("GET", "/tools")
    client.close()

    data = resp.json()
    if json_output:
        typer.echo(format_json(data))
        return

    for tool, path in (data.get("tools") or {}).items():
        typer.echo(f"{tool:<18} {path or 'not found'}")
