"""Application CLI commands."""

from __future__ import annotations

import typer

from mobile_db_agent.cli.daemon_client import DaemonClient, format_json
from mobile_db_agent.cli.utils import (
    DEVICE_LIST_TIMEOUT,
    render_error,
    render_table,
    require_device,
)

app = typer.Typer(help="Application commands")


@app.command("list")
def app_list(
    device: str = typer.Option(..., "--device", "-d", help="Device id from 'device list'"),
    category: str | None = typer.Option(
        None, "--category", "-c", help="android|ios-simulator|ios-device"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """List user-installed applications."""
    payload = require_device(device, category)
    client = DaemonClient(timeout=DEVICE_LIST_TIMEOUT)
    resp = client.request("POST", "/apps/list", json_body=payload)
    client.close()

    data = resp.json()
    if json_output:
        typer.echo(format_json(data))
        return

    render_error(data)
    render_table(data.get("apps", []), ("bundle_id", "name"))


@app.command("exists")
def app_exists(
    package: str = typer.Argument(..., help="Package name or bundle id"),
    device: str = typer.Option(..., "--device", "-d", help="Device id from 'device list'"),
    category: str | None = typer.Option(
        None, "--category", "-c", help="android|ios-simulator|ios-device"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Check that an application is installed and its data is reachable."""
    payload = require_device(device, category)
    payload["package"] = package
    client = DaemonClient()
    resp = client.request("POST", "/apps/exists", json_body=payload)
    client.close()

    data = resp.json()
    if json_output:
        typer.echo(format_json(data))
        return

    render_error(data)
    if data.get("exists"):
        typer.echo(f"✓ {package} is installed")
    else:
        typer.echo(f"{package} not found")
        raise typer.Exit(code=1)
