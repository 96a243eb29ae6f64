"""Database file CLI commands - locate, discover and push back."""

from __future__ import annotations

import typer

from mobile_db_agent.cli.daemon_client import DaemonClient
from mobile_db_agent.cli.utils import (
    DISCOVER_TIMEOUT,
    LOCATE_TIMEOUT,
    PUSH_TIMEOUT,
    handle_files_response,
    handle_response,
    require_device,
)

app = typer.Typer(help="Database file commands")


@app.command("locate")
def db_locate(
    package: str = typer.Argument(..., help="Package name or bundle id"),
    device: str = typer.Option(..., "--device", "-d", help="Device id from 'device list'"),
    category: str | None = typer.Option(
        None, "--category", "-c", help="android|ios-simulator|ios-device"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """List database files in the app sandbox without copying them."""
    payload = require_device(device, category)
    payload["package"] = package
    client = DaemonClient(timeout=LOCATE_TIMEOUT)
    resp = client.request("POST", "/databases/locate", json_body=payload)
    client.close()
    handle_files_response(resp, json_output=json_output)


@app.command("discover")
def db_discover(
    package: str = typer.Argument(..., help="Package name or bundle id"),
    device: str = typer.Option(..., "--device", "-d", help="Device id from 'device list'"),
    category: str | None = typer.Option(
        None, "--category", "-c", help="android|ios-simulator|ios-device"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Reset the staging area and copy every database file of the app into it."""
    payload = require_device(device, category)
    payload["package"] = package
    client = DaemonClient(timeout=DISCOVER_TIMEOUT)
    resp = client.request("POST", "/databases/discover", json_body=payload)
    client.close()
    handle_files_response(resp, json_output=json_output, staged=True)


@app.command("push")
def db_push(
    local_path: str = typer.Argument(..., help="Local database file"),
    remote_path: str = typer.Argument(..., help="Destination path on the device"),
    package: str = typer.Option(..., "--package", "-p", help="Package name or bundle id"),
    device: str = typer.Option(..., "--device", "-d", help="Device id from 'device list'"),
    category: str | None = typer.Option(
        None, "--category", "-c", help="android|ios-simulator|ios-device"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Write a local file to an explicit path inside the app sandbox."""
    payload = require_device(device, category)
    payload.update({"package": package, "local_path": local_path, "remote_path": remote_path})
    client = DaemonClient(timeout=PUSH_TIMEOUT)
    resp = client.request("POST", "/databases/push", json_body=payload)
    client.close()
    handle_response(resp, json_output=json_output)


@app.command("push-staged")
def db_push_staged(
    local_path: str = typer.Argument(..., help="Staged file reported by 'db discover'"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Push a staged file back to where it was copied from."""
    client = DaemonClient(timeout=PUSH_TIMEOUT)
    resp = client.request("POST", "/databases/push_staged", json_body={"local_path": local_path})
    client.close()
    handle_response(resp, json_output=json_output)
