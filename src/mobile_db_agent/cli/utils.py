"""Shared CLI helpers and constants."""

from __future__ import annotations

from typing import Any, cast

import typer

from mobile_db_agent.cli.daemon_client import format_json

CATEGORIES = ("android", "ios-simulator", "ios-device")

DEVICE_LIST_TIMEOUT = 90.0
LOCATE_TIMEOUT = 180.0
DISCOVER_TIMEOUT = 600.0
PUSH_TIMEOUT = 240.0
EMULATOR_LAUNCH_TIMEOUT = 90.0


def _parse_response_json(resp: Any) -> dict[str, Any]:
    try:
        return cast(dict[str, Any], resp.json())
    except Exception as exc:  # pragma: no cover
        typer.echo("Failed to parse response")
        raise typer.Exit(code=1) from exc


def render_error(data: dict[str, Any]) -> None:
    if not isinstance(data, dict):
        return
    error = data.get("error")
    if isinstance(error, dict):
        typer.echo(f"{error.get('code')}: {error.get('message')}")
        remediation = error.get("remediation")
        if remediation:
            typer.echo(f"Hint: {remediation}")
        instructions = (error.get("context") or {}).get("instructions")
        if instructions:
            typer.echo(instructions)
        raise typer.Exit(code=1)
    if data.get("success") is False:
        code = data.get("code")
        typer.echo(f"{code}: {error}" if code else f"Error: {error}")
        if data.get("instructions"):
            typer.echo("Manual recovery:")
            typer.echo(data["instructions"])
        raise typer.Exit(code=1)


def _maybe_render_message(data: dict[str, Any]) -> bool:
    if not (isinstance(data, dict) and data.get("message")):
        return False
    typer.echo(f"✓ {data['message']}")
    return True


def _maybe_render_done(data: dict[str, Any]) -> bool:
    if not (isinstance(data, dict) and data.get("status") == "done"):
        return False
    typer.echo("✓ Done")
    return True


def _maybe_render_failures(data: dict[str, Any]) -> None:
    for failure in data.get("failures") or []:
        typer.echo(f"! {failure.get('remote_path')}: {failure.get('error')}")


def handle_response(resp: Any, json_output: bool = False) -> None:
    data = _parse_response_json(resp)
    if json_output:
        typer.echo(format_json(data))
        return

    render_error(data)
    if _maybe_render_message(data):
        return
    if _maybe_render_done(data):
        return
    typer.echo(format_json(data))


def handle_files_response(resp: Any, json_output: bool = False, staged: bool = False) -> None:
    """Render a locate/discover result as one line per file."""
    data = _parse_response_json(resp)
    if json_output:
        typer.echo(format_json(data))
        return

    render_error(data)
    files = data.get("files") or []
    if not files:
        typer.echo("No database files found")
    for item in files:
        target = item.get("local_path") if staged else item.get("remote_path")
        typer.echo(f"[{item.get('location')}] {target}")
    _maybe_render_failures(data)


def render_table(rows: list[dict[str, Any]], columns: tuple[str, ...]) -> None:
    """Print rows as fixed-width columns."""
    if not rows:
        typer.echo("(none)")
        return
    widths = {
        column: max(len(column), *(len(str(row.get(column, ""))) for row in rows))
        for column in columns
    }
    typer.echo("  ".join(column.upper().ljust(widths[column]) for column in columns))
    for row in rows:
        typer.echo("  ".join(str(row.get(column, "")).ljust(widths[column]) for column in columns))


def device_payload(device: str, category: str | None) -> dict[str, Any]:
    if category is not None and category not in CATEGORIES:
        raise typer.BadParameter(f"--category must be one of: {', '.join(CATEGORIES)}")
    return {"device_id": device, "category": category}


def require_device(device: str, category: str | None) -> dict[str, Any]:
    try:
        return device_payload(device, category)
    except typer.BadParameter as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from None
