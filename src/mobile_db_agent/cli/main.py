"""CLI entry point using Typer."""

from __future__ import annotations

import typer

from mobile_db_agent.cli.commands import app_cmd, daemon, db, device, emulator, session

app = typer.Typer(
    name="mobile-db-agent",
    help="Find, stage and sync SQLite databases inside Android and iOS apps",
    no_args_is_help=True,
)


@app.command()
def version(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """Show version information."""
    from mobile_db_agent import __version__

    if json_output:
        from mobile_db_agent.cli.daemon_client import format_json

        typer.echo(format_json({"version": __version__}))
        return
    typer.echo(f"mobile-db-agent v{__version__}")


app.add_typer(daemon.app, name="daemon")
app.add_typer(device.app, name="device")
app.add_typer(app_cmd.app, name="app")
app.add_typer(db.app, name="db")
app.add_typer(emulator.app, name="emulator")
app.add_typer(session.app, name="session")


if __name__ == "__main__":
    app()
