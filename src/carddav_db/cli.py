"""
CLI: ``carddav-db`` schema management commands.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer

from carddav_db.connection import bootstrap, open_database
from carddav_db.errors import CardDavError
from carddav_db.logging import configure_logging
from carddav_db.migrations.runner import MigrationRunner
from carddav_db.settings import CardDavDbSettings, get_settings

app = typer.Typer(
    name="carddav-db",
    help="carddav-db: persistence layer of the carddav plugin.",
    no_args_is_help=True,
)


def _load_settings(scripts: Path | None, prefix: str | None) -> CardDavDbSettings:
    settings = get_settings()
    overrides = {}
    if scripts is not None:
        overrides["migrations_dir"] = scripts
    if prefix is not None:
        overrides["table_prefix"] = prefix
    if overrides:
        settings = settings.model_copy(update=overrides)
    configure_logging(level=settings.log_level, json_format=settings.log_format == "json")
    return settings


@app.command()
def migrate(
    scripts: Path | None = typer.Option(None, "--scripts", "-s", help="Migration scripts directory"),
    prefix: str | None = typer.Option(None, "--prefix", "-p", help="Table name prefix"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Apply pending schema migrations."""
    settings = _load_settings(scripts, prefix)
    try:
        db, report = bootstrap(settings)
    except CardDavError as e:
        typer.echo(f"error: {e.message}", err=True)
        raise typer.Exit(2) from e
    db.close()

    if json_out:
        typer.echo(json.dumps(report.to_dict(), indent=2))
    else:
        typer.echo(f"status: {report.status.value}")
        for name in report.applied:
            typer.echo(f"  applied  {name}")
        if report.failed or report.reason:
            typer.echo(f"  failed   {report.failed or '-'}: {report.reason.message if report.reason else ''}")

    if not report.ok:
        raise typer.Exit(1)


@app.command()
def status(
    scripts: Path | None = typer.Option(None, "--scripts", "-s", help="Migration scripts directory"),
    prefix: str | None = typer.Option(None, "--prefix", "-p", help="Table name prefix"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Show applied and pending migrations."""
    settings = _load_settings(scripts, prefix)
    try:
        db = open_database(settings)
    except CardDavError as e:
        typer.echo(f"error: {e.message}", err=True)
        raise typer.Exit(2) from e

    try:
        runner = MigrationRunner(db)
        applied = sorted(runner.applied_migrations())
        pending = runner.pending(settings.migrations_dir)
    except CardDavError as e:
        typer.echo(f"error: {e.message}", err=True)
        raise typer.Exit(2) from e
    finally:
        db.close()

    if json_out:
        typer.echo(json.dumps({"applied": applied, "pending": pending}, indent=2))
        return
    for name in applied:
        typer.echo(f"  applied  {name}")
    for name in pending:
        typer.echo(f"  pending  {name}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
