from __future__ import annotations

import logging

import typer

from formbase.config import Settings
from formbase.databases import row_output
from formbase.lifecycle import find_inconsistent_rows, reconcile
from formbase.storage import init_storage
from formbase.utils import dumps_json

cli = typer.Typer(add_completion=False)


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run_server(host: str | None, port: int | None) -> None:
    import uvicorn

    from formbase.app import create_app

    settings = Settings()
    _configure_logging(settings)
    resolved_host = host or settings.host
    resolved_port = port if port is not None else settings.port
    uvicorn.run(create_app(settings), host=resolved_host, port=resolved_port)


@cli.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    host: str | None = typer.Option(None, help="Address to bind"),
    port: int | None = typer.Option(None, help="Port to bind"),
) -> None:
    ctx.obj = {"host": host, "port": port}
    if ctx.invoked_subcommand is None:
        run_server(host, port)


@cli.command()
def run(
    ctx: typer.Context,
    host: str | None = typer.Option(None, help="Address to bind"),
    port: int | None = typer.Option(None, help="Port to bind"),
) -> None:
    base = ctx.obj or {}
    resolved_host = host or base.get("host")
    resolved_port = port if port is not None else base.get("port")
    run_server(resolved_host, resolved_port)


@cli.command("reconcile")
def reconcile_command(
    dry_run: bool = typer.Option(False, "--dry-run", help="Only list rows that would be re-archived"),
) -> None:
    """Re-archive active rows left behind in archived databases."""
    settings = Settings()
    _configure_logging(settings)
    storage = init_storage(settings)
    if dry_run:
        rows = find_inconsistent_rows(storage)
        for row in rows:
            typer.echo(dumps_json(row_output(row)))
        typer.echo(f"{len(rows)} inconsistent rows")
        return
    count = reconcile(storage)
    typer.echo(f"{count} rows re-archived")


if __name__ == "__main__":
    cli()
