import asyncio
import json
import logging
from dataclasses import replace
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from marketsync.core.config import AppConfig
from marketsync.core.errors import MarketSyncError
from marketsync.pipeline import open_pipeline

console = Console()


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


def _print_result(title: str, data: dict) -> None:
    table = Table(title=title, show_header=False)
    for key, value in data.items():
        table.add_row(f"[bold]{key}[/]", "-" if value is None else str(value))
    console.print(table)


@click.group()
@click.option("--db", "db_path", type=click.Path(path_type=Path), envvar="MARKETSYNC_DB_PATH", help="DuckDB file")
@click.option("--rpc", "rpc_url", envvar="MARKETSYNC_RPC_URL", help="RPC endpoint URL")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default="info",
    show_default=True,
    envvar="MARKETSYNC_LOG_LEVEL",
)
@click.pass_context
def cli(ctx: click.Context, db_path: Path | None, rpc_url: str | None, log_level: str) -> None:
    """marketsync: mirror marketplace contract events into a relational store."""
    _setup_logging(log_level)
    config = AppConfig.from_env()
    if db_path is not None:
        config = replace(config, db_path=db_path)
    if rpc_url:
        config = replace(config, rpc_url=rpc_url)
    ctx.obj = config


def _run(coro):
    try:
        return asyncio.run(coro)
    except MarketSyncError as e:
        raise click.ClickException(str(e)) from e


@cli.command("sync")
@click.pass_obj
def sync_cmd(config: AppConfig) -> None:
    """Run one scanner pass from the stored cursor (cron entry point)."""

    async def run():
        async with open_pipeline(config) as pipeline:
            return await pipeline.coordinator.run()

    result = _run(run())
    _print_result("sync", result.as_dict())


@cli.command("backfill")
@click.option("--from-block", type=int, required=True)
@click.option("--to-block", type=int, required=True)
@click.pass_obj
def backfill_cmd(config: AppConfig, from_block: int, to_block: int) -> None:
    """Process an explicit block range (the cursor only moves forward)."""
    if from_block > to_block:
        raise click.UsageError("--from-block must be <= --to-block")

    async def run():
        async with open_pipeline(config) as pipeline:
            return await pipeline.coordinator.run(from_block=from_block, to_block=to_block)

    result = _run(run())
    _print_result("backfill", result.as_dict())


@cli.command("reindex")
@click.option("--from-block", type=int, required=True)
@click.confirmation_option(prompt="Move the sync cursor back and rescan?")
@click.pass_obj
def reindex_cmd(config: AppConfig, from_block: int) -> None:
    """Reset the cursor to just before FROM_BLOCK and run a pass."""

    async def run():
        async with open_pipeline(config) as pipeline:
            pipeline.coordinator.reset_cursor(from_block - 1)
            return await pipeline.coordinator.run()

    result = _run(run())
    _print_result("reindex", result.as_dict())


@cli.command("status")
@click.pass_obj
def status_cmd(config: AppConfig) -> None:
    """Show the sync cursor and table counters."""

    async def run():
        async with open_pipeline(config) as pipeline:
            return pipeline.status()

    _print_result("status", _run(run()))


@cli.command("ingest")
@click.argument("payload_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def ingest_cmd(config: AppConfig, payload_file: Path) -> None:
    """Replay a saved Alchemy webhook payload."""
    payload = json.loads(payload_file.read_text())

    async def run():
        async with open_pipeline(config) as pipeline:
            return await pipeline.ingestor.ingest_payload(payload)

    try:
        result = _run(run())
    except ValueError as e:
        raise click.ClickException(f"invalid payload: {e}") from e
    _print_result("ingest", result.as_dict())


@cli.command("refresh-metadata")
@click.option("--limit", type=int, default=10, show_default=True)
@click.pass_obj
def refresh_metadata_cmd(config: AppConfig, limit: int) -> None:
    """Retry metadata for active listings without an image."""

    async def run():
        async with open_pipeline(config) as pipeline:
            return await pipeline.refresh_missing_metadata(limit)

    _print_result("refresh-metadata", _run(run()))


@cli.command("serve")
@click.option("--host", default="0.0.0.0", show_default=True)
@click.option("--port", type=int, default=8000, show_default=True)
@click.pass_obj
def serve_cmd(config: AppConfig, host: str, port: int) -> None:
    """Serve the webhook and admin endpoints."""
    import uvicorn

    from marketsync.server.app import create_app

    uvicorn.run(create_app(config), host=host, port=port, log_level="info")


if __name__ == "__main__":
    cli()
