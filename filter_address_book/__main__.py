"""Entry point for the filter.

Usage::

    filter-address-book [--config PATH] [--verbose]
    python -m filter_address_book --version

smtpd starts the filter as a child process (``proc-exec``) and talks to
it over stdin/stdout.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

import structlog
import typer

from . import __version__
from .config import DEFAULT_CONFIG_FILE, load_config
from .errors import ConfigError
from .host import FilterHost
from .logging import setup_logging

logger = structlog.get_logger()

app = typer.Typer(add_completion=False, help="Tag inbound mail with the recipient's matching address books")


@app.command()
def main(
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help=f"YAML configuration file (default {DEFAULT_CONFIG_FILE})",
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable diagnostic log output"),
    version: bool = typer.Option(False, "--version", help="Output version and exit"),
) -> None:
    if version:
        typer.echo(f"filter-address-book version {__version__}")
        raise typer.Exit()

    try:
        settings = load_config(config)
    except ConfigError as exc:
        setup_logging()
        logger.error("configuration_failed", error=str(exc))
        raise typer.Exit(code=1) from exc

    if verbose:
        settings = settings.model_copy(update={"verbose": True})

    setup_logging(json=settings.log_json, verbose=settings.verbose)
    logger.info(
        "filter_process_starting",
        version=__version__,
        uid=os.getuid(),
        gid=os.getgid(),
        directory_url=settings.directory.url,
    )

    host = FilterHost(settings)
    asyncio.run(host.run())


if __name__ == "__main__":
    app()
