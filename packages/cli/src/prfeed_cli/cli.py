"""CLI entry point for prfeed.

Commands:
  list   list pull requests matching backend and review-state filters
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from prfeed_cli.commands.list import list_cmd


def _setup_logging(debug: bool) -> None:
    handler = RichHandler(console=Console(stderr=True), show_path=debug, rich_tracebacks=debug)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
    )
    # PyGithub and urllib3 are chatty at DEBUG.
    for name in ("github", "urllib3"):
        logging.getLogger(name).setLevel(logging.INFO if debug else logging.WARNING)


@click.group()
@click.version_option(
    version=importlib.metadata.version("prfeed"),
    prog_name="prfeed",
)
@click.option(
    "--config",
    "config_path",
    default="~/.prfeed.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRFEED_CONFIG",
)
@click.option("--debug", is_flag=True, envvar="PRFEED_DEBUG", help="Log pipeline details to stderr.")
@click.pass_context
def main(ctx: click.Context, config_path: str, debug: bool):
    """Review queue for GitHub pull requests."""
    _setup_logging(debug)

    ctx.ensure_object(dict)
    # Commands load the file themselves so their options can override it.
    ctx.obj["config_path"] = config_path


main.add_command(list_cmd)
