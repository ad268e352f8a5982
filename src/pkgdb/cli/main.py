"""pkgdb CLI - pkgdb command."""

from pathlib import Path

import click

from pkgdb import __version__
from pkgdb.cli.done import done_command
from pkgdb.cli.init import init_command
from pkgdb.cli.scrape import scrape_command
from pkgdb.cli.status import status_command
from pkgdb.config import load_config
from pkgdb.core.errors import ConfigError
from pkgdb.core.logging import configure_logging


@click.group()
@click.version_option(version=__version__, prog_name="pkgdb")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """pkgdb - Index the packages of an evaluated package set into SQLite."""
    try:
        config = load_config(Path.cwd())
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    if verbose:
        config.logging.level = "DEBUG"
    configure_logging(config=config.logging)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config"] = config


cli.add_command(init_command, name="init")
cli.add_command(scrape_command, name="scrape")
cli.add_command(status_command, name="status")
cli.add_command(done_command, name="done")


if __name__ == "__main__":
    cli()
