"""pkgdb init command - create an empty package set database."""

from pathlib import Path

import click
from rich.console import Console

from pkgdb.cli.utils import get_config
from pkgdb.core.errors import PkgDbError
from pkgdb.index import PkgDb, locked_input_for


@click.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("db_path", metavar="DB", type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def init_command(ctx: click.Context, source: Path, db_path: Path) -> None:
    """Create DB for the namespace dump SOURCE without scraping anything.

    Safe to run on an existing database for the same SOURCE: tables and
    version rows are kept, outdated views are recreated.
    """
    console = Console(stderr=True)
    config = get_config(ctx)
    try:
        locked_input = locked_input_for(source)
        with PkgDb(db_path, locked_input, config=config.database) as db:
            versions = db.get_db_versions()
    except PkgDbError as e:
        raise click.ClickException(str(e)) from e
    console.print(
        f"[green]Initialized[/green] {db_path} "
        f"(pkgdb {versions.pkgdb}, tables v{versions.tables}, views v{versions.views})"
    )
